"""
In-memory multi-field index over task records.

The engine keeps a primary id -> Task map plus derived inverted maps
(section, priority, completion, search tokens and normalized content).
Every mutation updates all of them under one lock, so readers never see
a half-applied change.
"""

import bisect
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from ..core.models import Priority, Section, Task
from ..utils.text import normalize_text, tokenize
from .filter_cache import FilterCache

ALL = "all"

_TRUE_VALUES = {"true", "completed", "done", "yes", "1"}
_FALSE_VALUES = {"false", "pending", "active", "incomplete", "no", "0"}


def _parse_completed(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("", ALL):
        return None
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid completion filter: {value!r}")


@dataclass(frozen=True)
class FilterCriteria:
    """Field filters; a None field is an absent criterion."""

    section: Optional[Section] = None
    priority: Optional[Priority] = None
    completed: Optional[bool] = None

    @property
    def is_empty(self) -> bool:
        return self.section is None and self.priority is None and self.completed is None

    @classmethod
    def from_value(cls, value: Union["FilterCriteria", Mapping[str, Any], None]) -> "FilterCriteria":
        """
        Build criteria from a FilterCriteria, a dict or None.

        The string ``"all"`` (or an empty value) leaves a criterion out.

        Raises:
            ValueError: for unknown section, priority or completion values
        """
        if value is None:
            return cls()
        if isinstance(value, FilterCriteria):
            return value

        section = value.get("section")
        priority = value.get("priority")
        return cls(
            section=Section.parse(section) if section not in (None, "", ALL) else None,
            priority=Priority.parse(priority) if priority not in (None, "", ALL) else None,
            completed=_parse_completed(value.get("completed")),
        )

    def cache_key(self) -> Tuple[Optional[str], Optional[str], Optional[bool]]:
        return (
            self.section.value if self.section else None,
            self.priority.value if self.priority else None,
            self.completed,
        )


def _intersect(first: Set[str], second: Set[str]) -> Set[str]:
    # Walk the smaller set
    if len(first) > len(second):
        first, second = second, first
    return {item for item in first if item in second}


class TaskIndexEngine:
    """Indexes tasks for fast filtering and prefix-token search."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._cache = FilterCache()

        self._tasks: Dict[str, Task] = {}
        self._by_section: Dict[Section, Set[str]] = defaultdict(set)
        self._by_priority: Dict[Priority, Set[str]] = defaultdict(set)
        self._by_completed: Dict[bool, Set[str]] = defaultdict(set)
        self._by_token: Dict[str, Set[str]] = defaultdict(set)
        self._by_content: Dict[Tuple[str, str], Set[str]] = defaultdict(set)

        # id -> tokens, so removal never re-tokenizes
        self._task_tokens: Dict[str, Set[str]] = {}
        self._sorted_tokens: Optional[List[str]] = None

    # ------------------------------------------------------------------
    # Internal helpers (callers hold the lock)
    # ------------------------------------------------------------------
    @staticmethod
    def _discard(index: Dict[Any, Set[str]], key: Any, task_id: str) -> None:
        ids = index.get(key)
        if ids is None:
            return
        ids.discard(task_id)
        if not ids:
            del index[key]

    def _add_locked(self, task: Task) -> None:
        if task.id in self._tasks:
            self._remove_locked(task.id)

        self._tasks[task.id] = task
        self._by_section[task.section].add(task.id)
        self._by_priority[task.priority].add(task.id)
        self._by_completed[task.completed].add(task.id)
        self._by_content[task.dedup_key].add(task.id)

        tokens = set(tokenize(task.text))
        self._task_tokens[task.id] = tokens
        for token in tokens:
            if token not in self._by_token:
                self._sorted_tokens = None
            self._by_token[token].add(task.id)

    def _remove_locked(self, task_id: str) -> Optional[Task]:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return None

        self._discard(self._by_section, task.section, task_id)
        self._discard(self._by_priority, task.priority, task_id)
        self._discard(self._by_completed, task.completed, task_id)
        self._discard(self._by_content, task.dedup_key, task_id)

        for token in self._task_tokens.pop(task_id, set()):
            self._discard(self._by_token, token, task_id)
            if token not in self._by_token:
                self._sorted_tokens = None
        return task

    def _clear_locked(self) -> None:
        self._tasks.clear()
        self._by_section.clear()
        self._by_priority.clear()
        self._by_completed.clear()
        self._by_token.clear()
        self._by_content.clear()
        self._task_tokens.clear()
        self._sorted_tokens = None

    def _prefix_matches(self, prefix: str) -> Set[str]:
        if self._sorted_tokens is None:
            self._sorted_tokens = sorted(self._by_token)
        matches: Set[str] = set()
        start = bisect.bisect_left(self._sorted_tokens, prefix)
        for token in self._sorted_tokens[start:]:
            if not token.startswith(prefix):
                break
            matches.update(self._by_token[token])
        return matches

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def rebuild(self, tasks: Iterable[Task]) -> int:
        """Replace the whole index with the given task set."""
        with self._lock:
            self._clear_locked()
            for task in tasks:
                self._add_locked(task)
            self._cache.invalidate()
            count = len(self._tasks)
        self.logger.debug("Rebuilt task index with %d tasks", count)
        return count

    def add(self, task: Task) -> None:
        """Index a task; an existing entry with the same id is replaced."""
        with self._lock:
            self._add_locked(task)
            self._cache.invalidate()

    def remove(self, task: Union[Task, str]) -> bool:
        """Drop a task (or task id) from every map. Returns False if it was not indexed."""
        task_id = task.id if isinstance(task, Task) else task
        with self._lock:
            removed = self._remove_locked(task_id)
            self._cache.invalidate()
        return removed is not None

    def update(self, old_task: Task, new_task: Task) -> None:
        with self._lock:
            self._remove_locked(old_task.id)
            self._add_locked(new_task)
            self._cache.invalidate()

    def upsert(self, task: Task) -> bool:
        """Add or replace a task. Returns True if it was not indexed before."""
        with self._lock:
            existing = self._tasks.get(task.id)
            if existing is None:
                self._add_locked(task)
            else:
                self.update(existing, task)
            self._cache.invalidate()
        return existing is None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def contains(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tasks

    def all_ids(self) -> Set[str]:
        with self._lock:
            return set(self._tasks)

    def all_tasks(self) -> List[Task]:
        with self._lock:
            return list(self._tasks.values())

    def filter(self, criteria: Union[FilterCriteria, Mapping[str, Any], None] = None) -> Set[str]:
        """
        Return the ids matching every active criterion.

        No criteria returns every indexed id.
        """
        criteria = FilterCriteria.from_value(criteria)
        with self._lock:
            result: Optional[Set[str]] = None
            lookups = (
                (self._by_section, criteria.section),
                (self._by_priority, criteria.priority),
                (self._by_completed, criteria.completed),
            )
            for index, key in lookups:
                if key is None:
                    continue
                ids = index.get(key, set())
                result = set(ids) if result is None else _intersect(result, ids)
                if not result:
                    return set()
            if result is None:
                result = set(self._tasks)
            return result

    def search(self, query: str, restrict_to: Optional[Set[str]] = None) -> Set[str]:
        """
        Prefix search over task text.

        Every query token must match (AND); a query token matches any
        indexed token it is a prefix of (OR). An empty query returns
        ``restrict_to`` or every id.
        """
        query_tokens = tokenize(query or "")
        with self._lock:
            if not query_tokens:
                return set(restrict_to) if restrict_to is not None else set(self._tasks)

            result: Optional[Set[str]] = None
            for token in query_tokens:
                matches = self._prefix_matches(token)
                result = matches if result is None else _intersect(result, matches)
                if not result:
                    return set()

            if restrict_to is not None:
                result = _intersect(result, set(restrict_to))
            return result

    def query(self, criteria: Union[FilterCriteria, Mapping[str, Any], None] = None,
              text: Optional[str] = None) -> Set[str]:
        """Filter then search, memoizing the most recent combination."""
        criteria = FilterCriteria.from_value(criteria)
        key = criteria.cache_key() + (" ".join(tokenize(text or "")),)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            ids = self.filter(criteria)
            if text:
                ids = self.search(text, restrict_to=ids)
            self._cache.put(key, ids)
            return ids

    def find_exact(self, section: Union[Section, str], text: str) -> Optional[Task]:
        """Find a task with the same section and normalized text, oldest first."""
        key = (Section.parse(section).value, normalize_text(text))
        with self._lock:
            ids = self._by_content.get(key)
            if not ids:
                return None
            tasks = [self._tasks[task_id] for task_id in ids]
        return min(tasks, key=lambda t: (t.created_at, t.id))

    def tasks_for(self, ids: Iterable[str]) -> List[Task]:
        """Resolve ids to tasks, newest first; unknown ids are skipped."""
        with self._lock:
            tasks = [self._tasks[task_id] for task_id in ids if task_id in self._tasks]
        return sorted(tasks, key=lambda t: (t.created_at, t.id), reverse=True)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of every derived map, keyed by plain strings, for consistency checks."""
        with self._lock:
            return {
                "ids": set(self._tasks),
                "section": {k.value: set(v) for k, v in self._by_section.items()},
                "priority": {k.value: set(v) for k, v in self._by_priority.items()},
                "completed": {k: set(v) for k, v in self._by_completed.items()},
                "tokens": {k: set(v) for k, v in self._by_token.items()},
                "content": {k: set(v) for k, v in self._by_content.items()},
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
