"""
Task operations for callers.

TaskService validates input, guards against duplicates, routes every
change through the SyncCoordinator and keeps the TaskIndexEngine in step
with what was written locally.
"""

import asyncio
import base64
import binascii
import datetime as dt
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from ..core.config import StoreConfig
from ..core.exceptions import TaskNotFoundError, TaskValidationError
from ..core.models import EntityRef, Task
from ..core.validation import FieldError, ensure_valid
from ..index.engine import FilterCriteria, TaskIndexEngine
from ..sync.coordinator import TRANSIENT_ERRORS, SyncCoordinator, SyncStatusSnapshot, WriteResult
from ..sync.deduplicator import DeduplicationEngine, DeduplicationReport
from ..utils.date import format_date, to_iso, utc_now

TASKS_COLLECTION = "tasks"

# Accepted snake_case spellings of document fields
_ALIASES = {
    "sub_tasks": "subTasks",
    "estimated_duration": "estimatedDuration",
    "actual_duration": "actualDuration",
    "completed_at": "completedAt",
    "created_at": "createdAt",
}

_READ_ONLY_FIELDS = ("id", "createdAt", "modifiedAt", "userId")


def _normalize_input(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Map caller input onto document field names and JSON-friendly values."""
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        key = _ALIASES.get(key, key)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, dt.datetime):
            value = to_iso(value)
        elif isinstance(value, dt.date):
            value = format_date(value)
        elif isinstance(value, tuple):
            value = list(value)
        normalized[key] = value
    return normalized


def encode_cursor(offset: int) -> str:
    raw = json.dumps({"offset": offset}).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> int:
    """
    Raises:
        ValueError: if the cursor was not produced by ``encode_cursor``
    """
    if not cursor:
        return 0
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        offset = int(data["offset"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"Invalid page cursor: {cursor!r}") from exc
    if offset < 0:
        raise ValueError(f"Invalid page cursor: {cursor!r}")
    return offset


@dataclass
class Pagination:
    page_size: int = 50
    cursor: Optional[str] = None


@dataclass
class TaskPage:
    """One page of filtered tasks, newest first."""

    tasks: List[Task]
    cursor: Optional[str] = None
    has_more: bool = False
    total: int = 0


@dataclass
class LoadReport:
    """Outcome of a bulk load into the index."""

    source: str
    loaded: int = 0
    pages: int = 0
    cancelled: bool = False
    deduplication: Optional[DeduplicationReport] = None
    errors: List[str] = field(default_factory=list)


class TaskService:
    """Create, update, query and delete tasks."""

    def __init__(self,
                 coordinator: SyncCoordinator,
                 index: TaskIndexEngine,
                 deduplicator: DeduplicationEngine,
                 config: Optional[StoreConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.coordinator = coordinator
        self.index = index
        self.deduplicator = deduplicator
        self.config = config or StoreConfig()
        self.logger = logger or logging.getLogger(__name__)

        # Result of the most recent coordinated write, for callers that need
        # to know whether a change is only held in memory
        self.last_write: Optional[WriteResult] = None

        # Serializes read-merge-write per task id
        self._task_locks: Dict[str, asyncio.Lock] = {}
        self.coordinator.watch_adopted(self._on_adopted)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _record_write(self, result: WriteResult) -> WriteResult:
        self.last_write = result
        if result.at_risk:
            self.logger.warning("Change to %s could not be saved locally and depends on remote sync",
                                result.key)
        return result

    def _task_lock(self, task_id: str) -> asyncio.Lock:
        lock = self._task_locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._task_locks[task_id] = lock
        return lock

    def _on_adopted(self, ref: EntityRef, document: Dict[str, Any]) -> None:
        if ref.entity_type == "task":
            self.index.upsert(Task.from_dict(document))

    async def _require(self, task_id: str) -> Task:
        task = self.index.get(task_id)
        if task is None:
            task = await self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    async def create_task(self, task_input: Union[str, Mapping[str, Any]]) -> Task:
        """
        Create a task, or return the existing one with the same section and text.

        Args:
            task_input: Task text, or a dict of task fields

        Raises:
            TaskValidationError: if the input is invalid
            RemoteAuthorizationError: if the remote store rejects the write;
                the task is kept locally and indexed
        """
        data = _normalize_input({"text": task_input} if isinstance(task_input, str) else task_input)
        data.setdefault("section", "undated")
        data.setdefault("priority", "medium")
        for key in ("subTasks", "reminders", "details"):
            if data.get(key) is None:
                data[key] = []
        ensure_valid(data, self.config.text_max_length)

        existing = await self.deduplicator.find_existing(data["section"], data["text"])
        if existing is not None:
            self.logger.info("Task '%s' already exists as %s", existing.text, existing.id)
            return existing

        now = utc_now()
        data["text"] = data["text"].strip()
        data["createdAt"] = data.get("createdAt") or to_iso(now)
        data["modifiedAt"] = to_iso(now)
        data["userId"] = self.config.user_id
        if data.get("completed") and not data.get("completedAt"):
            data["completedAt"] = to_iso(now)
        if not data.get("id"):
            data.pop("id", None)
        task = Task.from_dict(data)

        async with self._task_lock(task.id):
            self._record_write(await self.coordinator.write(
                EntityRef.task(task.id), task.to_dict(), on_local_change=lambda: self.index.add(task)
            ))

        self.logger.info("Task created: %s", task.id)
        return task

    async def update_task(self, task_id: str, partial: Mapping[str, Any]) -> WriteResult:
        """
        Apply a partial update to a task.

        Raises:
            TaskNotFoundError: if the task does not exist
            TaskValidationError: if the merged task is invalid or the new
                text collides with another task in the same section
        """
        async with self._task_lock(task_id):
            return await self._apply_update(task_id, partial)

    async def _apply_update(self, task_id: str, partial: Mapping[str, Any]) -> WriteResult:
        current = await self._require(task_id)
        changes = _normalize_input(partial)
        for key in _READ_ONLY_FIELDS:
            changes.pop(key, None)

        merged = current.to_dict()
        merged.update(changes)
        ensure_valid(merged, self.config.text_max_length)
        merged["text"] = merged["text"].strip()

        if "text" in changes or "section" in changes:
            other = self.index.find_exact(merged["section"], merged["text"])
            if other is not None and other.id != task_id:
                raise TaskValidationError([
                    FieldError("text", "A task with this description already exists in this section")
                ])

        now = utc_now()
        if "completed" in changes:
            if not merged["completed"]:
                merged["completedAt"] = None
            elif not current.completed and "completedAt" not in changes:
                merged["completedAt"] = to_iso(now)
        merged["modifiedAt"] = to_iso(now)
        updated = Task.from_dict(merged)

        result = self._record_write(await self.coordinator.write(
            EntityRef.task(task_id), updated.to_dict(), on_local_change=lambda: self.index.update(current, updated)
        ))

        self.logger.debug("Task updated: %s", task_id)
        return result

    async def complete_task(self, task_id: str, completed: bool = True,
                            actual_duration: Optional[int] = None) -> WriteResult:
        changes: Dict[str, Any] = {"completed": completed}
        if actual_duration is not None:
            changes["actualDuration"] = actual_duration
        return await self.update_task(task_id, changes)

    async def delete_task(self, task_id: str) -> bool:
        """
        Delete a task locally, in the index and (now or on the next sweep)
        remotely.

        Returns:
            False if no such task is known
        """
        ref = EntityRef.task(task_id)
        async with self._task_lock(task_id):
            if not self.index.contains(task_id) and self.coordinator.local_document(ref) is None:
                return False
            self._record_write(await self.coordinator.delete(
                ref, on_local_change=lambda: self.index.remove(task_id)
            ))

        self.logger.info("Task deleted: %s", task_id)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def get_task(self, task_id: str) -> Optional[Task]:
        """Read one task through the coordinator's read path and refresh the index."""
        document = await self.coordinator.read(EntityRef.task(task_id))
        if document is None:
            self.index.remove(task_id)
            return None
        task = Task.from_dict(document)
        self.index.upsert(task)
        return task

    def get_filtered(self,
                     criteria: Union[FilterCriteria, Mapping[str, Any], None] = None,
                     pagination: Optional[Pagination] = None) -> TaskPage:
        """
        Filter indexed tasks, newest first, one page at a time.

        Raises:
            ValueError: for an invalid cursor or criteria
        """
        pagination = pagination or Pagination(page_size=self.config.page_size)
        if pagination.page_size <= 0:
            raise ValueError("page_size must be positive")

        tasks = self.index.tasks_for(self.index.filter(criteria))
        offset = decode_cursor(pagination.cursor)
        end = offset + pagination.page_size
        has_more = end < len(tasks)
        return TaskPage(
            tasks=tasks[offset:end],
            cursor=encode_cursor(end) if has_more else None,
            has_more=has_more,
            total=len(tasks),
        )

    def search(self, query: str,
               criteria: Union[FilterCriteria, Mapping[str, Any], None] = None) -> List[Task]:
        return self.index.tasks_for(self.index.query(criteria, query))

    def get_sync_status(self) -> SyncStatusSnapshot:
        return self.coordinator.get_sync_status()

    # ------------------------------------------------------------------
    # Bulk loading
    # ------------------------------------------------------------------
    def load_local(self) -> int:
        """Rebuild the index from locally held task records."""
        tasks = [Task.from_dict(doc) for doc in self.coordinator.local_documents("task").values()]
        count = self.index.rebuild(tasks)
        self.logger.info("Loaded %d tasks from local storage", count)
        return count

    def _merge_page(self, documents: List[Dict[str, Any]]) -> None:
        for document in documents:
            if not isinstance(document, dict) or not document.get("id"):
                continue
            ref = EntityRef.task(str(document["id"]))
            if self.coordinator.cache_remote(ref, document):
                self.index.upsert(Task.from_dict(document))
                continue
            local_doc = self.coordinator.local_document(ref)
            if local_doc is None:
                # Pending local delete
                self.index.remove(ref.document_id)
            else:
                self.index.upsert(Task.from_dict(local_doc))

    async def load_all(self, cancel_event: Optional[asyncio.Event] = None) -> LoadReport:
        """
        Load every task for the configured user.

        Local records are indexed first; remote pages are then merged one
        at a time, so a cancelled load leaves the index consistent with
        what was merged. Falls back to local data when the remote store
        is unavailable or fails.
        """
        self.load_local()

        if not self.coordinator.remote_available:
            self.logger.warning("Remote store unavailable, using local tasks only")
            return LoadReport(source="local", loaded=len(self.index))

        report = LoadReport(source="remote")
        try:
            fetched = await self.coordinator.fetch_all(
                TASKS_COLLECTION, "userId", "==", self.config.user_id,
                order_by="createdAt desc",
                page_size=self.config.page_size,
                cancel_event=cancel_event,
                on_page=self._merge_page,
            )
        except TRANSIENT_ERRORS as exc:
            self.logger.warning("Remote task load failed, using local tasks: %s", exc)
            report.source = "local"
            report.errors.append(str(exc))
            report.loaded = len(self.index)
            return report

        report.pages = fetched.pages
        report.cancelled = fetched.cancelled
        report.loaded = len(self.index)
        self.logger.info("Loaded %d tasks (%d remote documents in %d pages)",
                         report.loaded, len(fetched.documents), fetched.pages)

        if self.config.dedup_on_load and not report.cancelled:
            report.deduplication = await self.deduplicator.deduplicate_if_due(self.config.dedup_interval_hours)
        return report
