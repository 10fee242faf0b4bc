"""
Domain models for secretary-sync.

This module contains the records kept in the local cache and mirrored to
the remote document store, plus the sync bookkeeping attached to them.
"""

from __future__ import annotations

import datetime as dt
import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..utils.date import format_date, parse_date, parse_iso_datetime, to_iso, utc_now
from ..utils.text import leading_minutes, normalize_text

DEFAULT_USER_ID = "default-user"
SYNC_RECORD_SUFFIX = "-synced"
SINGLETON_DOCUMENT_ID = "current"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_task_id(now_ms: Optional[int] = None) -> str:
    """Generate a task id of the form ``task-<epoch-ms>-<9 base36 chars>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"task-{now_ms}-{suffix}"


def _string_list(values: Any) -> List[str]:
    if not values:
        return []
    items: List[str] = []
    for value in values:
        if isinstance(value, dict):
            value = value.get("text") or value.get("content") or ""
        if value is None:
            continue
        items.append(str(value))
    return items


def _positive_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class Section(Enum):
    """Task list a task belongs to."""

    TODAY = "today"
    UPCOMING = "upcoming"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    UNDATED = "undated"

    @classmethod
    def parse(cls, value: Any) -> Section:
        """Parse a section, accepting legacy ``todayTasks`` style names.

        Raises:
            ValueError: if the value is not a known section
        """
        if isinstance(value, Section):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid section: {value!r}")
        normalized = value.strip()
        if normalized.endswith("Tasks"):
            normalized = normalized[: -len("Tasks")]
        return cls(normalized.lower())


class Priority(Enum):
    """Task priority levels."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Any) -> Priority:
        if isinstance(value, Priority):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid priority: {value!r}")
        return cls(value.strip().lower())


@dataclass
class Task:
    """A single task record."""

    id: str
    text: str
    section: Section = Section.UNDATED
    priority: Priority = Priority.MEDIUM
    completed: bool = False
    date: Optional[dt.date] = None
    sub_tasks: List[str] = field(default_factory=list)
    reminders: List[str] = field(default_factory=list)
    details: List[str] = field(default_factory=list)
    created_at: dt.datetime = field(default_factory=utc_now)
    modified_at: dt.datetime = field(default_factory=utc_now)
    completed_at: Optional[dt.datetime] = None
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    user_id: str = DEFAULT_USER_ID

    def __post_init__(self) -> None:
        # completed_at is set iff completed
        if not self.completed:
            self.completed_at = None
        elif self.completed_at is None:
            self.completed_at = self.modified_at

    @classmethod
    def new(
        cls,
        text: str,
        section: Any = Section.UNDATED,
        priority: Any = Priority.MEDIUM,
        now: Optional[dt.datetime] = None,
        **fields: Any,
    ) -> Task:
        """Create a fresh task with a generated id and matching timestamps."""
        now = now or utc_now()
        task_id = fields.pop("id", None) or generate_task_id(int(now.timestamp() * 1000))
        return cls(
            id=task_id,
            text=text.strip(),
            section=Section.parse(section),
            priority=Priority.parse(priority),
            created_at=fields.pop("created_at", now),
            modified_at=now,
            **fields,
        )

    @property
    def sub_item_count(self) -> int:
        return len(self.sub_tasks) + len(self.reminders)

    @property
    def dedup_key(self) -> Tuple[str, str]:
        """Key under which semantically identical tasks collide."""
        return (self.section.value, normalize_text(self.text))

    def set_completed(self, completed: bool, now: Optional[dt.datetime] = None) -> None:
        """Toggle completion while keeping completed_at consistent."""
        now = now or utc_now()
        if completed and not self.completed:
            self.completed_at = now
        elif not completed:
            self.completed_at = None
        self.completed = completed
        self.modified_at = now

    def copy(self) -> Task:
        return Task.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "section": self.section.value,
            "priority": self.priority.value,
            "completed": self.completed,
            "date": format_date(self.date),
            "subTasks": list(self.sub_tasks),
            "reminders": list(self.reminders),
            "details": list(self.details),
            "createdAt": to_iso(self.created_at),
            "modifiedAt": to_iso(self.modified_at),
            "completedAt": to_iso(self.completed_at),
            "estimatedDuration": self.estimated_duration,
            "actualDuration": self.actual_duration,
            "userId": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Task:
        try:
            section = Section.parse(data.get("section") or Section.UNDATED)
        except ValueError:
            section = Section.UNDATED

        try:
            priority = Priority.parse(data.get("priority") or Priority.MEDIUM)
        except ValueError:
            priority = Priority.MEDIUM

        created_at = parse_iso_datetime(data.get("createdAt")) or utc_now()
        modified_at = parse_iso_datetime(data.get("modifiedAt")) or created_at

        return cls(
            id=str(data.get("id") or generate_task_id()),
            text=str(data.get("text") or ""),
            section=section,
            priority=priority,
            completed=bool(data.get("completed", False)),
            date=parse_date(data.get("date")),
            sub_tasks=_string_list(data.get("subTasks")),
            reminders=_string_list(data.get("reminders")),
            details=_string_list(data.get("details")),
            created_at=created_at,
            modified_at=modified_at,
            completed_at=parse_iso_datetime(data.get("completedAt")),
            estimated_duration=_positive_int(data.get("estimatedDuration")),
            actual_duration=_positive_int(data.get("actualDuration")),
            user_id=str(data.get("userId") or DEFAULT_USER_ID),
        )


class SyncStatus(Enum):
    """Remote delivery state of a locally stored record."""

    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"


class SyncOperation(Enum):
    """Which remote call replays a pending record."""

    UPSERT = "upsert"
    DELETE = "delete"


@dataclass
class SyncRecord:
    """Sync bookkeeping stored next to a record under ``<key>-synced``."""

    key: str
    status: SyncStatus = SyncStatus.PENDING
    operation: SyncOperation = SyncOperation.UPSERT
    last_attempt: Optional[dt.datetime] = None
    synced_at: Optional[dt.datetime] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status == SyncStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "status": self.status.value,
            "operation": self.operation.value,
            "lastAttempt": to_iso(self.last_attempt),
            "syncedAt": to_iso(self.synced_at),
            "error": self.error,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], key: Optional[str] = None) -> SyncRecord:
        try:
            status = SyncStatus(data.get("status", "pending"))
        except ValueError:
            status = SyncStatus.PENDING
        try:
            operation = SyncOperation(data.get("operation", "upsert"))
        except ValueError:
            operation = SyncOperation.UPSERT
        return cls(
            key=key or data.get("key", ""),
            status=status,
            operation=operation,
            last_attempt=parse_iso_datetime(data.get("lastAttempt")),
            synced_at=parse_iso_datetime(data.get("syncedAt")),
            error=data.get("error"),
            attempts=int(data.get("attempts") or 0),
        )


@dataclass
class ScheduleEntry:
    """One time slot of a daily schedule."""

    time: str
    task: str
    duration: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    task_id: Optional[str] = None
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "task": self.task,
            "duration": self.duration,
            "priority": self.priority,
            "category": self.category,
            "taskId": self.task_id,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ScheduleEntry:
        duration = data.get("duration")
        return cls(
            time=str(data.get("time", "")),
            task=str(data.get("task", "")),
            duration=str(duration) if duration is not None else None,
            priority=data.get("priority"),
            category=data.get("category"),
            task_id=data.get("taskId"),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class ScheduleSnapshot:
    """A generated or cached schedule for one calendar date."""

    date: str
    entries: List[ScheduleEntry] = field(default_factory=list)
    generated_at: dt.datetime = field(default_factory=utc_now)
    summary: str = ""
    fallback: bool = False
    version: int = 1

    @property
    def metadata(self) -> Dict[str, Any]:
        categories: List[str] = []
        for entry in self.entries:
            if entry.category and entry.category not in categories:
                categories.append(entry.category)
        return {
            "taskCount": len(self.entries),
            "hasHighPriority": any(e.priority == Priority.HIGH.value for e in self.entries),
            "categories": categories,
            "estimatedDuration": sum(leading_minutes(e.duration) for e in self.entries),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "schedule": [entry.to_dict() for entry in self.entries],
            "generatedAt": to_iso(self.generated_at),
            "summary": self.summary,
            "fallback": self.fallback,
            "version": self.version,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], date_key: Optional[str] = None) -> ScheduleSnapshot:
        return cls(
            date=str(data.get("date") or date_key or ""),
            entries=[ScheduleEntry.from_dict(e) for e in data.get("schedule") or [] if isinstance(e, dict)],
            generated_at=parse_iso_datetime(data.get("generatedAt")) or utc_now(),
            summary=str(data.get("summary") or ""),
            fallback=bool(data.get("fallback", False)),
            version=int(data.get("version") or 1),
        )


@dataclass
class Settings:
    """User preferences mirrored to the ``settings`` collection."""

    openrouter_api_key: str = ""
    selected_model: str = "anthropic/claude-3.5-sonnet"
    refresh_interval: int = 30
    notifications: bool = True
    theme: str = "light"
    extra: Dict[str, Any] = field(default_factory=dict)

    _FIELDS = {
        "openrouterApiKey": "openrouter_api_key",
        "selectedModel": "selected_model",
        "refreshInterval": "refresh_interval",
        "notifications": "notifications",
        "theme": "theme",
    }

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        for key, attr in self._FIELDS.items():
            data[key] = getattr(self, attr)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Settings:
        settings = cls()
        for key, value in data.items():
            attr = cls._FIELDS.get(key)
            if attr is not None:
                setattr(settings, attr, value)
            elif not key.startswith("local"):
                settings.extra[key] = value
        return settings


# Local key layout and remote placement of each entity type
ENTITY_COLLECTIONS: Dict[str, str] = {
    "task-states": "task_states",
    "schedule": "schedules",
    "settings": "settings",
    "task": "tasks",
}


@dataclass(frozen=True)
class EntityRef:
    """Addresses one stored entity both locally and remotely."""

    entity_type: str
    entity_key: Optional[str] = None

    def __post_init__(self) -> None:
        if self.entity_type not in ENTITY_COLLECTIONS:
            raise ValueError(f"Unknown entity type: {self.entity_type!r}")

    @property
    def local_key(self) -> str:
        if self.entity_key:
            return f"{self.entity_type}-{self.entity_key}"
        return self.entity_type

    @property
    def sync_key(self) -> str:
        return f"{self.local_key}{SYNC_RECORD_SUFFIX}"

    @property
    def collection(self) -> str:
        return ENTITY_COLLECTIONS[self.entity_type]

    @property
    def document_id(self) -> str:
        return self.entity_key or SINGLETON_DOCUMENT_ID

    @classmethod
    def task(cls, task_id: str) -> EntityRef:
        return cls("task", task_id)

    @classmethod
    def schedule(cls, date_key: str) -> EntityRef:
        return cls("schedule", date_key)

    @classmethod
    def task_states(cls) -> EntityRef:
        return cls("task-states")

    @classmethod
    def settings(cls) -> EntityRef:
        return cls("settings")

    @classmethod
    def from_local_key(cls, key: str) -> Optional[EntityRef]:
        """Inverse of ``local_key``; returns None for keys outside the layout."""
        if key.endswith(SYNC_RECORD_SUFFIX):
            key = key[: -len(SYNC_RECORD_SUFFIX)]
        # Longest type names first so "task-states" never parses as a task
        for entity_type in sorted(ENTITY_COLLECTIONS, key=len, reverse=True):
            if key == entity_type:
                return cls(entity_type)
            if key.startswith(f"{entity_type}-"):
                return cls(entity_type, key[len(entity_type) + 1:])
        return None
