"""
Schedules, task states and settings.

These records ride on the same local-first write path as tasks: saved
locally, pushed to the remote store when it is reachable and replayed
by the sweep otherwise.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from ..core.models import DEFAULT_USER_ID, EntityRef, ScheduleSnapshot, Settings
from ..sync.coordinator import TRANSIENT_ERRORS, SyncCoordinator, WriteResult
from ..utils.date import date_key, to_iso, utc_now

SCHEDULES_COLLECTION = "schedules"

DateLike = Union[str, date, datetime]

# Bookkeeping fields added on save and dropped on load
_ENVELOPE_FIELDS = ("modifiedAt", "savedAt", "userId")


class ScheduleService:
    """Persists daily schedules, task completion states and user settings."""

    def __init__(self,
                 coordinator: SyncCoordinator,
                 user_id: str = DEFAULT_USER_ID,
                 logger: Optional[logging.Logger] = None):
        self.coordinator = coordinator
        self.user_id = user_id
        self.logger = logger or logging.getLogger(__name__)

    def _envelope(self, document: Dict[str, Any]) -> Dict[str, Any]:
        now = to_iso(utc_now())
        document = dict(document)
        document["modifiedAt"] = now
        document["savedAt"] = now
        document["userId"] = self.user_id
        return document

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------
    async def save_schedule(self, day: DateLike, snapshot: ScheduleSnapshot) -> WriteResult:
        key = date_key(day)
        snapshot.date = key
        result = await self.coordinator.write(EntityRef.schedule(key), self._envelope(snapshot.to_dict()))
        self.logger.info("Schedule saved for %s (%s)", key, result.status.value)
        return result

    async def load_schedule(self, day: DateLike) -> Optional[ScheduleSnapshot]:
        key = date_key(day)
        document = await self.coordinator.read(EntityRef.schedule(key))
        if document is None:
            self.logger.debug("No schedule found for %s", key)
            return None
        return ScheduleSnapshot.from_dict(document, key)

    async def update_entry_completion(self, day: DateLike, task_id: str, completed: bool) -> bool:
        """
        Mark the schedule entries linked to ``task_id`` as (not) completed.

        Returns:
            False if there is no schedule for the day or no entry for the task
        """
        snapshot = await self.load_schedule(day)
        if snapshot is None:
            return False

        matched = [entry for entry in snapshot.entries if entry.task_id == task_id]
        if not matched:
            return False
        for entry in matched:
            entry.completed = completed

        await self.save_schedule(day, snapshot)
        return True

    async def get_schedule_history(self, start: DateLike, end: DateLike) -> List[ScheduleSnapshot]:
        """
        Schedules whose date falls in ``[start, end]``, newest first.

        Uses a remote range query when the remote store is reachable and
        locally cached schedules otherwise.
        """
        start_key, end_key = date_key(start), date_key(end)
        documents: Dict[str, Dict[str, Any]] = {}

        if self.coordinator.remote_available:
            try:
                fetched = await self.coordinator.fetch_all(
                    SCHEDULES_COLLECTION, "date", ">=", start_key, order_by="date desc",
                )
            except TRANSIENT_ERRORS as exc:
                self.logger.warning("Remote schedule history failed, using local cache: %s", exc)
            else:
                for document in fetched.documents:
                    key = str(document.get("date") or "")
                    if start_key <= key <= end_key:
                        documents[key] = document

        # Local copies cover records that never reached the remote store
        for ref, document in self.coordinator.local_documents("schedule").items():
            key = ref.entity_key or ""
            if start_key <= key <= end_key and key not in documents:
                documents[key] = document

        history = [ScheduleSnapshot.from_dict(documents[key], key) for key in sorted(documents, reverse=True)]
        self.logger.info("Loaded %d schedules from history", len(history))
        return history

    async def cleanup_old_schedules(self, days_to_keep: int = 30, today: Optional[date] = None) -> int:
        """
        Delete schedules older than ``days_to_keep`` days.

        Returns:
            Number of schedules deleted
        """
        today = today or utc_now().date()
        cutoff_key = date_key(today - timedelta(days=days_to_keep))

        stale = {ref.entity_key for ref in self.coordinator.local_documents("schedule")
                 if ref.entity_key and ref.entity_key < cutoff_key}

        if self.coordinator.remote_available:
            try:
                fetched = await self.coordinator.fetch_all(SCHEDULES_COLLECTION, "date", "<", cutoff_key)
            except TRANSIENT_ERRORS as exc:
                self.logger.warning("Remote schedule cleanup query failed: %s", exc)
            else:
                stale.update(str(doc["date"]) for doc in fetched.documents if doc.get("date"))

        for key in sorted(stale):
            await self.coordinator.delete(EntityRef.schedule(key))

        self.logger.info("Cleaned up %d old schedules", len(stale))
        return len(stale)

    # ------------------------------------------------------------------
    # Task states
    # ------------------------------------------------------------------
    async def save_task_states(self, states: Dict[str, Any]) -> WriteResult:
        return await self.coordinator.write(EntityRef.task_states(), self._envelope({"states": dict(states)}))

    async def load_task_states(self) -> Dict[str, Any]:
        document = await self.coordinator.read(EntityRef.task_states())
        if not document:
            return {}
        states = document.get("states")
        return dict(states) if isinstance(states, dict) else {}

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    async def save_settings(self, settings: Settings) -> WriteResult:
        return await self.coordinator.write(EntityRef.settings(), self._envelope(settings.to_dict()))

    async def load_settings(self) -> Settings:
        """Stored settings, or defaults when nothing has been saved."""
        document = await self.coordinator.read(EntityRef.settings())
        if not document:
            self.logger.debug("No settings found, using defaults")
            return Settings()
        return Settings.from_dict({k: v for k, v in document.items() if k not in _ENVELOPE_FIELDS})
