"""
Tests for domain models (secretary_sync/core/models.py).
"""

import re
from datetime import date, datetime, timezone

import pytest

from secretary_sync.core.models import (
    EntityRef,
    Priority,
    ScheduleEntry,
    ScheduleSnapshot,
    Section,
    Settings,
    SyncOperation,
    SyncRecord,
    SyncStatus,
    Task,
    generate_task_id,
)

pytestmark = pytest.mark.unit


class TestTask:
    """Test suite for the Task record."""

    def test_completed_at_set_when_completed(self):
        """completedAt is filled in for a completed task without one."""
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        task = Task(id="t1", text="Done already", completed=True, modified_at=now)
        assert task.completed_at == now

    def test_completed_at_cleared_when_not_completed(self):
        task = Task(id="t1", text="Open task", completed=False,
                    completed_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert task.completed_at is None

    def test_set_completed_toggles_timestamp(self):
        task = Task.new("Water plants")
        later = datetime(2030, 1, 1, tzinfo=timezone.utc)
        task.set_completed(True, now=later)
        assert task.completed and task.completed_at == later and task.modified_at == later

        task.set_completed(False, now=later)
        assert not task.completed and task.completed_at is None

    def test_new_task_defaults(self):
        task = Task.new("  Read a book  ")
        assert task.text == "Read a book"
        assert task.section == Section.UNDATED
        assert task.priority == Priority.MEDIUM
        assert task.created_at == task.modified_at
        assert re.match(r"^task-\d+-[0-9a-z]{9}$", task.id)

    def test_to_dict_uses_document_field_names(self):
        task = Task.new("Plan trip", "weekly", "high", date=date(2024, 5, 1), sub_tasks=["Book hotel"])
        data = task.to_dict()
        assert data["section"] == "weekly"
        assert data["priority"] == "high"
        assert data["date"] == "2024-05-01"
        assert data["subTasks"] == ["Book hotel"]
        assert data["completedAt"] is None
        assert Task.from_dict(data) == task

    def test_from_dict_accepts_legacy_section_and_bad_values(self):
        task = Task.from_dict({
            "id": "task-1",
            "text": "Legacy",
            "section": "todayTasks",
            "priority": "urgent",
            "estimatedDuration": "-5",
            "subTasks": [{"text": "nested"}],
        })
        assert task.section == Section.TODAY
        assert task.priority == Priority.MEDIUM
        assert task.estimated_duration is None
        assert task.sub_tasks == ["nested"]

    def test_dedup_key_normalizes_case_and_whitespace(self):
        first = Task.new("Buy  Milk ", "today")
        second = Task.new("buy milk", "today")
        assert first.dedup_key == second.dedup_key == ("today", "buy milk")

    def test_sub_item_count(self):
        task = Task.new("Trip", sub_tasks=["a", "b"], reminders=["c"])
        assert task.sub_item_count == 3


class TestEnums:

    def test_section_parse(self):
        assert Section.parse("upcomingTasks") == Section.UPCOMING
        assert Section.parse("Daily") == Section.DAILY
        with pytest.raises(ValueError):
            Section.parse("someday")

    def test_priority_parse(self):
        assert Priority.parse(" HIGH ") == Priority.HIGH
        with pytest.raises(ValueError):
            Priority.parse(3)


class TestEntityRef:
    """Test suite for local key layout and remote placement."""

    def test_task_ref(self):
        ref = EntityRef.task("task-1")
        assert ref.local_key == "task-task-1"
        assert ref.sync_key == "task-task-1-synced"
        assert ref.collection == "tasks"
        assert ref.document_id == "task-1"

    def test_singletons_use_current_document(self):
        assert EntityRef.settings().local_key == "settings"
        assert EntityRef.settings().document_id == "current"
        assert EntityRef.task_states().collection == "task_states"

    def test_from_local_key_round_trip(self):
        for ref in (EntityRef.task("task-9"), EntityRef.schedule("2024-02-03"),
                    EntityRef.task_states(), EntityRef.settings()):
            assert EntityRef.from_local_key(ref.local_key) == ref
            assert EntityRef.from_local_key(ref.sync_key) == ref

    def test_task_states_never_parses_as_task(self):
        ref = EntityRef.from_local_key("task-states")
        assert ref.entity_type == "task-states"
        assert ref.entity_key is None

    def test_unknown_keys(self):
        assert EntityRef.from_local_key("last-sync") is None
        with pytest.raises(ValueError):
            EntityRef("notes", "x")


class TestSyncRecord:

    def test_defaults_to_pending_upsert(self):
        record = SyncRecord(key="task-task-1")
        assert record.is_pending
        assert record.operation == SyncOperation.UPSERT

    def test_from_dict_tolerates_unknown_status(self):
        record = SyncRecord.from_dict({"status": "weird", "operation": "delete", "attempts": 2}, key="k")
        assert record.status == SyncStatus.PENDING
        assert record.operation == SyncOperation.DELETE
        assert record.attempts == 2
        assert record.key == "k"


class TestScheduleAndSettings:

    def test_schedule_metadata(self):
        snapshot = ScheduleSnapshot(date="2024-03-01", entries=[
            ScheduleEntry(time="09:00", task="Standup", duration="30 minutes", priority="high", category="work"),
            ScheduleEntry(time="10:00", task="Gym", duration="15-30 minutes", priority="low", category="routine"),
            ScheduleEntry(time="11:00", task="Email", duration=None, category="work"),
        ])
        metadata = snapshot.metadata
        assert metadata["taskCount"] == 3
        assert metadata["hasHighPriority"] is True
        assert metadata["categories"] == ["work", "routine"]
        assert metadata["estimatedDuration"] == 45

    def test_schedule_from_dict_uses_schedule_list(self):
        snapshot = ScheduleSnapshot.from_dict({
            "schedule": [{"time": "14:30", "task": "Review", "duration": 30, "taskId": "task-1"}],
            "summary": "Afternoon",
            "fallback": True,
        }, date_key="2024-03-01")
        assert snapshot.date == "2024-03-01"
        assert snapshot.entries[0].duration == "30"
        assert snapshot.entries[0].task_id == "task-1"
        assert snapshot.fallback is True

    def test_settings_keep_unknown_keys_but_not_local_ones(self):
        settings = Settings.from_dict({"theme": "dark", "fontSize": 14, "localCacheVersion": 3})
        assert settings.theme == "dark"
        assert settings.extra == {"fontSize": 14}
        data = settings.to_dict()
        assert data["fontSize"] == 14
        assert data["refreshInterval"] == 30


def test_generate_task_id_uses_timestamp():
    assert generate_task_id(1700000000000).startswith("task-1700000000000-")
