#!/usr/bin/env python3
"""
Tests for task deduplication (secretary_sync/sync/deduplicator.py).
"""

from datetime import timedelta

import pytest

from secretary_sync.core.exceptions import RemoteTransientError
from secretary_sync.core.models import EntityRef
from secretary_sync.sync.deduplicator import LAST_RUN_KEY, survivor_rank

from tests.conftest import BASE_TIME

pytestmark = pytest.mark.dedup


async def store(context, *tasks):
    """Write tasks through the coordinator and index them."""
    for task in tasks:
        await context.coordinator.write(EntityRef.task(task.id), task.to_dict())
        context.index.add(task)


class TestSurvivorSelection:
    """Test suite for the survivor tie-break."""

    def test_completed_beats_incomplete(self, make_task):
        a = make_task("Buy milk", minutes=0)
        b = make_task("Buy milk", minutes=5, completed=True)
        assert min([a, b], key=survivor_rank) is b

    def test_more_sub_items_beats_fewer(self, make_task):
        a = make_task("Buy milk", minutes=0)
        b = make_task("Buy milk", minutes=5, sub_tasks=["2%"], reminders=["9am"])
        assert min([a, b], key=survivor_rank) is b

    def test_earliest_creation_breaks_ties(self, make_task):
        a = make_task("Buy milk", minutes=5)
        b = make_task("Buy milk", minutes=0)
        assert min([a, b], key=survivor_rank) is b


class TestDeduplicationEngine:

    @pytest.mark.asyncio
    async def test_completed_task_with_sub_item_survives(self, context, make_task, remote):
        """Test that the completed task is kept and the other removed."""
        a = make_task("Buy milk", minutes=0, id="task-a")
        b = make_task("buy  MILK", minutes=10, id="task-b", completed=True, sub_tasks=["2%"])
        await store(context, a, b)

        report = await context.deduplicator.deduplicate()

        assert report.duplicates_removed == 1
        assert report.survivors_remaining == 1
        assert report.clusters[0].survivor.id == "task-b"
        assert context.index.all_ids() == {"task-b"}
        assert context.local.get("task-task-a") is None
        assert "task-a" not in remote.collections["tasks"]
        assert "task-b" in remote.collections["tasks"]

    @pytest.mark.asyncio
    async def test_different_sections_are_not_duplicates(self, context, make_task):
        await store(context, make_task("Buy milk", section="today"), make_task("Buy milk", section="weekly"))
        report = await context.deduplicator.deduplicate()
        assert report.clusters == []
        assert len(context.index) == 2

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, context, make_task, remote):
        await store(context, make_task("Buy milk"), make_task("Buy milk", minutes=1), make_task("Buy milk", minutes=2))
        deletes = remote.count("delete")

        report = await context.deduplicator.deduplicate(dry_run=True)

        assert report.dry_run
        assert report.duplicates_removed == 2
        assert report.clusters[0].total_count == 3
        assert len(context.index) == 3
        assert remote.count("delete") == deletes

    @pytest.mark.asyncio
    async def test_offline_deletes_are_queued(self, offline_context, make_task):
        await store(offline_context, make_task("Buy milk"), make_task("Buy milk", minutes=1))
        report = await offline_context.deduplicator.deduplicate()

        assert report.duplicates_removed == 1
        pending = {r.key: r.operation.value for r in offline_context.coordinator.pending_records()}
        assert pending["task-task-0002"] == "delete"

    @pytest.mark.asyncio
    async def test_deduplicate_if_due(self, context, make_task):
        await store(context, make_task("Buy milk"), make_task("Buy milk", minutes=1))
        engine = context.deduplicator

        first = await engine.deduplicate_if_due(24, now=BASE_TIME)
        assert first.duplicates_removed == 1
        assert context.local.get(LAST_RUN_KEY) is not None
        assert engine.last_run() == BASE_TIME

        assert await engine.deduplicate_if_due(24, now=BASE_TIME + timedelta(hours=23)) is None
        assert await engine.deduplicate_if_due(24, now=BASE_TIME + timedelta(hours=25)) is not None


class TestFindExisting:

    @pytest.mark.asyncio
    async def test_index_hit(self, context, make_task, remote):
        task = make_task("Buy milk")
        context.index.add(task)
        found = await context.deduplicator.find_existing("today", "  buy MILK")
        assert found.id == task.id
        assert remote.count("query_by_field") == 0

    @pytest.mark.asyncio
    async def test_remote_hit_is_cached_and_indexed(self, context, make_task, remote):
        task = make_task("Buy milk")
        remote.seed("tasks", task.id, task.to_dict())

        found = await context.deduplicator.find_existing("today", "Buy milk")

        assert found.id == task.id
        assert context.index.contains(task.id)
        assert context.local.get(f"task-{task.id}")["text"] == "Buy milk"

    @pytest.mark.asyncio
    async def test_remote_hit_in_other_section_is_ignored(self, context, make_task, remote):
        task = make_task("Buy milk", section="weekly")
        remote.seed("tasks", task.id, task.to_dict())
        assert await context.deduplicator.find_existing("today", "Buy milk") is None

    @pytest.mark.asyncio
    async def test_remote_failure_falls_back_to_index(self, context, remote):
        remote.fail("query_by_field", RemoteTransientError("timeout"))
        assert await context.deduplicator.find_existing("today", "Buy milk") is None

    @pytest.mark.asyncio
    async def test_offline_miss(self, offline_context):
        assert await offline_context.deduplicator.find_existing("today", "Buy milk") is None
