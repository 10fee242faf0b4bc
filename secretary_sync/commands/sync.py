"""Sync commands - status, reconciliation sweep and deduplication."""

import asyncio
import json
import logging
from typing import Optional

from ..context import AppContext
from ..utils.date import to_iso


class StatusCommand:
    """Command for showing sync health."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def run(self, as_json: bool = False) -> bool:
        status = self.context.coordinator.get_sync_status()

        if as_json:
            print(json.dumps(status.to_dict(), indent=2))
            return True

        print("Remote store: " + ("available" if status.available else "unavailable"))
        print(f"Pending records: {status.pending_count}")
        print(f"Failed records: {status.error_count}")
        print(f"Last sync: {to_iso(status.last_sync_time) or 'never'}")
        if self.verbose:
            for record in self.context.coordinator.pending_records():
                print(f"  {record.key}  {record.operation.value}  attempts={record.attempts}"
                      + (f"  error={record.error}" if record.error else ""))
        return True


class SweepCommand:
    """Command for pushing pending records to the remote store."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    async def watch(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Sweep every ``sweep_interval`` seconds until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        interval = self.context.config.sweep_interval
        self.logger.info("Sweeping every %.1f seconds", interval)
        await self.context.coordinator.run_periodic(interval, stop_event)

    def run(self, retry_errors: bool = False, watch: bool = False) -> bool:
        coordinator = self.context.coordinator
        if retry_errors:
            requeued = coordinator.retry_errors()
            print(f"Re-queued {requeued} failed records")

        if watch:
            print(f"Sweeping every {self.context.config.sweep_interval:g}s, press Ctrl+C to stop.")
            asyncio.run(self.watch())
            return True

        report = asyncio.run(coordinator.sweep())
        if report is None:
            print("A sweep is already running.")
            return False
        if report.offline:
            print(f"⚠️  Remote store unavailable; {report.deferred} records remain pending.")
            return False

        print(f"✓ Sweep finished: {report.synced} synced, {report.adopted_remote} updated from remote, "
              f"{report.failed + report.exhausted} failed, {report.deferred} waiting for retry")
        return report.failed == 0 and report.exhausted == 0


class DedupCommand:
    """Command for finding and removing duplicate tasks."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    async def _dedup(self, apply_changes: bool):
        await self.context.tasks.load_all()
        return await self.context.deduplicator.deduplicate(dry_run=not apply_changes)

    def run(self, apply_changes: bool = False) -> bool:
        report = asyncio.run(self._dedup(apply_changes))

        if not report.clusters:
            print(f"✓ No duplicates among {report.total_scanned} tasks.")
            return True

        for cluster in report.clusters:
            print(f"\n'{cluster.survivor.text}' ({cluster.section}) keeps {cluster.survivor.id}")
            for task in cluster.duplicates:
                print(f"  {'would remove' if report.dry_run else 'removed'} {task.id}")

        if report.dry_run:
            print(f"\n{report.duplicates_removed} duplicates found. Run with --apply to remove them.")
        else:
            print(f"\n✓ Removed {report.duplicates_removed} duplicates, {report.survivors_remaining} tasks remain.")
        return True
