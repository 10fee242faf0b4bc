"""Task deduplication module for secretary-sync.

Detects and removes duplicate task records. Duplicates are tasks in the
same section whose text is identical after case and whitespace
normalization.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging
from collections import defaultdict

from ..core.models import EntityRef, Section, Task
from ..index.engine import TaskIndexEngine
from ..utils.date import parse_iso_datetime, to_iso, utc_now
from ..utils.text import normalize_text
from .coordinator import TRANSIENT_ERRORS, SyncCoordinator

LAST_RUN_KEY = "last-dedup"


@dataclass
class DuplicateCluster:
    """A group of tasks sharing one (section, normalized text) key."""
    section: str
    text: str
    survivor: Task
    duplicates: List[Task] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        """Total number of tasks in this cluster."""
        return len(self.duplicates) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.section,
            "text": self.text,
            "survivorId": self.survivor.id,
            "duplicateIds": [t.id for t in self.duplicates],
        }


@dataclass
class DeduplicationReport:
    """Results from a deduplication pass."""
    total_scanned: int = 0
    duplicates_removed: int = 0
    survivors_remaining: int = 0
    clusters: List[DuplicateCluster] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalScanned": self.total_scanned,
            "duplicatesRemoved": self.duplicates_removed,
            "survivorsRemaining": self.survivors_remaining,
            "clusters": [c.to_dict() for c in self.clusters],
            "dryRun": self.dry_run,
        }


def survivor_rank(task: Task) -> Tuple[bool, int, datetime, str]:
    """
    Sort key for survivor selection; the smallest key survives.

    Completed beats incomplete, then more sub-items, then the earliest
    creation time, then the smallest id.
    """
    return (not task.completed, -task.sub_item_count, task.created_at, task.id)


class DeduplicationEngine:
    """Detects and collapses duplicate tasks."""

    def __init__(self,
                 index: TaskIndexEngine,
                 coordinator: SyncCoordinator,
                 logger: Optional[logging.Logger] = None):
        self.index = index
        self.coordinator = coordinator
        self.logger = logger or logging.getLogger(__name__)

    def analyze(self, tasks: Optional[List[Task]] = None) -> DeduplicationReport:
        """
        Group tasks into duplicate clusters without changing anything.

        Args:
            tasks: Tasks to inspect; defaults to every indexed task

        Returns:
            DeduplicationReport whose ``duplicates_removed`` counts the
            tasks that a real pass would delete
        """
        if tasks is None:
            tasks = self.index.all_tasks()

        self.logger.info("Analyzing %d tasks for duplicates", len(tasks))

        groups: Dict[Tuple[str, str], List[Task]] = defaultdict(list)
        for task in tasks:
            groups[task.dedup_key].append(task)

        clusters: List[DuplicateCluster] = []
        for (section, text), group in sorted(groups.items()):
            if len(group) < 2:
                continue
            ranked = sorted(group, key=survivor_rank)
            clusters.append(DuplicateCluster(section, text, ranked[0], ranked[1:]))

        duplicate_count = sum(len(c.duplicates) for c in clusters)
        report = DeduplicationReport(
            total_scanned=len(tasks),
            duplicates_removed=duplicate_count,
            survivors_remaining=len(tasks) - duplicate_count,
            clusters=clusters,
            dry_run=True,
        )

        self.logger.info("Found %d duplicate clusters with %d redundant tasks",
                         len(clusters), duplicate_count)
        return report

    async def deduplicate(self, dry_run: bool = False) -> DeduplicationReport:
        """
        Remove every non-survivor from the local store, the remote store
        and the index.

        Args:
            dry_run: If True, only report what would be deleted

        Raises:
            RemoteAuthorizationError: if the remote store rejects a delete;
                tasks handled before the failure stay deleted
        """
        report = self.analyze()
        report.dry_run = dry_run
        if dry_run:
            for cluster in report.clusters:
                for task in cluster.duplicates:
                    self.logger.info("Would delete duplicate task %s: %s", task.id, task.text)
            return report

        removed = 0
        try:
            for cluster in report.clusters:
                for task in cluster.duplicates:
                    try:
                        await self.coordinator.delete(EntityRef.task(task.id))
                    finally:
                        self.index.remove(task.id)
                    removed += 1
                    self.logger.info("Deleted duplicate task %s (kept %s)", task.id, cluster.survivor.id)
        finally:
            report.duplicates_removed = removed
            report.survivors_remaining = report.total_scanned - removed

        self.logger.info("Deduplication removed %d of %d tasks", removed, report.total_scanned)
        return report

    def last_run(self) -> Optional[datetime]:
        value = self.coordinator.local.get(LAST_RUN_KEY)
        return parse_iso_datetime(value) if isinstance(value, str) else None

    async def deduplicate_if_due(self, interval_hours: float = 24.0,
                                 now: Optional[datetime] = None) -> Optional[DeduplicationReport]:
        """
        Run ``deduplicate`` unless it already ran within ``interval_hours``.

        Returns:
            The report, or None when the pass was skipped
        """
        now = now or utc_now()
        last = self.last_run()
        if last is not None and now - last < timedelta(hours=interval_hours):
            self.logger.debug("Deduplication ran at %s, skipping", to_iso(last))
            return None

        report = await self.deduplicate()
        self.coordinator.local.set(LAST_RUN_KEY, to_iso(now))
        return report

    async def find_existing(self, section: Any, text: str) -> Optional[Task]:
        """
        Look for a task that creating ``(section, text)`` would duplicate.

        The index is checked first. Only on a miss, and only when the
        remote store is reachable, the remote store is queried by exact
        text; a hit there is cached locally and indexed.
        """
        section = Section.parse(section)
        existing = self.index.find_exact(section, text)
        if existing is not None:
            return existing

        if not self.coordinator.remote_available:
            return None

        wanted = normalize_text(text)
        try:
            page = await self.coordinator.remote.query_by_field("tasks", "text", "==", text.strip())
        except TRANSIENT_ERRORS as exc:
            self.logger.warning("Remote duplicate check failed, relying on the index: %s", exc)
            return None

        for document in page.documents:
            candidate = Task.from_dict(document)
            if candidate.section != section or normalize_text(candidate.text) != wanted:
                continue
            self.coordinator.cache_remote(EntityRef.task(candidate.id), candidate.to_dict())
            self.index.upsert(candidate)
            self.logger.debug("Found existing remote task %s for '%s'", candidate.id, text)
            return candidate
        return None
