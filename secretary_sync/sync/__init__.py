"""Sync module for local-first writes and reconciliation."""

from .coordinator import (
    FetchResult,
    Subscription,
    SweepReport,
    SyncCoordinator,
    SyncStatusSnapshot,
    WriteResult,
)
from .deduplicator import DeduplicationEngine, DeduplicationReport, DuplicateCluster
from .retry import RetryPolicy

__all__ = [
    'SyncCoordinator', 'WriteResult', 'SweepReport', 'SyncStatusSnapshot', 'Subscription', 'FetchResult',
    'DeduplicationEngine', 'DeduplicationReport', 'DuplicateCluster',
    'RetryPolicy',
]
