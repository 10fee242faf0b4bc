"""Local-first write path and reconciliation with the remote store."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.exceptions import (
    RemoteAuthorizationError,
    RemoteTransientError,
    RemoteUnavailableError,
)
from ..core.models import (
    SYNC_RECORD_SUFFIX,
    EntityRef,
    SyncOperation,
    SyncRecord,
    SyncStatus,
)
from ..storage.local import LocalStore
from ..storage.remote import Document, RemoteStoreClient
from ..utils.date import parse_iso_datetime, to_iso, utc_now
from .retry import RetryPolicy

# Failures the sweep retries. Timeouts come from the client's own deadline.
TRANSIENT_ERRORS = (RemoteUnavailableError, RemoteTransientError, asyncio.TimeoutError, OSError)

LAST_SYNC_KEY = "last-sync"


def _modified_at(document: Optional[Document]) -> Optional[datetime]:
    if not document:
        return None
    return parse_iso_datetime(document.get("modifiedAt") or document.get("generatedAt"))


def local_wins(local_doc: Document, remote_doc: Document) -> bool:
    """Last-write-wins check; without timestamps the unpushed local copy wins."""
    local_time = _modified_at(local_doc)
    remote_time = _modified_at(remote_doc)
    if local_time is None or remote_time is None:
        return True
    return local_time >= remote_time


@dataclass
class WriteResult:
    """Outcome of a coordinated write or delete."""

    key: str
    local_saved: bool
    status: SyncStatus
    error: Optional[str] = None

    @property
    def synced(self) -> bool:
        return self.status == SyncStatus.SYNCED

    @property
    def at_risk(self) -> bool:
        """True when the change lives only in memory and on the pending remote push."""
        return not self.local_saved


@dataclass
class SweepReport:
    """Summary of one reconciliation pass."""

    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    attempted: int = 0
    synced: int = 0
    adopted_remote: int = 0
    failed: int = 0
    exhausted: int = 0
    deferred: int = 0
    offline: bool = False
    # Remote copies that replaced an older local value
    adopted: List[Tuple[EntityRef, Document]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startedAt": to_iso(self.started_at),
            "finishedAt": to_iso(self.finished_at),
            "attempted": self.attempted,
            "synced": self.synced,
            "adoptedRemote": self.adopted_remote,
            "failed": self.failed,
            "exhausted": self.exhausted,
            "deferred": self.deferred,
            "offline": self.offline,
        }


@dataclass
class SyncStatusSnapshot:
    """Point-in-time view of sync health for callers and listeners."""

    pending_count: int
    error_count: int
    last_sync_time: Optional[datetime]
    available: bool
    sync_in_progress: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pendingCount": self.pending_count,
            "errorCount": self.error_count,
            "lastSyncTime": to_iso(self.last_sync_time),
            "available": self.available,
            "syncInProgress": self.sync_in_progress,
        }


@dataclass
class FetchResult:
    """Documents gathered by a paginated remote read."""

    documents: List[Document] = field(default_factory=list)
    pages: int = 0
    cancelled: bool = False


StatusListener = Callable[[SyncStatusSnapshot], None]
AdoptionListener = Callable[[EntityRef, Document], None]


class Subscription:
    """Handle returned by ``subscribe``; call ``unsubscribe`` to stop notifications."""

    def __init__(self, listeners: List[Any], listener: Any):
        self._listeners = listeners
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._listener in self._listeners

    def unsubscribe(self) -> None:
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)


class SyncCoordinator:
    """
    Dual-writes records to the local store and the remote store.

    Every mutation lands in the local store first and is then pushed to the
    remote store. Records that could not be pushed stay ``pending`` under
    their ``<key>-synced`` companion and are replayed by ``sweep``.
    """

    def __init__(self,
                 local: LocalStore,
                 remote: Optional[RemoteStoreClient] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 logger: Optional[logging.Logger] = None):
        self.local = local
        self.remote = remote
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger or logging.getLogger(__name__)

        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._listeners: List[StatusListener] = []
        self._adoption_listeners: List[AdoptionListener] = []
        self._sync_in_progress = False

        # Changes the local store refused (quota, disk); kept so the sweep can push them
        self._unsaved_documents: Dict[str, Document] = {}
        self._unsaved_records: Dict[str, SyncRecord] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @property
    def remote_available(self) -> bool:
        return self.remote is not None and self.remote.is_available()

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    def _key_lock(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    def _load_record(self, key: str) -> Optional[SyncRecord]:
        if key in self._unsaved_records:
            return self._unsaved_records[key]
        data = self.local.get(f"{key}{SYNC_RECORD_SUFFIX}")
        if not isinstance(data, dict):
            return None
        return SyncRecord.from_dict(data, key)

    def _save_record(self, record: SyncRecord) -> None:
        if self.local.set(f"{record.key}{SYNC_RECORD_SUFFIX}", record.to_dict()):
            self._unsaved_records.pop(record.key, None)
        else:
            self._unsaved_records[record.key] = record

    def _drop_record(self, key: str) -> None:
        self._unsaved_records.pop(key, None)
        self.local.remove(f"{key}{SYNC_RECORD_SUFFIX}")

    def local_document(self, ref: EntityRef) -> Optional[Document]:
        """Latest local value of a record, including changes the local store refused."""
        if ref.local_key in self._unsaved_documents:
            return self._unsaved_documents[ref.local_key]
        value = self.local.get(ref.local_key)
        return value if isinstance(value, dict) else None

    def local_documents(self, entity_type: str) -> Dict[EntityRef, Document]:
        """Every locally held document of one entity type, keyed by its ref."""
        documents: Dict[EntityRef, Document] = {}
        keys = set(self.local.keys(f"{entity_type}-")) | set(self._unsaved_documents)
        for key in sorted(keys):
            if key.endswith(SYNC_RECORD_SUFFIX):
                continue
            ref = EntityRef.from_local_key(key)
            if ref is None or ref.entity_type != entity_type:
                continue
            document = self.local_document(ref)
            if document is not None:
                documents[ref] = document
        return documents

    def _store_locally(self, ref: EntityRef, document: Document) -> bool:
        if self.local.set(ref.local_key, document):
            self._unsaved_documents.pop(ref.local_key, None)
            return True
        self.logger.warning("Local save failed for %s, keeping it for the next sweep: %s",
                            ref.local_key, self.local.last_error)
        self._unsaved_documents[ref.local_key] = document
        return False

    def _all_records(self) -> List[SyncRecord]:
        records: Dict[str, SyncRecord] = {}
        for sync_key in self.local.keys():
            if not sync_key.endswith(SYNC_RECORD_SUFFIX):
                continue
            key = sync_key[: -len(SYNC_RECORD_SUFFIX)]
            record = self._load_record(key)
            if record is not None:
                records[key] = record
        records.update(self._unsaved_records)
        return [records[key] for key in sorted(records)]

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.get_sync_status()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self.logger.exception("Sync status listener failed")

    def _notify_adopted(self, ref: EntityRef, document: Document) -> None:
        for listener in list(self._adoption_listeners):
            try:
                listener(ref, document)
            except Exception:
                self.logger.exception("Adoption listener failed for %s", ref.local_key)

    async def _attempt(self, ref: EntityRef, record: SyncRecord,
                       document: Optional[Document], reconcile: bool = False) -> str:
        """
        Push one record to the remote store and update its SyncRecord.

        Returns one of ``synced``, ``adopted``, ``failed``, ``exhausted``.
        Authorization failures are recorded and re-raised.
        """
        record.last_attempt = utc_now()
        record.attempts += 1

        try:
            if record.operation == SyncOperation.DELETE:
                await self.remote.delete(ref.collection, ref.document_id)
            else:
                if reconcile:
                    remote_doc = await self.remote.get(ref.collection, ref.document_id)
                    if remote_doc is not None and not local_wins(document, remote_doc):
                        self.logger.info("Remote copy of %s is newer, keeping it", ref.local_key)
                        self._store_locally(ref, remote_doc)
                        self._mark_synced(record)
                        return "adopted"
                await self.remote.create_or_replace(ref.collection, ref.document_id, document)
        except RemoteAuthorizationError as exc:
            record.status = SyncStatus.PENDING
            record.error = str(exc)
            self._save_record(record)
            self.logger.error("Remote store rejected %s: %s", ref.local_key, exc)
            raise
        except TRANSIENT_ERRORS as exc:
            record.error = str(exc) or exc.__class__.__name__
            if self.retry_policy.should_retry(record.attempts):
                record.status = SyncStatus.PENDING
                outcome = "failed"
            else:
                record.status = SyncStatus.ERROR
                outcome = "exhausted"
            self._save_record(record)
            self.logger.error("Failed to sync %s (attempt %d): %s",
                              ref.local_key, record.attempts, record.error)
            return outcome

        if record.operation == SyncOperation.DELETE:
            self._drop_record(ref.local_key)
            self.logger.debug("Remote delete confirmed for %s", ref.local_key)
        else:
            self._mark_synced(record)
            self.logger.debug("Synced %s to %s", ref.local_key, ref.collection)
        return "synced"

    def _mark_synced(self, record: SyncRecord) -> None:
        record.status = SyncStatus.SYNCED
        record.synced_at = utc_now()
        record.error = None
        record.attempts = 0
        self._save_record(record)

    def _set_last_sync(self, when: datetime) -> None:
        self.local.set(LAST_SYNC_KEY, to_iso(when))

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------
    async def write(self, ref: EntityRef, document: Document,
                    on_local_change: Optional[Callable[[], None]] = None) -> WriteResult:
        """
        Save a document locally, then push it to the remote store.

        Never fails because of connectivity: an unreachable or failing
        remote leaves the record ``pending``. ``on_local_change`` runs under
        the key lock right after the local save, before the remote push.

        Raises:
            RemoteAuthorizationError: if the remote store rejects the write;
                the local copy is kept
        """
        async with self._key_lock(ref.local_key):
            saved = self._store_locally(ref, document)
            record = SyncRecord(key=ref.local_key)
            self._save_record(record)
            if on_local_change is not None:
                on_local_change()

            if not self.remote_available:
                self.logger.debug("Remote store unavailable, %s saved locally as pending", ref.local_key)
                self._notify()
                return WriteResult(ref.local_key, saved, record.status)

            try:
                await self._attempt(ref, record, document)
            finally:
                self._notify()
            return WriteResult(ref.local_key, saved, record.status, record.error)

    async def delete(self, ref: EntityRef,
                     on_local_change: Optional[Callable[[], None]] = None) -> WriteResult:
        """
        Remove a record locally and from the remote store.

        The delete is tracked as a pending SyncRecord until the remote
        store confirms it.
        """
        async with self._key_lock(ref.local_key):
            self._unsaved_documents.pop(ref.local_key, None)
            removed = self.local.remove(ref.local_key)
            record = SyncRecord(key=ref.local_key, operation=SyncOperation.DELETE)
            self._save_record(record)
            if on_local_change is not None:
                on_local_change()

            if not self.remote_available:
                self.logger.debug("Remote store unavailable, delete of %s queued", ref.local_key)
                self._notify()
                return WriteResult(ref.local_key, removed, record.status)

            try:
                outcome = await self._attempt(ref, record, None)
            finally:
                self._notify()
            status = SyncStatus.SYNCED if outcome == "synced" else record.status
            return WriteResult(ref.local_key, removed, status, record.error)

    def cache_remote(self, ref: EntityRef, document: Document) -> bool:
        """
        Cache a document fetched from the remote store.

        A pending local change that is at least as new as the remote copy
        (or a pending delete) is kept instead.

        Returns:
            True if the remote copy was cached
        """
        record = self._load_record(ref.local_key)
        if record is not None and record.status != SyncStatus.SYNCED:
            if record.operation == SyncOperation.DELETE:
                return False
            local_doc = self.local_document(ref)
            if local_doc is not None and local_wins(local_doc, document):
                self.logger.debug("Keeping pending local copy of %s", ref.local_key)
                return False

        if not self.local.set(ref.local_key, document):
            self.logger.warning("Could not cache remote copy of %s: %s", ref.local_key, self.local.last_error)
            return False
        self._unsaved_documents.pop(ref.local_key, None)
        self._mark_synced(record or SyncRecord(key=ref.local_key))
        return True

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------
    async def read(self, ref: EntityRef) -> Optional[Document]:
        """
        Read a record, preferring the remote store when it is reachable.

        Falls back to the local cache when the remote store is unavailable,
        fails or has no copy.
        """
        if self.remote_available:
            try:
                remote_doc = await self.remote.get(ref.collection, ref.document_id)
            except TRANSIENT_ERRORS as exc:
                self.logger.warning("Remote read of %s failed, using local cache: %s", ref.local_key, exc)
            else:
                if remote_doc is not None:
                    if self.cache_remote(ref, remote_doc):
                        return remote_doc
                    return self.local_document(ref)
        return self.local_document(ref)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def pending_records(self) -> List[SyncRecord]:
        """SyncRecords still waiting for the remote store."""
        return [r for r in self._all_records() if r.status == SyncStatus.PENDING]

    def error_records(self) -> List[SyncRecord]:
        return [r for r in self._all_records() if r.status == SyncStatus.ERROR]

    def get_record(self, key: str) -> Optional[SyncRecord]:
        return self._load_record(key)

    async def sweep(self) -> Optional[SweepReport]:
        """
        Replay every pending record against the remote store.

        Returns:
            A SweepReport, or None if a sweep is already running
        """
        if self._sync_in_progress:
            self.logger.debug("Sweep already running, ignoring trigger")
            return None

        report = SweepReport()
        if not self.remote_available:
            report.offline = True
            report.deferred = len(self.pending_records())
            report.finished_at = utc_now()
            self.logger.info("Remote store unavailable, %d records left pending", report.deferred)
            return report

        self._sync_in_progress = True
        self._notify()
        try:
            now = utc_now()
            for record in self.pending_records():
                if not self.retry_policy.is_due(record, now):
                    report.deferred += 1
                    continue

                ref = EntityRef.from_local_key(record.key)
                if ref is None:
                    self.logger.warning("Dropping sync record for unknown key %s", record.key)
                    self._drop_record(record.key)
                    continue

                async with self._key_lock(record.key):
                    current = self._load_record(record.key)
                    if current is None or current.status != SyncStatus.PENDING:
                        continue

                    document = None
                    if current.operation == SyncOperation.UPSERT:
                        document = self.local_document(ref)
                        if document is None:
                            self.logger.warning("No local value for pending %s, dropping record", record.key)
                            self._drop_record(record.key)
                            continue

                    report.attempted += 1
                    try:
                        outcome = await self._attempt(ref, current, document, reconcile=True)
                    except RemoteAuthorizationError:
                        report.failed += 1
                        continue

                    if outcome == "synced":
                        report.synced += 1
                    elif outcome == "adopted":
                        report.adopted_remote += 1
                        adopted_doc = self.local_document(ref)
                        if adopted_doc is not None:
                            report.adopted.append((ref, adopted_doc))
                            self._notify_adopted(ref, adopted_doc)
                    elif outcome == "exhausted":
                        report.exhausted += 1
                    else:
                        report.failed += 1
        finally:
            self._sync_in_progress = False
            report.finished_at = utc_now()
            self._set_last_sync(report.finished_at)
            self._notify()

        self.logger.info("Sweep finished: %d attempted, %d synced, %d failed, %d deferred",
                         report.attempted, report.synced + report.adopted_remote,
                         report.failed + report.exhausted, report.deferred)
        return report

    def retry_errors(self) -> int:
        """Move records that exhausted their attempts back to ``pending``."""
        count = 0
        for record in self.error_records():
            record.status = SyncStatus.PENDING
            record.attempts = 0
            self._save_record(record)
            count += 1
        if count:
            self.logger.info("Re-queued %d failed sync records", count)
            self._notify()
        return count

    async def run_periodic(self, interval: float, stop_event: asyncio.Event) -> None:
        """Sweep every ``interval`` seconds until ``stop_event`` is set."""
        while not stop_event.is_set():
            try:
                await self.sweep()
            except Exception:
                # Background pass; the next cycle retries
                self.logger.exception("Periodic sweep failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def fetch_all(self,
                        collection: str,
                        field_name: str,
                        op: str,
                        value: Any,
                        order_by: Optional[str] = None,
                        page_size: Optional[int] = None,
                        cancel_event: Optional[asyncio.Event] = None,
                        on_page: Optional[Callable[[List[Document]], None]] = None) -> FetchResult:
        """
        Read every page of a field query, one cursor at a time.

        ``on_page`` is called with each page before the next one is
        requested; setting ``cancel_event`` stops the loop between pages.

        Raises:
            RemoteUnavailableError: if no remote store is reachable
        """
        if not self.remote_available:
            raise RemoteUnavailableError("Remote store is not available")

        result = FetchResult()
        cursor: Optional[str] = None
        while True:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                self.logger.info("Paginated read of %s cancelled after %d pages", collection, result.pages)
                break

            page = await self.remote.query_by_field(
                collection, field_name, op, value,
                order_by=order_by, page_size=page_size, cursor=cursor,
            )
            result.pages += 1
            result.documents.extend(page.documents)
            if on_page is not None:
                on_page(page.documents)

            if not page.has_more or not page.next_cursor:
                break
            cursor = page.next_cursor

        self.logger.debug("Fetched %d documents from %s in %d pages",
                          len(result.documents), collection, result.pages)
        return result

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def get_sync_status(self) -> SyncStatusSnapshot:
        records = self._all_records()
        last_sync = self.local.get(LAST_SYNC_KEY)
        return SyncStatusSnapshot(
            pending_count=sum(1 for r in records if r.status == SyncStatus.PENDING),
            error_count=sum(1 for r in records if r.status == SyncStatus.ERROR),
            last_sync_time=parse_iso_datetime(last_sync) if isinstance(last_sync, str) else None,
            available=self.remote_available,
            sync_in_progress=self._sync_in_progress,
        )

    def subscribe(self, listener: StatusListener) -> Subscription:
        """Register a listener called with a SyncStatusSnapshot on every status change."""
        self._listeners.append(listener)
        return Subscription(self._listeners, listener)

    def watch_adopted(self, listener: AdoptionListener) -> Subscription:
        """Register a listener called with ``(ref, document)`` when a sweep adopts a newer remote copy."""
        self._adoption_listeners.append(listener)
        return Subscription(self._adoption_listeners, listener)

    def queue_untracked(self) -> int:
        """
        Mark every local entity without a SyncRecord as pending.

        Used after records were written to the local store directly, for
        example by a backup import.

        Returns:
            Number of records queued
        """
        queued = 0
        for key in self.local.keys():
            if key.endswith(SYNC_RECORD_SUFFIX) or EntityRef.from_local_key(key) is None:
                continue
            if self._load_record(key) is not None:
                continue
            self._save_record(SyncRecord(key=key))
            queued += 1
        if queued:
            self.logger.info("Queued %d untracked local records for sync", queued)
            self._notify()
        return queued
