"""
In-memory remote store used by the test suite.
"""

import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from secretary_sync.storage.remote import QueryPage, matches_field, sort_documents


class FakeRemoteStore:
    """Implements the remote store port on plain dicts.

    Supports an availability toggle, per-operation failure injection and
    holding an operation until released. Every call is recorded in
    ``calls``; ``events`` logs the start and end of each document write and
    ``written`` keeps the written documents in completion order.
    """

    def __init__(self, available: bool = True):
        self.available = available
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self.calls: List[Tuple[str, str, Any]] = []
        self._failures: Dict[str, List[Exception]] = defaultdict(list)
        self._holds: Dict[str, asyncio.Event] = {}
        self.events: List[Tuple[str, str]] = []
        self.written: List[Dict[str, Any]] = []

    def is_available(self) -> bool:
        return self.available

    def fail(self, operation: str, exc: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``exc``."""
        self._failures[operation].extend([exc] * times)

    def _enter(self, operation: str, collection: str, detail: Any = None) -> None:
        self.calls.append((operation, collection, detail))
        if self._failures[operation]:
            raise self._failures[operation].pop(0)

    def hold(self, operation: str) -> asyncio.Event:
        """Block calls of ``operation`` until the returned event is set."""
        gate = asyncio.Event()
        self._holds[operation] = gate
        return gate

    async def _wait(self, operation: str) -> None:
        gate = self._holds.get(operation)
        if gate is not None:
            await gate.wait()

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def seed(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        self.collections[collection][doc_id] = copy.deepcopy(document)

    async def create_or_replace(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        self._enter("create_or_replace", collection, doc_id)
        self.events.append(("start", doc_id))
        await self._wait("create_or_replace")
        self.collections[collection][doc_id] = copy.deepcopy(document)
        self.written.append(copy.deepcopy(document))
        self.events.append(("end", doc_id))

    async def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        self._enter("update", collection, doc_id)
        self.collections[collection].setdefault(doc_id, {}).update(copy.deepcopy(partial))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._enter("delete", collection, doc_id)
        await self._wait("delete")
        self.collections[collection].pop(doc_id, None)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        self._enter("get", collection, doc_id)
        document = self.collections[collection].get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def query_by_field(self, collection, field, op, value, order_by=None, page_size=None, cursor=None):
        self._enter("query_by_field", collection, (field, op, value, cursor))
        documents = [d for d in self.collections[collection].values() if matches_field(d, field, op, value)]
        documents = sort_documents(documents, order_by)

        offset = int(cursor) if cursor else 0
        size = page_size or len(documents)
        page = documents[offset:offset + size]
        next_offset = offset + size
        has_more = next_offset < len(documents)
        return QueryPage(copy.deepcopy(page), str(next_offset) if has_more else None, has_more)


def make_remote(config) -> FakeRemoteStore:
    """Factory referenced as ``tests.fakes:make_remote`` in configs."""
    return FakeRemoteStore()


def not_a_client(config) -> object:
    return object()
