"""
Port for the remote document store.

The core consumes this interface; the transport, authentication and
network stack behind it belong to the concrete client. Documents are
flat JSON-compatible dicts. Implementations signal failures with the
RemoteStoreError subclasses from core.exceptions.
"""

import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

Document = Dict[str, Any]

QUERY_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass
class QueryPage:
    """One page of a field query."""

    documents: List[Document] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


@runtime_checkable
class RemoteStoreClient(Protocol):
    """CRUD and paginated field queries against a cloud document store."""

    def is_available(self) -> bool:
        """Cheap capability check: configured, authenticated and believed online."""
        ...

    async def create_or_replace(self, collection: str, doc_id: str, document: Document) -> None: ...

    async def update(self, collection: str, doc_id: str, partial: Document) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    async def query_by_field(
        self,
        collection: str,
        field: str,
        op: str,
        value: Any,
        order_by: Optional[str] = None,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> QueryPage: ...


def matches_field(document: Document, field_name: str, op: str, value: Any) -> bool:
    """
    Evaluate a single field predicate the way the remote store does.

    Documents missing the field, or holding a value that cannot be
    compared with ``value``, never match.

    Raises:
        ValueError: for an unsupported operator
    """
    compare = QUERY_OPERATORS.get(op)
    if compare is None:
        raise ValueError(f"Unsupported query operator: {op!r}")
    if field_name not in document:
        return False
    try:
        return bool(compare(document[field_name], value))
    except TypeError:
        return False


def sort_documents(documents: List[Document], order_by: Optional[str]) -> List[Document]:
    """Order documents by ``"<field>"`` or ``"<field> desc"``; missing values sort first."""
    if not order_by:
        return list(documents)
    parts = order_by.split()
    field_name = parts[0]
    descending = len(parts) > 1 and parts[1].lower() == "desc"

    def sort_key(doc: Document):
        value = doc.get(field_name)
        return (value is not None, value if value is not None else "")

    return sorted(documents, key=sort_key, reverse=descending)
