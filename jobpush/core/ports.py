from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Optional, Protocol, Sequence

from jobpush.core.domain import NotificationPayload


# ============================================================================
# QUERY COLLABORATOR (document store)
# ============================================================================

class EqualityFilter(NamedTuple):
    field: str
    value: Any


@dataclass(frozen=True)
class Document:
    id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class Page:
    """
    One page of query results in primary-key order.

    ``cursor`` is the id of the last document, or None when the page is
    empty. Passing it back as ``after`` continues strictly after that
    document.
    """
    documents: list[Document]
    cursor: Optional[str]

    @classmethod
    def of(cls, documents: list[Document]) -> "Page":
        return cls(documents=documents, cursor=documents[-1].id if documents else None)

    def __len__(self) -> int:
        return len(self.documents)


class DocumentQuery(Protocol):
    async def query(
        self,
        collection: str,
        filters: Sequence[EqualityFilter],
        page_size: int,
        after: Optional[str] = None,
    ) -> Page: ...

    async def get_by_id(self, collection: str, document_id: str) -> Optional[Document]:
        """None => document does not exist"""
        ...


# ============================================================================
# NOTIFICATION SENDER COLLABORATOR
# ============================================================================

@dataclass
class MulticastResult:
    success_count: int = 0
    failure_count: int = 0
    # Tokens the delivery service reported as unregistered/invalid (log only)
    invalid_tokens: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.success_count + self.failure_count


class PushSender(Protocol):
    @property
    def name(self) -> str: ...

    async def send_to_one(self, token: str, payload: NotificationPayload) -> bool:
        """True => accepted by the delivery service"""
        ...

    async def send_to_many(self, tokens: Sequence[str], payload: NotificationPayload) -> MulticastResult: ...
