# tests/conftest.py
"""Pytest configuration, collaborator doubles and fixtures"""
import pytest
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from jobpush.core.domain import NotificationPayload  # noqa: E402
from jobpush.core.ports import Document, EqualityFilter, MulticastResult, Page  # noqa: E402
from jobpush.infra.metrics import get_metrics_collector  # noqa: E402


# ============================================================================
# DOCUMENT STORE DOUBLE
# ============================================================================

def _matches(data: dict, flt: EqualityFilter) -> bool:
    if flt.field not in data:
        return False
    value = data[flt.field]
    # True == 1 in Python; the store compares JSON types strictly
    if isinstance(value, bool) != isinstance(flt.value, bool):
        return False
    return value == flt.value


class InMemoryDocumentStore:
    """
    Dict-backed DocumentQuery with the same keyset semantics as the
    Postgres store: id ascending, ``after`` exclusive, cursor = last id.
    """

    def __init__(self):
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.query_calls: list[dict] = []
        self.lookup_calls: list[tuple[str, str]] = []
        self.query_error: Optional[BaseException] = None
        self.lookup_error: Optional[BaseException] = None

    def add(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[doc_id] = data

    async def query(
        self,
        collection: str,
        filters: Sequence[EqualityFilter],
        page_size: int,
        after: Optional[str] = None,
    ) -> Page:
        self.query_calls.append({
            "collection": collection,
            "filters": tuple(filters),
            "page_size": page_size,
            "after": after,
        })
        if self.query_error is not None:
            raise self.query_error

        matched = [
            Document(id=doc_id, data=data)
            for doc_id, data in sorted(self.collections.get(collection, {}).items())
            if (after is None or doc_id > after) and all(_matches(data, f) for f in filters)
        ]
        return Page.of(matched[:page_size])

    async def get_by_id(self, collection: str, document_id: str) -> Optional[Document]:
        self.lookup_calls.append((collection, document_id))
        if self.lookup_error is not None:
            raise self.lookup_error

        data = self.collections.get(collection, {}).get(document_id)
        return Document(id=document_id, data=data) if data is not None else None


# ============================================================================
# PUSH SENDER DOUBLE
# ============================================================================

class RecordingPushSender:
    """Records every send; tokens listed in ``invalid_tokens`` are rejected."""

    name = "recording"

    def __init__(self):
        self.one_calls: list[tuple[str, NotificationPayload]] = []
        self.many_calls: list[tuple[list[str], NotificationPayload]] = []
        self.deliver = True
        self.invalid_tokens: set[str] = set()
        self.error: Optional[BaseException] = None

    def is_configured(self) -> bool:
        return True

    async def send_to_one(self, token: str, payload: NotificationPayload) -> bool:
        self.one_calls.append((token, payload))
        if self.error is not None:
            raise self.error
        return self.deliver and token not in self.invalid_tokens

    async def send_to_many(self, tokens: Sequence[str], payload: NotificationPayload) -> MulticastResult:
        self.many_calls.append((list(tokens), payload))
        if self.error is not None:
            raise self.error

        rejected = [t for t in tokens if t in self.invalid_tokens]
        return MulticastResult(
            success_count=len(tokens) - len(rejected),
            failure_count=len(rejected),
            invalid_tokens=rejected,
        )


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def reset_metrics():
    """Counters are process-global; start every test from zero"""
    get_metrics_collector().reset()
    yield


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def sender():
    return RecordingPushSender()


@pytest.fixture
def seed_workers(store):
    """Add ``count`` available workers with tokens; ids sort in insertion order."""

    def _seed(count: int, prefix: str = "worker") -> list[str]:
        tokens = []
        for i in range(count):
            token = f"token-{prefix}-{i:05d}"
            store.add("users", f"{prefix}-{i:05d}", {
                "role": "worker",
                "isAvailable": True,
                "fcmToken": token,
            })
            tokens.append(token)
        return tokens

    return _seed


@pytest.fixture
def pending_job():
    """Record of a freshly created pending job"""
    return {
        "status": "pending",
        "customerId": "cust1",
        "location": {"latitude": 40.0, "longitude": -75.0},
    }
