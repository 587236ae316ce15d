# jobpush/infra/pg_document_store_async.py
"""
Async PostgreSQL document store (asyncpg), read-only.

Documents live in one table owned by the job and user services::

    CREATE TABLE documents (
        collection  text  NOT NULL,
        id          text  NOT NULL,
        data        jsonb NOT NULL,
        PRIMARY KEY (collection, id)
    );
    CREATE INDEX documents_data_gin ON documents USING gin (data jsonb_path_ops);

Equality filters compile to a single JSONB containment predicate, which
keeps JSON types intact (``isAvailable = true`` does not match the string
``"true"``) and can use the GIN index. Pagination is keyset-based on the
primary key: ``id > $after ORDER BY id``.
"""
from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from jobpush.core.ports import Document, EqualityFilter, Page
from jobpush.infra.db_resilience_async import safe_db_conn
from jobpush.infra.logging_config import get_logger
from jobpush.infra.metrics import NotificationMetrics

logger = get_logger(__name__)


def _row_to_document(row) -> Document:
    """Convert an asyncpg Record to a Document."""
    data = row["data"]
    if isinstance(data, str):
        data = json.loads(data)
    return Document(id=str(row["id"]), data=data or {})


def build_containment(filters: Sequence[EqualityFilter]) -> str:
    """
    Merge equality filters into one JSONB containment document.

    Dotted field names address nested objects: ``location.city`` →
    ``{"location": {"city": ...}}``.
    """
    merged: dict[str, Any] = {}
    for flt in filters:
        target = merged
        parts = flt.field.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = flt.value
    return json.dumps(merged, sort_keys=True)


class AsyncPostgresDocumentStore:
    """Query collaborator backed by the ``documents`` table."""

    def __init__(self, table: str = "documents") -> None:
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid table name: {table!r}")
        self._table = table

    async def query(
        self,
        collection: str,
        filters: Sequence[EqualityFilter],
        page_size: int,
        after: Optional[str] = None,
    ) -> Page:
        """
        Fetch up to page_size documents matching all filters, strictly after
        the ``after`` id, in id order.
        """
        if page_size <= 0:
            raise ValueError("page_size must be positive")

        conditions = ["collection = $1"]
        params: list[Any] = [collection]

        if filters:
            params.append(build_containment(filters))
            conditions.append(f"data @> ${len(params)}::jsonb")

        if after is not None:
            params.append(after)
            conditions.append(f"id > ${len(params)}")

        params.append(page_size)
        sql = (
            f"SELECT id, data FROM {self._table} "
            f"WHERE {' AND '.join(conditions)} "
            f"ORDER BY id "
            f"LIMIT ${len(params)}"
        )

        async with safe_db_conn() as conn:
            rows = await conn.fetch(sql, *params)

        NotificationMetrics.store_query(collection)
        page = Page.of([_row_to_document(row) for row in rows])
        logger.debug(
            f"Query {collection}: filters={len(filters)}, after={after!r}, returned={len(page)}"
        )
        return page

    async def get_by_id(self, collection: str, document_id: str) -> Optional[Document]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                f"SELECT id, data FROM {self._table} WHERE collection = $1 AND id = $2",
                collection,
                document_id,
            )

        NotificationMetrics.store_lookup(collection)
        if row is None:
            return None
        return _row_to_document(row)
