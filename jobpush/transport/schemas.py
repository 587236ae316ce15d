# jobpush/transport/schemas.py
from typing import Any

from pydantic import BaseModel, Field


class JobCreatedIn(BaseModel):
    """Snapshot of a newly created ``jobs`` document."""
    job_id: str = Field(min_length=1, max_length=256)
    record: dict[str, Any]
    event_id: str | None = Field(default=None, max_length=256)


class JobUpdatedIn(BaseModel):
    """Before/after snapshots of an updated ``jobs`` document."""
    job_id: str = Field(min_length=1, max_length=256)
    before: dict[str, Any]
    after: dict[str, Any]
    event_id: str | None = Field(default=None, max_length=256)


class TriggerOut(BaseModel):
    ok: bool = True
    kind: str
    status: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    reason: str | None = None
