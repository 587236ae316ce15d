# jobpush/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================================
# ENUMS
# ============================================================================

class JobStatus(str, Enum):
    """
    Known job workflow states. The store may hold any string; only
    ``pending`` drives behavior here.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserRole(str, Enum):
    WORKER = "worker"
    CUSTOMER = "customer"


class JobRecordError(ValueError):
    """A job record is missing data needed to build a notification."""


# ============================================================================
# RECORDS (read-only views of store documents)
# ============================================================================

@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass
class Job:
    """
    Snapshot of a ``jobs`` document.

    Created and mutated outside this service; parsed per event and
    never written back.
    """
    job_id: str
    status: Optional[str]
    customer_id: Optional[str] = None
    location: Optional[Location] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.status == JobStatus.PENDING.value

    def require_location(self) -> Location:
        if self.location is None:
            raise JobRecordError(f"Job {self.job_id} has no usable location")
        return self.location

    @classmethod
    def from_record(cls, job_id: str, data: Dict[str, Any] | None) -> "Job":
        data = data or {}
        return cls(
            job_id=job_id,
            status=data.get("status"),
            customer_id=data.get("customerId"),
            location=_parse_location(data.get("location")),
            raw=data,
        )


@dataclass
class User:
    """Snapshot of a ``users`` document (worker or customer)."""
    user_id: str
    role: Optional[str] = None
    is_available: bool = False
    fcm_token: Optional[str] = None

    @property
    def has_token(self) -> bool:
        return bool(self.fcm_token)

    @classmethod
    def from_record(cls, user_id: str, data: Dict[str, Any] | None) -> "User":
        data = data or {}
        token = data.get("fcmToken")
        return cls(
            user_id=user_id,
            role=data.get("role"),
            is_available=data.get("isAvailable") is True,
            fcm_token=token if isinstance(token, str) and token else None,
        )


@dataclass(frozen=True)
class NotificationPayload:
    """Push content built per event; never persisted."""
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


def _parse_location(value: Any) -> Optional[Location]:
    if not isinstance(value, dict):
        return None
    lat = value.get("latitude")
    lon = value.get("longitude")
    # bool is an int subclass; a True latitude is a broken record
    if isinstance(lat, bool) or isinstance(lon, bool):
        return None
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return None
    return Location(latitude=lat, longitude=lon)
