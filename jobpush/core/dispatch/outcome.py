# jobpush/core/dispatch/outcome.py
from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum


class OutcomeStatus(str, Enum):
    SKIPPED = "skipped"              # precondition not met (not pending, status unchanged)
    NO_RECIPIENTS = "no_recipients"  # nobody to notify (no workers, no customer, no token)
    SENT = "sent"                    # send call issued (see counts)
    FAILED = "failed"                # collaborator raised; logged and swallowed
    UNHANDLED = "unhandled"          # no handler registered for the event kind


@dataclass
class DispatchOutcome:
    status: OutcomeStatus
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    reason: str | None = None

    @classmethod
    def skipped(cls, reason: str) -> "DispatchOutcome":
        return cls(OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def no_recipients(cls, reason: str) -> "DispatchOutcome":
        return cls(OutcomeStatus.NO_RECIPIENTS, reason=reason)

    @classmethod
    def error(cls, reason: str) -> "DispatchOutcome":
        return cls(OutcomeStatus.FAILED, reason=reason)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data
