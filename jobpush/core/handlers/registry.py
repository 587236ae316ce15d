# jobpush/core/handlers/registry.py
"""
Event-kind → handler registration table.

Usage at startup::

    registry = build_default_registry()
    ctx = TriggerContext(store=store, sender=sender)
    outcome = await registry.dispatch(event, ctx)

Collaborators travel in ``TriggerContext`` so tests and alternative hosts
can substitute their own store and sender.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from jobpush.core.constants import EVENT_JOB_CREATED, EVENT_JOB_UPDATED, JOBS_COLLECTION, WORKER_PAGE_SIZE
from jobpush.core.dispatch.outcome import DispatchOutcome, OutcomeStatus
from jobpush.core.ports import DocumentQuery, PushSender
from jobpush.infra.logging_config import get_logger
from jobpush.infra.metrics import NotificationMetrics

logger = get_logger(__name__)


@dataclass
class ChangeEvent:
    """One document change as delivered by the hosting runtime."""
    kind: str
    document_id: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    event_id: str | None = None
    collection: str = JOBS_COLLECTION


@dataclass
class TriggerContext:
    """Per-process collaborators injected into every handler call."""
    store: DocumentQuery
    sender: PushSender
    worker_page_size: int = WORKER_PAGE_SIZE


TriggerHandler = Callable[[ChangeEvent, TriggerContext], Awaitable[DispatchOutcome]]


async def handle_job_created(event: ChangeEvent, ctx: TriggerContext) -> DispatchOutcome:
    """``jobs.created`` → fan-out to available workers."""
    from jobpush.core.dispatch.workers import notify_workers_of_job_request

    return await notify_workers_of_job_request(
        event.document_id,
        event.after,
        store=ctx.store,
        sender=ctx.sender,
        event_id=event.event_id,
        page_size=ctx.worker_page_size,
    )


async def handle_job_updated(event: ChangeEvent, ctx: TriggerContext) -> DispatchOutcome:
    """``jobs.updated`` → status push to the customer."""
    from jobpush.core.dispatch.customers import notify_customer_of_job_status

    return await notify_customer_of_job_status(
        event.document_id,
        event.before,
        event.after,
        store=ctx.store,
        sender=ctx.sender,
        event_id=event.event_id,
    )


class TriggerRegistry:
    """Maps event kinds to handler coroutines."""

    def __init__(self) -> None:
        self._handlers: dict[str, TriggerHandler] = {}

    def register(self, kind: str, handler: TriggerHandler) -> None:
        if kind in self._handlers:
            logger.warning("Replacing handler for event kind '%s'", kind)
        self._handlers[kind] = handler

    def handler_for(self, kind: str) -> TriggerHandler | None:
        return self._handlers.get(kind)

    def kinds(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, event: ChangeEvent, ctx: TriggerContext) -> DispatchOutcome:
        """
        Run the handler registered for ``event.kind``.

        Never raises: unknown kinds are reported as UNHANDLED and a handler
        that breaks its own no-raise contract is logged and reported as FAILED.
        """
        NotificationMetrics.trigger_received(event.kind)
        logger.debug(
            "Dispatching %s for %s/%s", event.kind, event.collection, event.document_id,
            extra={"event_kind": event.kind, "event_id": event.event_id, "job_id": event.document_id},
        )

        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.warning(
                "No handler registered for event kind '%s'. Known kinds: %s",
                event.kind, ", ".join(self.kinds()),
                extra={"event_kind": event.kind, "event_id": event.event_id},
            )
            return DispatchOutcome(OutcomeStatus.UNHANDLED, reason=f"unknown event kind {event.kind}")

        with NotificationMetrics.track_handler(event.kind):
            try:
                outcome = await handler(event, ctx)
            except Exception as exc:
                logger.error(
                    "Handler for '%s' raised: %s",
                    event.kind, exc,
                    extra={"event_kind": event.kind, "event_id": event.event_id, "job_id": event.document_id},
                    exc_info=True,
                )
                outcome = DispatchOutcome.error(f"{exc.__class__.__name__}: {exc}"[:200])

        if outcome.status == OutcomeStatus.FAILED:
            NotificationMetrics.handler_failed(event.kind)

        return outcome


def build_default_registry() -> TriggerRegistry:
    """Registry with the two job triggers bound."""
    registry = TriggerRegistry()
    registry.register(EVENT_JOB_CREATED, handle_job_created)
    registry.register(EVENT_JOB_UPDATED, handle_job_updated)
    logger.info("Registered trigger handlers: %s", registry.kinds())
    return registry
