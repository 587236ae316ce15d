# jobpush/core/dispatch/workers.py
"""
Worker fan-out: tell every available worker about a new pending job.

Workers are read from the ``users`` collection in pages of
``WORKER_PAGE_SIZE`` using keyset pagination. Pages are fetched one after
another; the next query is only issued once the previous page has been
consumed, so at most one page of documents is held at a time. The loop
ends on the first empty page, which makes an empty worker set cost exactly
one query and keeps coverage independent of the worker count.

All collected tokens go out in a single ``send_to_many`` call. Splitting
into provider-sized batches is the sender's job.
"""
from __future__ import annotations

from typing import Any, Optional

from jobpush.core.constants import NEW_JOB_TITLE, USERS_COLLECTION, WORKER_PAGE_SIZE, EVENT_JOB_CREATED
from jobpush.core.dispatch.outcome import DispatchOutcome, OutcomeStatus
from jobpush.core.domain import Job, NotificationPayload, User, UserRole
from jobpush.core.ports import DocumentQuery, EqualityFilter, PushSender
from jobpush.infra.logging_config import LogContext, get_logger
from jobpush.infra.metrics import NotificationMetrics

logger = get_logger(__name__)

AVAILABLE_WORKER_FILTERS = (
    EqualityFilter("role", UserRole.WORKER.value),
    EqualityFilter("isAvailable", True),
)


def build_new_job_payload(job: Job) -> NotificationPayload:
    """Raises JobRecordError when the job has no usable location."""
    location = job.require_location()
    return NotificationPayload(
        title=NEW_JOB_TITLE,
        body=f"A new job is available at location: {location.latitude}, {location.longitude}",
        data={"jobId": job.job_id, "event": EVENT_JOB_CREATED},
    )


async def collect_worker_tokens(
    store: DocumentQuery,
    *,
    page_size: int = WORKER_PAGE_SIZE,
) -> tuple[list[str], int]:
    """
    Page through all available workers and collect their push tokens.

    Returns:
        (tokens, pages_fetched); pages_fetched includes the final empty page.
    """
    tokens: list[str] = []
    cursor: Optional[str] = None
    pages = 0

    while True:
        page = await store.query(
            USERS_COLLECTION,
            AVAILABLE_WORKER_FILTERS,
            page_size,
            after=cursor,
        )
        pages += 1
        NotificationMetrics.worker_page_fetched()

        if not page.documents:
            break

        for doc in page.documents:
            worker = User.from_record(doc.id, doc.data)
            if worker.has_token:
                tokens.append(worker.fcm_token)

        cursor = page.cursor

    return tokens, pages


async def notify_workers_of_job_request(
    job_id: str,
    record: dict[str, Any] | None,
    *,
    store: DocumentQuery,
    sender: PushSender,
    event_id: str | None = None,
    page_size: int = WORKER_PAGE_SIZE,
) -> DispatchOutcome:
    """
    React to a newly created job.

    Non-pending jobs are ignored without touching the store. Any failure
    from the store or the sender is logged and reported as FAILED; nothing
    is raised to the caller.
    """
    log = LogContext(logger, event_id=event_id, event_kind=EVENT_JOB_CREATED, job_id=job_id)
    job = Job.from_record(job_id, record)

    if not job.is_pending:
        log.info(f"Job not pending (status={job.status!r}), workers not notified")
        return DispatchOutcome.skipped("status is not pending")

    try:
        tokens, pages = await collect_worker_tokens(store, page_size=page_size)

        if not tokens:
            log.info(f"No available workers with FCM tokens (pages={pages})")
            return DispatchOutcome.no_recipients("no available workers with tokens")

        payload = build_new_job_payload(job)
        result = await sender.send_to_many(tokens, payload)

        NotificationMetrics.worker_fanout(result.success_count, result.failure_count)
        log.info(
            f"Notifications sent to {result.success_count} of {len(tokens)} workers "
            f"(failed={result.failure_count}, pages={pages}, via={sender.name})"
        )
        if result.invalid_tokens:
            log.warning(f"{len(result.invalid_tokens)} worker tokens rejected as invalid")

        return DispatchOutcome(
            OutcomeStatus.SENT,
            attempted=len(tokens),
            succeeded=result.success_count,
            failed=result.failure_count,
        )

    except Exception as exc:
        log.error(f"Error notifying workers of job request: {exc}", exc_info=True)
        return DispatchOutcome.error(f"{exc.__class__.__name__}: {exc}"[:200])
