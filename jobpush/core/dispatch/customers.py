# jobpush/core/dispatch/customers.py
"""Customer push on job status change."""
from __future__ import annotations

from typing import Any

from jobpush.core.constants import EVENT_JOB_UPDATED, JOB_STATUS_TITLE, USERS_COLLECTION
from jobpush.core.dispatch.outcome import DispatchOutcome, OutcomeStatus
from jobpush.core.domain import Job, NotificationPayload, User
from jobpush.core.ports import DocumentQuery, PushSender
from jobpush.infra.logging_config import LogContext, get_logger, mask_token
from jobpush.infra.metrics import NotificationMetrics

logger = get_logger(__name__)


def build_status_payload(job: Job) -> NotificationPayload:
    return NotificationPayload(
        title=JOB_STATUS_TITLE,
        body=f"Your job is now {job.status}.",
        data={"jobId": job.job_id, "event": EVENT_JOB_UPDATED, "status": str(job.status)},
    )


async def notify_customer_of_job_status(
    job_id: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    *,
    store: DocumentQuery,
    sender: PushSender,
    event_id: str | None = None,
) -> DispatchOutcome:
    """
    React to an updated job.

    Only a change of ``status`` triggers a lookup. A missing customer or a
    customer without a token is an expected, logged no-op.
    """
    previous = Job.from_record(job_id, before)
    job = Job.from_record(job_id, after)
    log = LogContext(
        logger,
        event_id=event_id,
        event_kind=EVENT_JOB_UPDATED,
        job_id=job_id,
        customer_id=job.customer_id,
    )

    if job.status == previous.status:
        log.info("Job status unchanged, customer not notified")
        return DispatchOutcome.skipped("status unchanged")

    if not job.customer_id:
        log.info("Job has no customerId, customer not notified")
        return DispatchOutcome.no_recipients("job has no customer")

    try:
        doc = await store.get_by_id(USERS_COLLECTION, job.customer_id)
        if doc is None:
            log.info("Customer document does not exist.")
            return DispatchOutcome.no_recipients("customer not found")

        customer = User.from_record(doc.id, doc.data)
        if not customer.has_token:
            log.info("Customer does not have an FCM token.")
            return DispatchOutcome.no_recipients("customer has no token")

        payload = build_status_payload(job)
        delivered = await sender.send_to_one(customer.fcm_token, payload)

        NotificationMetrics.customer_push(delivered)
        if delivered:
            log.info(
                f"Notification sent to customer: {job.customer_id} "
                f"(status {previous.status!r} -> {job.status!r})"
            )
        else:
            log.warning(
                f"Customer notification rejected by {sender.name}: "
                f"token={mask_token(customer.fcm_token)}"
            )

        return DispatchOutcome(
            OutcomeStatus.SENT,
            attempted=1,
            succeeded=1 if delivered else 0,
            failed=0 if delivered else 1,
        )

    except Exception as exc:
        log.error(f"Error notifying customer of job status: {exc}", exc_info=True)
        return DispatchOutcome.error(f"{exc.__class__.__name__}: {exc}"[:200])
