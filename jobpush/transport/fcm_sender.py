# jobpush/transport/fcm_sender.py
"""
Firebase Cloud Messaging HTTP v1 outbound sender.

One ``messages:send`` call per device token::

    POST {fcm_api_base}/v1/projects/{project_id}/messages:send
    Authorization: Bearer <access token>

Error classification (FcmSendError.retryable):
- Token unregistered / invalid (404, 400) → NOT retryable (token is dead)
- Auth / sender mismatch (401, 403)       → NOT retryable (the caller refreshes its token)
- Quota exceeded (429)                    → retryable
- Server error (5xx), network, timeout    → retryable  (transient)

This module only classifies; nothing here retries.

HTTP session lifecycle:
- Uses the shared fcm session from jobpush.infra.http_client.
- Call close_all_sessions() during application shutdown.
"""
from __future__ import annotations

import asyncio

import aiohttp

from jobpush.config import settings
from jobpush.infra.http_client import get_fcm_session
from jobpush.infra.logging_config import get_logger, mask_token
from jobpush.infra.metrics import NotificationMetrics

logger = get_logger(__name__)

# FCM error codes meaning the registration token will never work again
INVALID_TOKEN_CODES = frozenset({"UNREGISTERED", "INVALID_ARGUMENT", "SENDER_ID_MISMATCH"})

_FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"


# ---------------------------------------------------------------------------
# Error type
# ---------------------------------------------------------------------------

class FcmSendError(Exception):
    """Error sending a message via the FCM HTTP v1 API.

    Attributes:
        status:     HTTP status code (0 for connection-level errors).
        error_code: FCM error code (``UNREGISTERED``, ``QUOTA_EXCEEDED``...)
                    or the Google RPC status when no FCM code is given.
        retryable:  Whether a later attempt could succeed.
    """

    def __init__(
        self,
        status: int,
        error_code: str | None,
        message: str,
        *,
        retryable: bool = False,
    ):
        self.status = status
        self.error_code = error_code
        self.retryable = retryable
        super().__init__(f"FCM API error {status} (code={error_code}): {message}")

    @property
    def invalid_token(self) -> bool:
        return self.error_code in INVALID_TOKEN_CODES


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _messages_url(project_id: str | None = None) -> str:
    project = project_id or settings.fcm_project_id
    return f"{settings.fcm_api_base.rstrip('/')}/v1/projects/{project}/messages:send"


def build_message(
    token: str,
    title: str,
    body: str,
    data: dict[str, str] | None = None,
) -> dict:
    """Build the ``{"message": ...}`` request body."""
    message: dict = {
        "token": token,
        "notification": {"title": title, "body": body},
    }
    if data:
        # FCM requires string values in the data map
        message["data"] = {str(k): str(v) for k, v in data.items()}
    return {"message": message}


def parse_error(status: int, body: dict | None) -> FcmSendError:
    """Map an FCM error response to FcmSendError."""
    error = (body or {}).get("error") or {}
    message = error.get("message") or "Unknown error"
    error_code = error.get("status")

    for detail in error.get("details") or []:
        if detail.get("@type") == _FCM_ERROR_TYPE and detail.get("errorCode"):
            error_code = detail["errorCode"]
            break

    if status == 429 or status >= 500:
        retryable = True
    elif error_code in ("UNAVAILABLE", "INTERNAL", "QUOTA_EXCEEDED"):
        retryable = True
    else:
        retryable = False

    return FcmSendError(status, error_code, message, retryable=retryable)


async def _safe_response_json(resp: aiohttp.ClientResponse) -> dict | None:
    """Parse JSON from response, returning None if body is not valid JSON."""
    try:
        return await resp.json(content_type=None)
    except Exception:
        logger.warning(f"FCM API returned non-JSON body: status={resp.status}")
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def send_message(
    token: str,
    title: str,
    body: str,
    *,
    access_token: str,
    data: dict[str, str] | None = None,
    project_id: str | None = None,
) -> str:
    """
    Send one notification to one device token.

    Args:
        token: FCM registration token of the device
        title: Notification title
        body: Notification body
        data: Optional string key/value map delivered to the app
        access_token: OAuth2 bearer token with the firebase.messaging scope
        project_id: Firebase project override (defaults to settings.fcm_project_id)

    Returns:
        FCM message name (``projects/<id>/messages/<message id>``)

    Raises:
        FcmSendError: On API errors (check .retryable / .invalid_token)
    """
    url = _messages_url(project_id)
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json; UTF-8",
    }
    payload = build_message(token, title, body, data)
    masked = mask_token(token)

    try:
        session = get_fcm_session()
        async with session.post(url, json=payload, headers=headers) as resp:
            result = await _safe_response_json(resp)

            if resp.status == 200 and result is not None:
                NotificationMetrics.fcm_sent()
                logger.debug(f"FCM message sent: to={masked}, name={result.get('name')}")
                return result.get("name", "")

            exc = parse_error(resp.status, result)

            if exc.invalid_token:
                logger.info(f"FCM token rejected: to={masked}, code={exc.error_code}")
                NotificationMetrics.fcm_failed("invalid_token")
            elif resp.status in (401, 403):
                logger.error(f"FCM API auth error: {exc}")
                NotificationMetrics.fcm_failed("auth")
            elif exc.retryable:
                logger.warning(f"FCM API transient error: to={masked}, {exc}")
                NotificationMetrics.fcm_failed("transient")
            else:
                logger.error(f"FCM API error: to={masked}, {exc}")
                NotificationMetrics.fcm_failed("error")

            raise exc

    except FcmSendError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning(f"FCM API connection error: to={masked}, {type(exc).__name__}: {exc}")
        NotificationMetrics.fcm_failed("connection")
        raise FcmSendError(0, None, str(exc) or type(exc).__name__, retryable=True) from exc
