# jobpush/infra/push_senders.py
"""
Push sender implementations for the dispatch layer.

Supports:
- FCM - Firebase Cloud Messaging HTTP v1 (one request per token)
- Disabled - logs and drops, for dev and for the master switch

Usage:
    sender = get_push_sender()
    ok = await sender.send_to_one(token, payload)
    result = await sender.send_to_many(tokens, payload)

The sender is built once at startup and injected into handlers; nothing
in the dispatch layer reaches for a global client.
"""
from __future__ import annotations

import abc
import asyncio
from typing import Protocol, Sequence

from jobpush.config import Settings, settings as default_settings
from jobpush.core.domain import NotificationPayload
from jobpush.core.ports import MulticastResult
from jobpush.infra.fcm_credentials import build_token_source
from jobpush.infra.logging_config import get_logger, mask_token
from jobpush.transport.fcm_sender import FcmSendError, send_message

logger = get_logger(__name__)


class TokenSource(Protocol):
    async def get_access_token(self) -> str: ...

    def invalidate(self) -> None: ...


class BasePushSender(abc.ABC):
    """Abstract base class for push senders"""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Sender name for logging/metrics"""

    @abc.abstractmethod
    def is_configured(self) -> bool:
        """Check if sender is properly configured"""

    @abc.abstractmethod
    async def send_to_one(self, token: str, payload: NotificationPayload) -> bool:
        """
        Send one notification to one device.

        Returns:
            True if accepted by the delivery service, False if rejected
        """

    @abc.abstractmethod
    async def send_to_many(self, tokens: Sequence[str], payload: NotificationPayload) -> MulticastResult:
        """Send the same notification to every token; per-token counts returned."""


class FcmPushSender(BasePushSender):
    """
    FCM HTTP v1 sender.

    The v1 API has no multicast endpoint, so ``send_to_many`` splits the
    token list into chunks of ``chunk_size`` (the FCM multicast limit of
    500 by default) and sends each chunk concurrently, at most
    ``max_concurrency`` requests in flight. Chunks run one after another.

    Access tokens come from ``token_source`` on every send. A 401 marks the
    token stale so the next send mints a new one.
    """

    def __init__(
        self,
        project_id: str | None,
        token_source: TokenSource | None,
        *,
        chunk_size: int = 500,
        max_concurrency: int = 20,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self._project_id = project_id
        self._token_source = token_source
        self._chunk_size = chunk_size
        self._max_concurrency = max_concurrency
        self._auth_failing = False

    @property
    def name(self) -> str:
        return "fcm"

    @property
    def auth_failing(self) -> bool:
        """True while the last send was rejected with 401/403"""
        return self._auth_failing

    def is_configured(self) -> bool:
        return bool(self._project_id and self._token_source)

    async def _send(self, token: str, payload: NotificationPayload) -> str:
        access_token = await self._token_source.get_access_token()
        try:
            name = await send_message(
                token,
                payload.title,
                payload.body,
                access_token=access_token,
                data=payload.data,
                project_id=self._project_id,
            )
        except FcmSendError as exc:
            if exc.status in (401, 403):
                self._auth_failing = True
                if exc.status == 401:
                    self._token_source.invalidate()
            raise

        self._auth_failing = False
        return name

    async def send_to_one(self, token: str, payload: NotificationPayload) -> bool:
        if not self.is_configured():
            logger.warning("FCM sender not configured, dropping notification")
            return False

        try:
            await self._send(token, payload)
            return True
        except FcmSendError as exc:
            logger.warning(
                f"FCM send failed: to={mask_token(token)}, code={exc.error_code}, "
                f"retryable={exc.retryable}"
            )
            return False

    async def send_to_many(self, tokens: Sequence[str], payload: NotificationPayload) -> MulticastResult:
        result = MulticastResult()
        if not tokens:
            return result

        if not self.is_configured():
            logger.warning(f"FCM sender not configured, dropping {len(tokens)} notifications")
            result.failure_count = len(tokens)
            return result

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _deliver(token: str) -> Exception | None:
            async with semaphore:
                try:
                    await self._send(token, payload)
                    return None
                except FcmSendError as exc:
                    return exc
                except Exception as exc:
                    # One broken send must not abandon the rest of the chunk
                    logger.warning(
                        f"FCM send raised: to={mask_token(token)}, {exc.__class__.__name__}: {exc}"
                    )
                    return exc

        for start in range(0, len(tokens), self._chunk_size):
            chunk = list(tokens[start:start + self._chunk_size])
            errors = await asyncio.gather(*(_deliver(token) for token in chunk))

            for token, error in zip(chunk, errors):
                if error is None:
                    result.success_count += 1
                    continue
                result.failure_count += 1
                if isinstance(error, FcmSendError) and error.invalid_token:
                    result.invalid_tokens.append(token)

        logger.info(
            f"FCM multicast done: success={result.success_count}, "
            f"failure={result.failure_count}, invalid={len(result.invalid_tokens)}"
        )
        return result


class DisabledPushSender(BasePushSender):
    """Sender used when pushes are switched off; every token counts as not delivered."""

    @property
    def name(self) -> str:
        return "disabled"

    def is_configured(self) -> bool:
        return True

    async def send_to_one(self, token: str, payload: NotificationPayload) -> bool:
        logger.info(f"Push disabled, skipping '{payload.title}' to {mask_token(token)}")
        return False

    async def send_to_many(self, tokens: Sequence[str], payload: NotificationPayload) -> MulticastResult:
        logger.info(f"Push disabled, skipping '{payload.title}' to {len(tokens)} devices")
        return MulticastResult(failure_count=len(tokens))


def get_push_sender(s: Settings | None = None) -> BasePushSender:
    """
    Build the configured push sender.

    Returns DisabledPushSender if notifications are disabled.
    """
    s = s or default_settings

    if not s.push_enabled:
        logger.info("Push notifications disabled")
        return DisabledPushSender()

    token_source = build_token_source(s)
    project_id = s.fcm_project_id or (token_source.project_id if token_source else None)

    sender = FcmPushSender(
        project_id,
        token_source,
        chunk_size=s.fcm_multicast_chunk_size,
        max_concurrency=s.fcm_max_concurrency,
    )
    if not sender.is_configured():
        logger.warning("FCM sender not configured, notifications will fail")
    elif not getattr(token_source, "refreshable", False):
        logger.warning("FCM uses a static access token; sends fail once it expires")

    return sender
