# tests/test_fcm_sender.py
"""Tests for the FCM HTTP v1 client and the push sender built on it."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from jobpush.core.domain import NotificationPayload
from jobpush.transport.fcm_sender import FcmSendError, build_message, parse_error, send_message


PAYLOAD = NotificationPayload(title="New Job Request", body="A new job is available at location: 1, 2")


def _fcm_error(status: int, rpc_status: str, error_code: str | None = None) -> dict:
    error = {"code": status, "message": f"{rpc_status} message", "status": rpc_status}
    if error_code:
        error["details"] = [{
            "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
            "errorCode": error_code,
        }]
    return {"error": error}


def _session(status: int, body: dict | None) -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=body)

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=ctx)
    return session


# ============================================================================
# Request body
# ============================================================================

class TestBuildMessage:

    def test_notification_only(self):
        body = build_message("tok", "Title", "Body")
        assert body == {"message": {"token": "tok", "notification": {"title": "Title", "body": "Body"}}}

    def test_data_values_stringified(self):
        body = build_message("tok", "T", "B", {"jobId": "job1", "attempt": 2})
        assert body["message"]["data"] == {"jobId": "job1", "attempt": "2"}


# ============================================================================
# Error classification
# ============================================================================

class TestParseError:

    def test_unregistered_token(self):
        exc = parse_error(404, _fcm_error(404, "NOT_FOUND", "UNREGISTERED"))
        assert exc.error_code == "UNREGISTERED"
        assert exc.invalid_token
        assert not exc.retryable

    def test_invalid_argument(self):
        exc = parse_error(400, _fcm_error(400, "INVALID_ARGUMENT"))
        assert exc.error_code == "INVALID_ARGUMENT"
        assert exc.invalid_token
        assert not exc.retryable

    def test_auth_error_not_retryable(self):
        exc = parse_error(401, _fcm_error(401, "UNAUTHENTICATED"))
        assert not exc.retryable
        assert not exc.invalid_token

    def test_quota_retryable(self):
        exc = parse_error(429, _fcm_error(429, "RESOURCE_EXHAUSTED", "QUOTA_EXCEEDED"))
        assert exc.retryable

    def test_server_error_retryable(self):
        assert parse_error(503, _fcm_error(503, "UNAVAILABLE")).retryable

    def test_non_json_body(self):
        exc = parse_error(502, None)
        assert exc.status == 502
        assert exc.error_code is None
        assert exc.retryable


# ============================================================================
# send_message
# ============================================================================

class TestSendMessage:

    @pytest.mark.asyncio
    async def test_success_returns_message_name(self):
        session = _session(200, {"name": "projects/p/messages/123"})

        with patch("jobpush.transport.fcm_sender.get_fcm_session", return_value=session):
            name = await send_message("tok", "T", "B", access_token="at", project_id="proj")

        assert name == "projects/p/messages/123"
        url = session.post.call_args.args[0]
        assert url.endswith("/v1/projects/proj/messages:send")
        headers = session.post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer at"
        assert session.post.call_args.kwargs["json"]["message"]["token"] == "tok"

    @pytest.mark.asyncio
    async def test_rejection_raises(self):
        session = _session(404, _fcm_error(404, "NOT_FOUND", "UNREGISTERED"))

        with patch("jobpush.transport.fcm_sender.get_fcm_session", return_value=session):
            with pytest.raises(FcmSendError) as exc_info:
                await send_message("tok", "T", "B", access_token="at", project_id="proj")

        assert exc_info.value.invalid_token

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self):
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))

        with patch("jobpush.transport.fcm_sender.get_fcm_session", return_value=session):
            with pytest.raises(FcmSendError) as exc_info:
                await send_message("tok", "T", "B", access_token="at", project_id="proj")

        assert exc_info.value.status == 0
        assert exc_info.value.retryable


# ============================================================================
# FcmPushSender
# ============================================================================

class TestFcmPushSender:

    def _sender(self, **kwargs):
        from jobpush.infra.fcm_credentials import StaticTokenSource
        from jobpush.infra.push_senders import FcmPushSender
        return FcmPushSender("proj", StaticTokenSource("access-token"), **kwargs)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            self._sender(chunk_size=0)

    @pytest.mark.asyncio
    async def test_send_to_one_success(self):
        sender = self._sender()
        with patch("jobpush.infra.push_senders.send_message", AsyncMock(return_value="name")) as send:
            assert await sender.send_to_one("tok", PAYLOAD) is True

        send.assert_awaited_once()
        assert send.await_args.kwargs["project_id"] == "proj"
        assert send.await_args.kwargs["access_token"] == "access-token"

    @pytest.mark.asyncio
    async def test_send_to_one_rejected(self):
        sender = self._sender()
        error = FcmSendError(404, "UNREGISTERED", "gone")
        with patch("jobpush.infra.push_senders.send_message", AsyncMock(side_effect=error)):
            assert await sender.send_to_one("tok", PAYLOAD) is False

    @pytest.mark.asyncio
    async def test_unconfigured_sender_drops(self):
        from jobpush.infra.push_senders import FcmPushSender

        sender = FcmPushSender(None, None)
        with patch("jobpush.infra.push_senders.send_message", AsyncMock()) as send:
            assert await sender.send_to_one("tok", PAYLOAD) is False
            result = await sender.send_to_many(["a", "b"], PAYLOAD)

        send.assert_not_awaited()
        assert result.failure_count == 2

    @pytest.mark.asyncio
    async def test_send_to_many_counts(self):
        sender = self._sender()

        async def fake_send(token, *args, **kwargs):
            if token == "dead":
                raise FcmSendError(404, "UNREGISTERED", "gone")
            if token == "busy":
                raise FcmSendError(503, "UNAVAILABLE", "later", retryable=True)
            return "name"

        with patch("jobpush.infra.push_senders.send_message", AsyncMock(side_effect=fake_send)):
            result = await sender.send_to_many(["a", "dead", "b", "busy"], PAYLOAD)

        assert result.success_count == 2
        assert result.failure_count == 2
        assert result.invalid_tokens == ["dead"]

    @pytest.mark.asyncio
    async def test_send_to_many_empty(self):
        sender = self._sender()
        with patch("jobpush.infra.push_senders.send_message", AsyncMock()) as send:
            result = await sender.send_to_many([], PAYLOAD)

        send.assert_not_awaited()
        assert result.attempted == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunk_size,max_concurrency,expected_peak", [
        (2, 20, 2),
        (10, 3, 3),
    ])
    async def test_concurrency_bounded(self, chunk_size, max_concurrency, expected_peak):
        sender = self._sender(chunk_size=chunk_size, max_concurrency=max_concurrency)
        in_flight = 0
        peak = 0

        async def fake_send(token, *args, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return "name"

        tokens = [f"tok{i}" for i in range(10)]
        with patch("jobpush.infra.push_senders.send_message", AsyncMock(side_effect=fake_send)) as send:
            result = await sender.send_to_many(tokens, PAYLOAD)

        assert send.await_count == 10
        assert result.success_count == 10
        assert peak == expected_peak

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_abandon_chunk(self):
        sender = self._sender()
        finished = []

        async def fake_send(token, *args, **kwargs):
            if token == "bad":
                raise RuntimeError("Session is closed")
            await asyncio.sleep(0)
            finished.append(token)
            return "name"

        with patch("jobpush.infra.push_senders.send_message", AsyncMock(side_effect=fake_send)):
            result = await sender.send_to_many(["bad", "a", "b", "c"], PAYLOAD)

        assert sorted(finished) == ["a", "b", "c"]
        assert result.success_count == 3
        assert result.failure_count == 1
        assert result.invalid_tokens == []

    @pytest.mark.asyncio
    async def test_unauthorized_marks_token_stale(self):
        from jobpush.infra.push_senders import FcmPushSender

        source = MagicMock()
        source.get_access_token = AsyncMock(return_value="old-token")
        sender = FcmPushSender("proj", source)
        error = FcmSendError(401, "UNAUTHENTICATED", "expired")

        with patch("jobpush.infra.push_senders.send_message", AsyncMock(side_effect=error)):
            assert await sender.send_to_one("tok", PAYLOAD) is False

        source.invalidate.assert_called_once()
        assert sender.auth_failing

        with patch("jobpush.infra.push_senders.send_message", AsyncMock(return_value="name")):
            assert await sender.send_to_one("tok", PAYLOAD) is True

        assert not sender.auth_failing


class TestDisabledPushSender:

    @pytest.mark.asyncio
    async def test_sends_nothing(self):
        from jobpush.infra.push_senders import DisabledPushSender

        sender = DisabledPushSender()
        with patch("jobpush.infra.push_senders.send_message", AsyncMock()) as send:
            assert await sender.send_to_one("tok", PAYLOAD) is False
            result = await sender.send_to_many(["a", "b"], PAYLOAD)

        send.assert_not_awaited()
        # same verdict as send_to_one: nothing was delivered
        assert result.success_count == 0
        assert result.failure_count == 2
        assert result.attempted == 2
