# jobpush/infra/fcm_credentials.py
"""
OAuth2 access tokens for the FCM HTTP v1 API.

Sources:
- ServiceAccountTokenSource - mints tokens from a service account key with
  google-auth and refreshes them before they expire (about one hour)
- StaticTokenSource - a fixed bearer token (emulator / local dev)

Usage:
    source = build_token_source(settings)
    token = await source.get_access_token()

google-auth refreshes synchronously over ``requests``; the refresh runs in
a worker thread so the event loop keeps serving triggers meanwhile.
"""
from __future__ import annotations

import asyncio
import json
from typing import Callable

import google.auth.transport.requests
from google.oauth2 import service_account

from jobpush.config import Settings
from jobpush.infra.logging_config import get_logger

logger = get_logger(__name__)

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]


class StaticTokenSource:
    """Fixed token; a 401 cannot be recovered from."""

    refreshable = False

    def __init__(self, token: str, project_id: str | None = None) -> None:
        self._token = token
        self.project_id = project_id

    async def get_access_token(self) -> str:
        return self._token

    def invalidate(self) -> None:
        logger.warning("Static FCM access token rejected; it cannot be refreshed")


class ServiceAccountTokenSource:
    """
    Service-account credential shared by every send.

    Concurrent callers that find the token expired wait on one refresh
    instead of each minting their own.
    """

    refreshable = True

    def __init__(
        self,
        credentials: service_account.Credentials,
        *,
        request_factory: Callable[[], object] = google.auth.transport.requests.Request,
    ) -> None:
        self._credentials = credentials
        self._request_factory = request_factory
        self._lock = asyncio.Lock()
        self._force_refresh = False

    @classmethod
    def from_info(cls, info: dict) -> "ServiceAccountTokenSource":
        return cls(service_account.Credentials.from_service_account_info(info, scopes=FCM_SCOPES))

    @classmethod
    def from_file(cls, path: str) -> "ServiceAccountTokenSource":
        return cls(service_account.Credentials.from_service_account_file(path, scopes=FCM_SCOPES))

    @property
    def project_id(self) -> str | None:
        return getattr(self._credentials, "project_id", None)

    async def get_access_token(self) -> str:
        async with self._lock:
            if self._force_refresh or not self._credentials.valid:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._credentials.refresh, self._request_factory())
                self._force_refresh = False
                logger.info(f"FCM access token refreshed (expires={self._credentials.expiry})")
            return self._credentials.token

    def invalidate(self) -> None:
        """Force a refresh on the next call (token revoked or rejected early)."""
        self._force_refresh = True


def build_token_source(s: Settings) -> StaticTokenSource | ServiceAccountTokenSource | None:
    """
    Pick the credential from settings.

    Inline JSON wins over a key file; a static token is the last resort.
    Returns None when nothing is configured.
    """
    if s.fcm_service_account_json:
        return ServiceAccountTokenSource.from_info(json.loads(s.fcm_service_account_json))

    if s.fcm_service_account_file:
        return ServiceAccountTokenSource.from_file(s.fcm_service_account_file)

    if s.fcm_access_token:
        return StaticTokenSource(s.fcm_access_token, s.fcm_project_id)

    return None
