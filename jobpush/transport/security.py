# jobpush/transport/security.py
"""
Authentication for the trigger endpoints.

The hosting runtime presents ``Authorization: Bearer <TRIGGER_TOKEN>``.
Comparison is constant-time. When no token is configured (dev only,
production refuses to start without one) requests are accepted.
"""
import hmac

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from jobpush.config import settings
from jobpush.infra.logging_config import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(
    scheme_name="Trigger Token",
    description="Token shared with the hosting runtime (without 'Bearer ' prefix)",
    auto_error=False,
)


def _verify_bearer_token(
    credentials: HTTPAuthorizationCredentials | None,
    expected: str,
) -> tuple[bool, str | None]:
    """Verify Bearer token. Returns (is_valid, error_message)."""
    if not credentials:
        return False, "Missing Authorization header"

    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        return False, "Invalid token"

    return True, None


async def require_trigger_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """
    Usage:
        @app.post("/triggers/...", dependencies=[Depends(require_trigger_auth)])
    """
    expected = settings.trigger_token
    if not expected:
        if settings.is_production:
            logger.critical("TRIGGER_TOKEN not configured but trigger endpoint accessed")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Service unavailable",
            )
        return

    valid, error = _verify_bearer_token(credentials, expected)
    if valid:
        return

    logger.warning(f"Trigger auth failed: {error}", extra={"path": request.url.path})
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )
