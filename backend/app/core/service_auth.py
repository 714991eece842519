"""
Bearer authentication for the cron sweep.

The external cron caller authenticates with the static ``CRON_SECRET``
(not a Fluid token). With no secret configured every call is rejected.
"""
import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Request, status

from app.core.config import settings

logger = logging.getLogger(__name__)


def _extract_bearer_token(request: Request) -> Optional[str]:
    """
    Extract bearer token from Authorization header.

    Args:
        request: FastAPI Request object

    Returns:
        Token string or None if not found
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.lower().startswith("bearer "):
        return None

    token = auth_header[7:].strip()
    return token if token else None


async def require_cron_secret(request: Request) -> None:
    """
    Dependency that requires ``Authorization: Bearer <CRON_SECRET>``.

    Raises:
        HTTPException: 401 if the secret is unset, missing or wrong
    """
    expected = settings.CRON_SECRET
    token = _extract_bearer_token(request)

    if not expected:
        logger.warning("Cron call rejected - CRON_SECRET not configured", extra={"path": request.url.path})
    elif not token:
        logger.warning("Cron call rejected - no token", extra={"path": request.url.path})
    elif secrets.compare_digest(token.encode(), expected.encode()):
        return None
    else:
        logger.warning("Cron call rejected - invalid token", extra={"path": request.url.path})

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_non_production() -> None:
    """Dependency that hides development-only routes in production."""
    if settings.is_production:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not available in production",
        )
