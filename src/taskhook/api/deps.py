"""API dependencies."""

import logging
import secrets
from dataclasses import dataclass
from typing import AsyncGenerator, Literal

from fastapi import Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from taskhook.config import Environment, settings
from taskhook.db.base import get_session

logger = logging.getLogger("taskhook.api")

DEV_OWNER_ID = "dev-user"


@dataclass(frozen=True)
class AuthContext:
    """Authentication context for the current request."""

    auth_type: Literal["api_key", "insecure_dev"]


def _insecure_dev() -> bool:
    return settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with get_session() as session:
        yield session


async def get_owner_id(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> str:
    """
    Extract the acting user's identity from the request.

    Identity is asserted by the caller holding the API key; session and
    token mechanics live outside this service.
    """
    if x_user_id:
        return x_user_id

    # Default owner for development
    if _insecure_dev():
        return DEV_OWNER_ID

    raise HTTPException(status_code=401, detail="Missing user ID")


async def verify_api_key(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> AuthContext:
    """
    Verify the shared API key.

    Accepts ``Authorization: Bearer <key>`` or ``X-API-Key``. Fails closed:
    with no key configured and no explicit insecure dev mode, every request
    is rejected.
    """
    # Insecure dev mode bypass (must be explicitly enabled)
    if _insecure_dev():
        return AuthContext(auth_type="insecure_dev")

    api_key = None
    if authorization and authorization.startswith("Bearer "):
        api_key = authorization[7:]
    elif x_api_key:
        api_key = x_api_key

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Use Authorization: Bearer <key> or X-API-Key header",
        )

    if settings.api_key:
        if secrets.compare_digest(api_key, settings.api_key):
            return AuthContext(auth_type="api_key")
        raise HTTPException(status_code=401, detail="Invalid API key")

    logger.error("SECURITY VIOLATION: No API key configured. Set TASKHOOK_API_KEY.")
    raise HTTPException(
        status_code=503,
        detail="Server misconfigured: authentication not properly initialized",
    )


def validate_auth_config() -> None:
    """
    Validate authentication configuration at startup.

    Raises:
        RuntimeError: If configuration is insecure for the current environment
    """
    if settings.allow_insecure_dev and settings.env != Environment.DEVELOPMENT:
        raise RuntimeError(
            f"SECURITY ERROR: allow_insecure_dev=true is only permitted in development. "
            f"Current environment: {settings.env.value}. "
            f"Set TASKHOOK_ALLOW_INSECURE_DEV=false for {settings.env.value}."
        )

    if not settings.allow_insecure_dev and not settings.api_key:
        raise RuntimeError("SECURITY ERROR: TASKHOOK_API_KEY is required")

    if settings.allow_insecure_dev:
        logger.warning(
            "=" * 80 + "\n"
            "WARNING: Running in INSECURE DEV MODE\n"
            "  - Authentication is DISABLED\n"
            "  - All API requests will be accepted without verification\n"
            "  - Set TASKHOOK_ALLOW_INSECURE_DEV=false for any deployment\n"
            + "=" * 80
        )
    else:
        logger.info(f"Authentication enabled: shared API key for {settings.env.value}")
