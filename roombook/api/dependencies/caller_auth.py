# roombook/api/dependencies/caller_auth.py
from typing import Optional

from fastapi import Header, HTTPException, status

from roombook.core.config import get_settings
from roombook.schemas.meeting import CallerIdentity


async def verify_internal_api_key(
    internal_api_key: Optional[str] = Header(
        default=None,
        alias="X-Internal-Api-Key",
        description="API key required for /api endpoints in non-local environments.",
    ),
) -> None:
    """
    Dependency protecting the booking API.

    Rules
    -----
    - APP_ENV in ("local", "test"):
        - If INTERNAL_API_KEY is not set -> no auth enforced (convenient for local dev).
        - If INTERNAL_API_KEY is set      -> header must match the configured key.
    - APP_ENV not in ("local", "test")  [e.g. dev/stage/prod]:
        - INTERNAL_API_KEY must be set, otherwise 500 (misconfiguration).
        - Header must be present and match INTERNAL_API_KEY, otherwise 401.
    """
    settings = get_settings()
    env = (settings.APP_ENV or "local").lower()
    expected = settings.INTERNAL_API_KEY

    if env in ("local", "test"):
        if not expected:
            return

        if not internal_api_key or internal_api_key != expected:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing internal API key.",
            )
        return

    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="INTERNAL_API_KEY not configured for this environment.",
        )

    if not internal_api_key or internal_api_key != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing internal API key.",
        )


async def get_caller_identity(
    user_email: Optional[str] = Header(
        default=None,
        alias="X-User-Email",
        description="Mailbox of the signed-in user performing the request.",
    ),
) -> CallerIdentity:
    """
    Resolve the signed-in user from the X-User-Email header.

    The upstream gateway authenticates the user; this service only decides
    whether that user is an administrator (listed in ADMIN_EMAILS).
    """
    if not user_email or "@" not in user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-Email header.",
        )

    settings = get_settings()
    email = user_email.strip()
    return CallerIdentity(
        email=email,
        is_admin=email.casefold() in settings.admin_emails,
    )
