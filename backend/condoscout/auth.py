"""
Identity dependencies for FastAPI endpoints.

A request is made either as a signed-in user (Bearer token verified through
Supabase auth.get_user()) or as a guest (X-Guest-Session header naming the
browser tab; a blank value is rejected). Sign-in itself is delegated to Supabase;
only the verified profile is consumed here.
"""

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from condoscout.constants import GUEST_SESSION_HEADER
from condoscout.models.identity import AuthenticatedIdentity, GuestIdentity, Identity

logger = structlog.get_logger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def _identity_from_user(user: object) -> AuthenticatedIdentity:
    metadata = getattr(user, "user_metadata", None) or {}
    return AuthenticatedIdentity(
        id=str(getattr(user, "id")),
        name=metadata.get("full_name") or metadata.get("name") or "",
        email=getattr(user, "email", None),
        avatar_uri=metadata.get("avatar_url") or metadata.get("picture"),
    )


async def verify_bearer_token(request: Request, token: str) -> AuthenticatedIdentity:
    """
    Verify a JWT Bearer token via Supabase.

    Raises:
        HTTPException 503: Supabase client not configured.
        HTTPException 401: Token is invalid, expired, or user not found.
    """
    supabase = getattr(request.app.state, "supabase", None)
    if supabase is None:
        raise HTTPException(status_code=503, detail="Authentication service unavailable")

    try:
        response = await supabase.auth.get_user(token)
        user = response.user if response else None
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return _identity_from_user(user)
    except HTTPException:
        raise
    except Exception as e:
        logger.warning("auth_token_verification_failed", error=str(e))
        raise HTTPException(status_code=401, detail="Invalid or expired token")


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Identity:
    """
    FastAPI dependency resolving the caller's identity.

    A Bearer token takes precedence over the guest header.

    Raises:
        HTTPException 401: Neither a token nor a non-blank guest header was sent.
    """
    if credentials is not None:
        identity: Identity = await verify_bearer_token(request, credentials.credentials)
        structlog.contextvars.bind_contextvars(identity_id=identity.id)
        return identity

    guest_tab = (request.headers.get(GUEST_SESSION_HEADER) or "").strip()
    if guest_tab:
        structlog.contextvars.bind_contextvars(identity_id="guest")
        return GuestIdentity(tab_id=guest_tab)

    raise HTTPException(status_code=401, detail="Not authenticated")


async def get_authenticated_identity(
    identity: Identity = Depends(get_current_identity),
) -> AuthenticatedIdentity:
    """Like get_current_identity, but guests are rejected with 401."""
    if not isinstance(identity, AuthenticatedIdentity):
        raise HTTPException(status_code=401, detail="Sign-in required")
    return identity


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
CurrentUser = Annotated[AuthenticatedIdentity, Depends(get_authenticated_identity)]
