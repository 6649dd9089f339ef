"""
Caller identity for the membership API.

Validates bearer JWTs issued by the auth backend and extracts user_id
from the `sub` claim. The X-User-Id header is honoured only while no
AUTH_JWT_SECRET is configured and ENV is not production (tests, local dev);
once JWT auth is on, the header is ignored.
"""
from fastapi import Header, Request
from typing import Optional
import logging

import jwt

from membership.core.config import settings
from membership.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def verify_access_token(token: str) -> Optional[str]:
    """
    Verify an access token and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id from the token's 'sub' claim, or None when no
        AUTH_JWT_SECRET is configured

    Raises:
        UnauthorizedError: Invalid or expired token
    """
    if not settings.AUTH_JWT_SECRET:
        logger.debug("No AUTH_JWT_SECRET configured, skipping JWT validation")
        return None

    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True, "verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Token has no subject")
    return user_id


def header_identity_allowed() -> bool:
    """Whether a bare X-User-Id header may identify the caller."""
    if settings.AUTH_JWT_SECRET:
        return False
    return (settings.ENV or "development").lower() != "production"


async def get_optional_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Local development only: caller user ID"),
) -> Optional[str]:
    """
    Resolve the current caller, or None for anonymous requests.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header, when header identity is allowed
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = verify_access_token(auth_header[7:])
        if user_id:
            return user_id

    if x_user_id:
        if header_identity_allowed():
            return x_user_id
        logger.warning("Ignoring X-User-Id header: header identity is disabled")

    return None
