"""
membership/features/entitlements/service.py

Tier reader and gating helpers.

Handles:
- get_tier: current tier for a caller, free on absence or any failure
- require_authenticated / require_pro: FastAPI dependencies that
  redirect (login or upgrade page) instead of erroring
"""

from typing import Optional
from urllib.parse import quote
import logging

from fastapi import Depends, Request

from membership.core.auth import get_optional_user_id
from membership.core.config import settings
from membership.core.errors import RedirectRequired
from membership.features.entitlements.store import EntitlementStore, SqlEntitlementStore
from membership.models.entitlement import Tier


logger = logging.getLogger(__name__)


def get_tier(user_id: Optional[str], store: Optional[EntitlementStore] = None) -> Tier:
    """Return the caller's tier, defaulting to free."""
    if not user_id:
        return Tier.FREE

    try:
        record = (store or SqlEntitlementStore()).get(user_id)
    except Exception as e:
        logger.warning(f"Tier lookup failed for {user_id}, treating as free: {e}")
        return Tier.FREE

    if record is None:
        return Tier.FREE
    return record.tier


def login_redirect_url(next_path: str) -> str:
    return f"{settings.LOGIN_URL}?next={quote(next_path, safe='')}"


async def require_authenticated(
    request: Request,
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> str:
    """Dependency: the caller's user_id, or a redirect to the login page."""
    if not user_id:
        raise RedirectRequired(login_redirect_url(request.url.path), reason="login_required")
    return user_id


def require_pro(user_id: str = Depends(require_authenticated)) -> str:
    """Dependency: a pro caller's user_id, or a redirect to the upgrade page."""
    if get_tier(user_id) != Tier.PRO:
        raise RedirectRequired(settings.UPGRADE_URL, reason="upgrade_required")
    return user_id
