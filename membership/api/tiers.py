"""
Caller tier routes.

- GET /api/me/tier: tier of the current caller (free when anonymous)
- GET /api/me: current caller; anonymous callers are sent to login
- GET /api/pro/ping: pro-only probe used by the planner to gate features
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from membership.core.auth import get_optional_user_id
from membership.features.entitlements.service import get_tier, require_authenticated, require_pro
from membership.models.entitlement import Tier

router = APIRouter(tags=["tiers"])


class TierResponse(BaseModel):
    user_id: Optional[str]
    tier: Tier


class CallerResponse(BaseModel):
    user_id: str


@router.get("/me/tier", response_model=TierResponse)
async def read_tier(user_id: Optional[str] = Depends(get_optional_user_id)):
    tier = await run_in_threadpool(get_tier, user_id)
    return {"user_id": user_id, "tier": tier}


@router.get("/me", response_model=CallerResponse)
async def read_caller(user_id: str = Depends(require_authenticated)):
    return {"user_id": user_id}


@router.get("/pro/ping", response_model=TierResponse)
async def pro_ping(user_id: str = Depends(require_pro)):
    return {"user_id": user_id, "tier": Tier.PRO}
