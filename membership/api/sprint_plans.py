"""
Sprint plan persistence routes.

- GET    /api/sprint-plans          all three slots (nulls when anonymous)
- PUT    /api/sprint-plans/{slot}   save a document into a slot
- DELETE /api/sprint-plans/{slot}   clear a slot
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from membership.core.auth import get_optional_user_id
from membership.features.sprint_plans.service import (
    delete_sprint_plan,
    load_sprint_plans,
    save_sprint_plan,
)

router = APIRouter(prefix="/sprint-plans", tags=["sprint-plans"])


class SlotsResponse(BaseModel):
    slots: List[Optional[Dict[str, Any]]]


class SaveResponse(BaseModel):
    slot: int
    saved_at: datetime


class DeleteResponse(BaseModel):
    slot: int
    deleted: bool


@router.get("", response_model=SlotsResponse)
async def list_plans(user_id: Optional[str] = Depends(get_optional_user_id)):
    slots = await run_in_threadpool(load_sprint_plans, user_id)
    return {"slots": slots}


@router.put("/{slot}", response_model=SaveResponse)
async def save_plan(
    slot: int,
    plan_data: Dict[str, Any] = Body(...),
    user_id: Optional[str] = Depends(get_optional_user_id),
):
    saved_at = await run_in_threadpool(save_sprint_plan, user_id, slot, plan_data)
    return {"slot": slot, "saved_at": saved_at}


@router.delete("/{slot}", response_model=DeleteResponse)
async def delete_plan(slot: int, user_id: Optional[str] = Depends(get_optional_user_id)):
    deleted = await run_in_threadpool(delete_sprint_plan, user_id, slot)
    return {"slot": slot, "deleted": deleted}
