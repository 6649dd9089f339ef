"""
Sprint planner persistence.

Each user has three save slots (0..2). Documents are stored as opaque JSON;
the planner owns their shape.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select

from membership.core.database import get_db_session, sprint_plans, upsert_insert
from membership.core.errors import UnauthorizedError, ValidationError

SLOT_COUNT = 3


def _check_slot(slot: int) -> None:
    if not 0 <= slot < SLOT_COUNT:
        raise ValidationError(f"slot must be between 0 and {SLOT_COUNT - 1}", code="invalid_slot")


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise UnauthorizedError("Not authenticated")
    return user_id


def save_sprint_plan(user_id: Optional[str], slot: int, plan_data: Dict[str, Any]) -> datetime:
    """Upsert the document in (user_id, slot). Returns the saved_at stamp."""
    user_id = _require_user(user_id)
    _check_slot(slot)
    saved_at = datetime.now(timezone.utc)

    with get_db_session() as session:
        insert = upsert_insert(session)
        stmt = insert(sprint_plans).values(
            user_id=user_id, slot=slot, plan_data=plan_data, saved_at=saved_at
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[sprint_plans.c.user_id, sprint_plans.c.slot],
            set_={"plan_data": plan_data, "saved_at": saved_at},
        )
        session.execute(stmt)

    return saved_at


def load_sprint_plans(user_id: Optional[str]) -> List[Optional[Dict[str, Any]]]:
    """All slots for the user, indexed by slot; empty slots are None."""
    slots: List[Optional[Dict[str, Any]]] = [None] * SLOT_COUNT
    if not user_id:
        return slots

    with get_db_session() as session:
        rows = session.execute(
            select(sprint_plans.c.slot, sprint_plans.c.plan_data)
            .where(sprint_plans.c.user_id == user_id)
            .order_by(sprint_plans.c.slot)
        ).fetchall()

    for slot, plan_data in rows:
        if 0 <= slot < SLOT_COUNT:
            slots[slot] = plan_data
    return slots


def delete_sprint_plan(user_id: Optional[str], slot: int) -> bool:
    """Delete one slot. Returns True if a document was removed."""
    user_id = _require_user(user_id)
    _check_slot(slot)

    with get_db_session() as session:
        result = session.execute(
            delete(sprint_plans).where(
                sprint_plans.c.user_id == user_id,
                sprint_plans.c.slot == slot,
            )
        )
        return result.rowcount > 0
