"""
Entitlement store accessor.

Thin contract over the member_tiers table. Every write is either an
upsert keyed by user_id or an update matched by stripe_customer_id, so
replaying the same write leaves the row unchanged apart from updated_at.
Concurrency safety comes from the database's per-row atomic
INSERT ... ON CONFLICT / UPDATE semantics; nothing is read-modify-written.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy import select, update

from membership.core.database import get_db_session, member_tiers, upsert_insert
from membership.models.entitlement import EntitlementRecord, Tier


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EntitlementStore(Protocol):
    """Persistence contract used by the reconciler and the tier reader."""

    def upsert_for_user(self, user_id: str, values: Dict[str, Any]) -> None:
        """Insert or overwrite the row keyed by user_id with `values`."""
        ...

    def update_by_customer(self, stripe_customer_id: str, values: Dict[str, Any]) -> int:
        """Update rows matched by stripe_customer_id; returns the match count."""
        ...

    def get(self, user_id: str) -> Optional[EntitlementRecord]:
        ...


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlEntitlementStore:
    """EntitlementStore backed by SQLAlchemy Core."""

    def __init__(self, now: Callable[[], datetime] = utc_now):
        self._now = now

    def upsert_for_user(self, user_id: str, values: Dict[str, Any]) -> None:
        row = dict(values, updated_at=self._now())
        if isinstance(row.get("tier"), Tier):
            row["tier"] = row["tier"].value
        with get_db_session() as session:
            insert = upsert_insert(session)
            stmt = insert(member_tiers).values(user_id=user_id, **row)
            stmt = stmt.on_conflict_do_update(
                index_elements=[member_tiers.c.user_id],
                set_=row,
            )
            session.execute(stmt)

    def update_by_customer(self, stripe_customer_id: str, values: Dict[str, Any]) -> int:
        row = dict(values, updated_at=self._now())
        if isinstance(row.get("tier"), Tier):
            row["tier"] = row["tier"].value
        with get_db_session() as session:
            result = session.execute(
                update(member_tiers)
                .where(member_tiers.c.stripe_customer_id == stripe_customer_id)
                .values(**row)
            )
            return result.rowcount

    def get(self, user_id: str) -> Optional[EntitlementRecord]:
        with get_db_session() as session:
            row = session.execute(
                select(member_tiers).where(member_tiers.c.user_id == user_id)
            ).mappings().fetchone()

        if row is None:
            return None

        return EntitlementRecord(
            user_id=row["user_id"],
            tier=Tier(row["tier"]),
            stripe_customer_id=row["stripe_customer_id"],
            stripe_subscription_id=row["stripe_subscription_id"],
            current_period_end=_aware(row["current_period_end"]),
            updated_at=_aware(row["updated_at"]),
        )
