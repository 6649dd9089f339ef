"""
Test the member_tiers store accessor (upsert and keyed update semantics).
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from membership.core.database import UnsupportedDatabaseError, get_db_session, member_tiers, upsert_insert
from membership.features.entitlements.store import SqlEntitlementStore
from membership.models.entitlement import Tier


class SteppingClock:
    def __init__(self, start):
        self.current = start

    def __call__(self):
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    return SteppingClock(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def clocked_store(clock):
    return SqlEntitlementStore(now=clock)


def count_rows():
    with get_db_session() as session:
        return session.execute(select(func.count()).select_from(member_tiers)).scalar()


def test_get_missing_row_returns_none(store):
    assert store.get("nobody") is None


def test_upsert_inserts_then_overwrites(clocked_store):
    clocked_store.upsert_for_user("U1", {"tier": Tier.PRO, "stripe_customer_id": "cus_1"})
    first = clocked_store.get("U1")

    clocked_store.upsert_for_user("U1", {"tier": Tier.PRO, "stripe_customer_id": "cus_1", "stripe_subscription_id": "sub_2"})
    second = clocked_store.get("U1")

    assert count_rows() == 1
    assert second.stripe_subscription_id == "sub_2"
    assert second.updated_at > first.updated_at


def test_update_by_customer_touches_only_matching_row(clocked_store):
    clocked_store.upsert_for_user("U1", {"tier": Tier.PRO, "stripe_customer_id": "cus_1"})
    clocked_store.upsert_for_user("U2", {"tier": Tier.PRO, "stripe_customer_id": "cus_2"})

    matched = clocked_store.update_by_customer("cus_1", {"tier": Tier.FREE})

    assert matched == 1
    assert clocked_store.get("U1").tier == Tier.FREE
    assert clocked_store.get("U2").tier == Tier.PRO


def test_update_by_customer_without_match_creates_nothing(store):
    assert store.update_by_customer("cus_missing", {"tier": Tier.FREE}) == 0
    assert count_rows() == 0


def test_datetimes_round_trip_as_utc(store):
    period_end = datetime(2026, 11, 19, 12, 30, tzinfo=timezone.utc)
    store.upsert_for_user("U1", {"tier": Tier.PRO, "stripe_customer_id": "cus_1", "current_period_end": period_end})

    record = store.get("U1")

    assert record.current_period_end == period_end
    assert record.current_period_end.tzinfo is not None
    assert record.updated_at.tzinfo is not None


def test_customer_id_is_unique_across_users(store):
    store.upsert_for_user("U1", {"tier": Tier.PRO, "stripe_customer_id": "cus_1"})
    with pytest.raises(IntegrityError):
        store.upsert_for_user("U2", {"tier": Tier.PRO, "stripe_customer_id": "cus_1"})


def test_tier_outside_enum_is_rejected(store):
    with pytest.raises(IntegrityError):
        store.upsert_for_user("U1", {"tier": "enterprise"})


def session_on(dialect_name):
    session = Mock()
    session.get_bind.return_value.dialect.name = dialect_name
    return session


def test_upsert_insert_follows_session_dialect():
    assert upsert_insert(session_on("postgresql")) is postgresql.insert
    assert upsert_insert(session_on("sqlite")) is sqlite.insert


def test_upsert_insert_rejects_other_backends():
    with pytest.raises(UnsupportedDatabaseError, match="mysql"):
        upsert_insert(session_on("mysql"))
