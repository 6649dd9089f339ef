# membership/conftest.py
import os

import pytest

# Settings are read at import time; tests run against in-memory SQLite
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("DATABASE_URL", "sqlite://")


@pytest.fixture(scope="function", autouse=True)
def reset_db():
    """
    Fresh in-memory database for every test.

    Rebuilds the global engine so each test starts with empty tables.
    """
    from membership.core.database import init_engine, create_all_tables, dispose_engine

    dispose_engine()
    init_engine("sqlite://")
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def clear_singletons():
    """Drop cached provider/store handles between tests."""
    from membership.features.billing.service import get_provider, get_store

    get_provider.cache_clear()
    get_store.cache_clear()
    yield
    get_provider.cache_clear()
    get_store.cache_clear()


@pytest.fixture
def fake_provider():
    from membership.tests.mocks import FakeProvider, T1

    return FakeProvider(period_ends={"sub_1": T1})


@pytest.fixture
def store():
    from membership.features.entitlements.store import SqlEntitlementStore

    return SqlEntitlementStore()


@pytest.fixture
def stripe_env(monkeypatch):
    """Configure Stripe credentials and plan prices for endpoint tests."""
    from membership.core.config import settings
    from membership.tests.mocks import WEBHOOK_SECRET

    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "STRIPE_PRICE_PRO_MONTHLY", "price_monthly_123")
    monkeypatch.setattr(settings, "STRIPE_PRICE_PRO_ANNUAL", "price_annual_123")
    yield settings
