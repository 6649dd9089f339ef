"""
Test billing HTTP endpoints: webhook acknowledgement semantics and checkout.

Webhook bodies are signed with the test secret and verified by the real
Stripe library; Stripe API calls are monkeypatched.
"""
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import stripe
from fastapi.testclient import TestClient

from membership.features.entitlements.store import SqlEntitlementStore
from membership.main import app
from membership.models.entitlement import Tier
from membership.tests.mocks import encode_event, make_event, sign_payload

T1_TS = 1795089600
T2_TS = 1797768000


@pytest.fixture
def client(stripe_env):
    return TestClient(app)


@pytest.fixture
def subscription_periods(monkeypatch):
    periods = {"sub_1": T1_TS}

    def fake_retrieve(subscription_id, **kwargs):
        return {"id": subscription_id, "current_period_end": periods[subscription_id]}

    monkeypatch.setattr(stripe.Subscription, "retrieve", fake_retrieve)
    return periods


def post_event(client, event, **sign_kwargs):
    body = encode_event(event)
    return client.post(
        "/api/stripe/webhook",
        content=body,
        headers={"Stripe-Signature": sign_payload(body, **sign_kwargs), "Content-Type": "application/json"},
    )


def checkout_event(user_id="U1"):
    obj = {"object": "checkout.session", "customer": "cus_1", "subscription": "sub_1"}
    if user_id:
        obj["client_reference_id"] = user_id
    return make_event("checkout.session.completed", obj, event_id="evt_checkout")


def test_webhook_lifecycle_end_to_end(client, subscription_periods):
    store = SqlEntitlementStore()

    response = post_event(client, checkout_event())
    assert response.status_code == 200
    assert response.json() == {"received": True}
    record = store.get("U1")
    assert record.tier == Tier.PRO
    assert record.stripe_customer_id == "cus_1"
    assert record.stripe_subscription_id == "sub_1"
    assert record.current_period_end == datetime.fromtimestamp(T1_TS, tz=timezone.utc)

    subscription_periods["sub_1"] = T2_TS
    renewal = make_event(
        "invoice.payment_succeeded",
        {"billing_reason": "subscription_cycle", "customer": "cus_1", "subscription": "sub_1"},
        event_id="evt_renewal",
    )
    assert post_event(client, renewal).status_code == 200
    record = store.get("U1")
    assert record.tier == Tier.PRO
    assert record.current_period_end == datetime.fromtimestamp(T2_TS, tz=timezone.utc)

    cancel = make_event("customer.subscription.deleted", {"id": "sub_1", "customer": "cus_1"}, event_id="evt_cancel")
    assert post_event(client, cancel).status_code == 200
    record = store.get("U1")
    assert record.tier == Tier.FREE
    assert record.stripe_customer_id == "cus_1"
    assert record.stripe_subscription_id == "sub_1"


def test_webhook_redelivery_is_acknowledged_and_idempotent(client, subscription_periods):
    store = SqlEntitlementStore()

    first = post_event(client, checkout_event())
    after_first = store.get("U1")
    second = post_event(client, checkout_event())
    after_second = store.get("U1")

    assert first.status_code == second.status_code == 200
    assert after_first.model_dump(exclude={"updated_at"}) == after_second.model_dump(exclude={"updated_at"})


def test_webhook_missing_reference_is_acknowledged(client, subscription_periods):
    response = post_event(client, checkout_event(user_id=None))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert SqlEntitlementStore().get("U1") is None


def test_webhook_unhandled_event_is_acknowledged(client):
    response = post_event(client, make_event("customer.created", {"id": "cus_1"}))
    assert response.status_code == 200


def test_webhook_bad_signature_is_rejected_without_writes(client, subscription_periods):
    response = post_event(client, checkout_event(), secret="whsec_wrong")

    assert response.status_code == 400
    assert "Webhook error" in response.json()["detail"]
    assert SqlEntitlementStore().get("U1") is None


def test_webhook_missing_signature_is_rejected(client):
    body = encode_event(checkout_event())
    response = client.post("/api/stripe/webhook", content=body)
    assert response.status_code == 400


def test_webhook_reencoded_body_fails_verification(client, subscription_periods):
    event = checkout_event()
    signed_body = encode_event(event)
    header = sign_payload(signed_body)
    # Same JSON, different bytes
    reencoded = b" " + signed_body

    response = client.post("/api/stripe/webhook", content=reencoded, headers={"Stripe-Signature": header})

    assert response.status_code == 400
    assert SqlEntitlementStore().get("U1") is None


def test_webhook_lookup_failure_requests_redelivery(client, monkeypatch):
    def failing_retrieve(subscription_id, **kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Subscription, "retrieve", failing_retrieve)

    response = post_event(client, checkout_event())

    assert response.status_code == 500
    assert SqlEntitlementStore().get("U1") is None


def test_webhook_without_configured_secret_requests_redelivery(client, subscription_periods, monkeypatch):
    from membership.core.config import settings

    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)

    response = post_event(client, checkout_event())

    assert response.status_code == 500
    assert "STRIPE_WEBHOOK_SECRET" not in response.text
    assert SqlEntitlementStore().get("U1") is None


def test_webhook_rejects_other_methods(client):
    response = client.get("/api/stripe/webhook")
    assert response.status_code == 405


def test_checkout_returns_session_url(client, monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(url="https://checkout.stripe.com/c/pay/cs_test")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    response = client.post("/api/stripe/checkout", json={"userId": "U1"})

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test"}
    assert captured["client_reference_id"] == "U1"
    assert captured["line_items"][0]["price"] == "price_monthly_123"


def test_checkout_annual_plan_uses_annual_price(client, monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(url="https://checkout.stripe.com/c/pay/cs_annual")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    response = client.post("/api/stripe/checkout", json={"userId": "U1", "plan": "pro_annual"})

    assert response.status_code == 200
    assert captured["line_items"][0]["price"] == "price_annual_123"


def test_checkout_requires_user_id(client):
    response = client.post("/api/stripe/checkout", json={"plan": "pro_monthly"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "missing_user_id"


def test_checkout_rejects_unknown_plan(client):
    response = client.post("/api/stripe/checkout", json={"userId": "U1", "plan": "enterprise"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "unknown_plan"


def test_checkout_provider_error_is_server_error(client, monkeypatch):
    def failing_create(**kwargs):
        raise stripe.InvalidRequestError("No such price", "line_items")

    monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)

    response = client.post("/api/stripe/checkout", json={"userId": "U1"})
    assert response.status_code == 500


def test_checkout_rejects_other_methods(client):
    assert client.get("/api/stripe/checkout").status_code == 405
