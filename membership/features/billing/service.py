"""
Billing service orchestrator.

Coordinates:
- Checkout session creation for the Pro plans
- Webhook verification and reconciliation

All Stripe-specific code is in stripe_provider.py; all tier transitions
are in reconciler.py.
"""
from functools import lru_cache
from typing import Optional, Dict

from membership.core.config import settings
from membership.core.errors import ValidationError
from membership.core.logging import log_event
from membership.features.billing.provider import BillingProvider
from membership.features.billing.reconciler import Reconciler, ReconcileOutcome
from membership.features.billing.stripe_provider import StripeProvider
from membership.features.entitlements.store import EntitlementStore, SqlEntitlementStore

DEFAULT_PLAN = "pro_monthly"


def get_stripe_price_for_plan(plan: str) -> Optional[str]:
    """Map plan key to Stripe price ID."""
    price_map: Dict[str, Optional[str]] = {
        "pro_monthly": settings.STRIPE_PRICE_PRO_MONTHLY,
        "pro_annual": settings.STRIPE_PRICE_PRO_ANNUAL,
    }
    return price_map.get(plan)


@lru_cache(maxsize=1)
def get_provider() -> BillingProvider:
    """Process-wide Stripe provider, built on first use.

    Raises:
        BillingProviderError: If STRIPE_SECRET_KEY is not configured
    """
    return StripeProvider()


@lru_cache(maxsize=1)
def get_store() -> EntitlementStore:
    return SqlEntitlementStore()


def start_checkout(user_id: Optional[str], plan: Optional[str] = None) -> str:
    """
    Start a Stripe checkout session for the Pro upgrade.

    The user id is threaded through as client_reference_id so the
    checkout.session.completed webhook can find the user again.

    Args:
        user_id: Internal user ID
        plan: Plan key (pro_monthly, pro_annual); defaults to pro_monthly

    Returns:
        Checkout URL

    Raises:
        ValidationError: Missing user_id or unknown plan
        BillingProviderError: If checkout creation fails
    """
    if not user_id or not str(user_id).strip():
        raise ValidationError("userId is required", code="missing_user_id")

    plan_key = plan or DEFAULT_PLAN
    price_id = get_stripe_price_for_plan(plan_key)
    if not price_id:
        raise ValidationError(f"Unknown plan: {plan_key}", code="unknown_plan")

    url = get_provider().create_checkout_session(
        price_id=price_id,
        client_reference_id=user_id,
        success_url=settings.CHECKOUT_SUCCESS_URL,
        cancel_url=settings.CHECKOUT_CANCEL_URL,
        metadata={"user_id": user_id},
    )
    log_event("info", "billing.checkout_created", user_id=user_id, plan=plan_key)
    return url


def process_webhook_event(body: bytes, signature_header: Optional[str]) -> ReconcileOutcome:
    """
    Verify and reconcile one webhook delivery.

    1. Verify signature over the raw body (BillingWebhookError on failure)
    2. Dispatch on event type and apply the entitlement write

    Returns:
        ReconcileOutcome (ignored outcomes are still acknowledged)

    Raises:
        BillingWebhookError: Signature or payload invalid
        UpstreamLookupError: Subscription lookup failed
        SQLAlchemyError: Store write failed
    """
    provider = get_provider()
    event = provider.verify_event(body, signature_header)
    return Reconciler(store=get_store(), provider=provider).reconcile(event)
