"""
Stripe billing provider implementation.

Implements BillingProvider using the Stripe API.
Handles webhook signature verification, subscription lookups and
checkout session creation.
"""
import json
import os
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import stripe

from membership.core.config import settings
from membership.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    DecodedEvent,
    UpstreamLookupError,
)


def _field(obj: Any, key: str) -> Any:
    """Read a key from a dict or StripeObject, None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return None


def period_end_from_subscription(subscription: Any) -> Optional[datetime]:
    """
    Extract current_period_end from a subscription as a UTC datetime.

    Older API versions carry it on the subscription itself; newer ones
    only on each subscription item.
    """
    ts = _field(subscription, "current_period_end")
    if ts is None:
        items = _field(_field(subscription, "items"), "data") or []
        if items:
            ts = _field(items[0], "current_period_end")
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        tolerance_seconds: Optional[int] = None,
    ):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY)
            webhook_secret: Stripe webhook signing secret (defaults to STRIPE_WEBHOOK_SECRET)
            tolerance_seconds: Accepted signature timestamp skew
        """
        self.secret_key = secret_key or os.getenv("STRIPE_SECRET_KEY") or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET") or settings.STRIPE_WEBHOOK_SECRET
        if tolerance_seconds is None:
            tolerance_seconds = settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
        self.tolerance_seconds = tolerance_seconds

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def verify_event(self, body: bytes, signature_header: Optional[str]) -> DecodedEvent:
        """
        Verify Stripe webhook signature and decode the event.

        Raises:
            BillingWebhookError: the request is not a genuine, fresh event
            BillingProviderError: no webhook secret is configured, which is a
                deployment fault rather than a bad event
        """
        if not self.webhook_secret:
            raise BillingProviderError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature_header:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            payload = body.decode("utf-8") if isinstance(body, (bytes, bytearray)) else body
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self.webhook_secret, self.tolerance_seconds
            )
            event = json.loads(payload)
        except UnicodeDecodeError as e:
            raise BillingWebhookError(f"Invalid payload encoding: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e.user_message or e}")
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")

        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise BillingWebhookError("Invalid payload: missing event type")

        data = event.get("data") or {}
        obj = data.get("object") if isinstance(data, dict) else None

        return DecodedEvent(
            id=event.get("id"),
            type=event["type"],
            data=obj if isinstance(obj, dict) else {},
        )

    def get_subscription_period_end(self, subscription_id: str) -> Optional[datetime]:
        """Retrieve a subscription and return its current period end."""
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as e:
            raise UpstreamLookupError(f"Stripe subscription lookup failed for {subscription_id}: {e}")
        return period_end_from_subscription(subscription)

    def create_checkout_session(
        self,
        price_id: str,
        client_reference_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """Create Stripe checkout session for a subscription."""
        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                client_reference_id=client_reference_id,
                success_url=success_url,
                cancel_url=cancel_url,
                subscription_data={"metadata": metadata or {}},
                allow_promotion_codes=True,
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")
        return session.url
