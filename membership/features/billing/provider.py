"""
Billing provider protocol.

Defines the interface the webhook reconciler and checkout flow need from
the payment provider. Stripe is the only implementation.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class DecodedEvent:
    """A verified provider event.

    `data` is the event's `data.object` payload as a plain dict.
    """
    id: Optional[str]
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Webhook signature verification and decoding
    - Subscription period lookup
    - Checkout session creation
    """

    def verify_event(self, body: bytes, signature_header: Optional[str]) -> DecodedEvent:
        """
        Verify webhook signature over the raw body and decode the event.

        Args:
            body: Raw, unmodified request body
            signature_header: Value of the provider signature header

        Returns:
            Decoded event

        Raises:
            BillingWebhookError: If the signature or payload is invalid
        """
        ...

    def get_subscription_period_end(self, subscription_id: str) -> Optional[datetime]:
        """
        Fetch the end of the current paid period for a subscription.

        Raises:
            UpstreamLookupError: If the provider lookup fails
        """
        ...

    def create_checkout_session(
        self,
        price_id: str,
        client_reference_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Create a hosted checkout session for a subscription.

        Returns:
            Checkout session URL

        Raises:
            BillingProviderError: If session creation fails
        """
        ...


class BillingProviderError(Exception):
    """Base exception for billing provider errors."""
    pass


class BillingWebhookError(BillingProviderError):
    """Inbound event failed verification; never retried, answered with 400."""
    pass


class UpstreamLookupError(BillingProviderError):
    """A provider lookup needed for reconciliation failed; answered with 500."""
    pass
