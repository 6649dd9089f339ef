"""
Webhook reconciler: maps verified Stripe events onto the member_tiers row.

Per-user state is just free/pro:

    checkout.session.completed          -> pro   (upsert by user_id)
    invoice.payment_succeeded (cycle)   -> pro   (refresh period, by customer)
    customer.subscription.deleted       -> free  (by customer)
    invoice.payment_failed              -> free  (by customer)
    anything else                       -> ignored

Events arrive at least once and in any order, so every write is an upsert
or a keyed update that is safe to replay. Conditions that can never succeed
on redelivery (no user reference, no customer) are acknowledged as ignored.
Provider and store failures propagate so the webhook answers 500 and Stripe
redelivers.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from membership.core.logging import log_event
from membership.features.billing.provider import BillingProvider, DecodedEvent
from membership.features.entitlements.store import EntitlementStore
from membership.models.entitlement import Tier

CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

RENEWAL_BILLING_REASON = "subscription_cycle"


class OutcomeKind(str, Enum):
    UPGRADED = "upgraded"
    RENEWED = "renewed"
    DOWNGRADED = "downgraded"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ReconcileOutcome:
    kind: OutcomeKind
    reason: Optional[str] = None
    user_id: Optional[str] = None
    customer_id: Optional[str] = None
    rows_matched: Optional[int] = None

    @classmethod
    def ignored(cls, reason: str, **kwargs) -> "ReconcileOutcome":
        return cls(kind=OutcomeKind.IGNORED, reason=reason, **kwargs)


def _string_id(value: Any) -> Optional[str]:
    """Resolve an id field that may be a bare id or an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        inner = value.get("id")
        return inner if isinstance(inner, str) and inner else None
    return None


def resolve_customer_id(obj: Dict[str, Any]) -> Optional[str]:
    """Customer id of an invoice or subscription payload.

    Only the top-level `customer` field is consulted; invoices and
    subscriptions both carry it.
    """
    return _string_id(obj.get("customer"))


class Reconciler:
    """Applies decoded events to the entitlement store."""

    def __init__(self, store: EntitlementStore, provider: BillingProvider):
        self.store = store
        self.provider = provider
        self._handlers: Dict[str, Callable[[DecodedEvent], ReconcileOutcome]] = {
            CHECKOUT_COMPLETED: self._on_checkout_completed,
            INVOICE_PAYMENT_SUCCEEDED: self._on_invoice_paid,
            SUBSCRIPTION_DELETED: self._on_downgrade,
            INVOICE_PAYMENT_FAILED: self._on_downgrade,
        }

    def reconcile(self, event: DecodedEvent) -> ReconcileOutcome:
        handler = self._handlers.get(event.type)
        if handler is None:
            outcome = ReconcileOutcome.ignored("unhandled_event_type")
        else:
            outcome = handler(event)

        level = "warning" if outcome.reason and outcome.reason != "unhandled_event_type" else "info"
        log_event(
            level,
            "billing.reconcile",
            user_id=outcome.user_id,
            event_type=event.type,
            event_id=event.id,
            outcome=outcome.kind.value,
            reason=outcome.reason,
            customer_id=outcome.customer_id,
            rows_matched=outcome.rows_matched,
        )
        return outcome

    def _on_checkout_completed(self, event: DecodedEvent) -> ReconcileOutcome:
        session = event.data
        user_id = session.get("client_reference_id") or None
        if not user_id:
            return ReconcileOutcome.ignored("missing_client_reference")

        customer_id = _string_id(session.get("customer"))
        if not customer_id:
            # pro rows must always carry the billing customer
            return ReconcileOutcome.ignored("missing_customer", user_id=user_id)

        subscription_id = _string_id(session.get("subscription"))
        period_end = None
        if subscription_id:
            period_end = self.provider.get_subscription_period_end(subscription_id)

        self.store.upsert_for_user(
            user_id,
            {
                "tier": Tier.PRO,
                "stripe_customer_id": customer_id,
                "stripe_subscription_id": subscription_id,
                "current_period_end": period_end,
            },
        )
        return ReconcileOutcome(
            kind=OutcomeKind.UPGRADED, user_id=user_id, customer_id=customer_id
        )

    def _on_invoice_paid(self, event: DecodedEvent) -> ReconcileOutcome:
        invoice = event.data
        # The first invoice of a subscription is covered by checkout completion
        if invoice.get("billing_reason") != RENEWAL_BILLING_REASON:
            return ReconcileOutcome.ignored("not_a_renewal")

        customer_id = resolve_customer_id(invoice)
        if not customer_id:
            return ReconcileOutcome.ignored("unresolved_customer")

        subscription_id = _string_id(invoice.get("subscription"))
        if not subscription_id:
            subscription_id = _string_id(
                ((invoice.get("parent") or {}).get("subscription_details") or {}).get("subscription")
            )
        if not subscription_id:
            return ReconcileOutcome.ignored("missing_subscription", customer_id=customer_id)

        values: Dict[str, Any] = {"tier": Tier.PRO}
        period_end = self.provider.get_subscription_period_end(subscription_id)
        if period_end is not None:
            values["current_period_end"] = period_end
        matched = self.store.update_by_customer(customer_id, values)
        return ReconcileOutcome(
            kind=OutcomeKind.RENEWED, customer_id=customer_id, rows_matched=matched
        )

    def _on_downgrade(self, event: DecodedEvent) -> ReconcileOutcome:
        customer_id = resolve_customer_id(event.data)
        if not customer_id:
            return ReconcileOutcome.ignored("unresolved_customer")

        # Customer and subscription ids stay on the row as history
        matched = self.store.update_by_customer(customer_id, {"tier": Tier.FREE})
        return ReconcileOutcome(
            kind=OutcomeKind.DOWNGRADED, customer_id=customer_id, rows_matched=matched
        )
