"""
Billing API routes.

Minimal surface:
- POST /api/stripe/checkout: Create checkout session for the Pro upgrade
- POST /api/stripe/webhook: Receive Stripe events and reconcile member tiers
"""
import logging
from typing import Optional

from fastapi import APIRouter, Request, HTTPException, Header
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from membership.features.billing.service import start_checkout, process_webhook_event
from membership.features.billing.provider import BillingProviderError, BillingWebhookError


logger = logging.getLogger("membership")

router = APIRouter(prefix="/stripe", tags=["billing"])


class CheckoutRequest(BaseModel):
    """Request to create checkout session."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    plan: Optional[str] = None


class CheckoutResponse(BaseModel):
    """Response with checkout URL."""
    url: str


class WebhookAck(BaseModel):
    received: bool = True


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(request: CheckoutRequest):
    """
    Create Stripe checkout session.

    Returns:
        {"url": "https://checkout.stripe.com/..."}

    Errors:
        400: Missing userId or unknown plan
        500: Stripe API error
    """
    try:
        url = await run_in_threadpool(start_checkout, request.user_id, request.plan)
    except BillingProviderError as e:
        logger.error(f"Stripe checkout error: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"url": url}


@router.post("/webhook", response_model=WebhookAck)
async def handle_webhook(request: Request, stripe_signature: Optional[str] = Header(None)):
    """
    Handle Stripe webhook events.

    Verifies the signature over the raw body, then reconciles the event
    into member_tiers. Ignored events are acknowledged like processed ones
    so Stripe stops redelivering them.

    Returns:
        {"received": true}

    Errors:
        400: Invalid signature or payload (event dropped)
        500: Missing Stripe configuration or processing failed (Stripe redelivers)
    """
    # Raw body: any re-serialization would break the signature
    body = await request.body()

    try:
        await run_in_threadpool(process_webhook_event, body, stripe_signature)
    except BillingWebhookError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook error: {e}")
    except BillingProviderError as e:
        logger.error(f"Webhook cannot be processed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
    except Exception:
        logger.exception("Webhook handler error")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"received": True}
