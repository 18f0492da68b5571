"""
Billing API routes.

Minimal surface:
- POST /api/checkout: Create subscription checkout session
- POST /api/webhooks/stripe: Handle Stripe webhooks
- GET  /api/webhooks/stripe: Liveness probe for the webhook URL
"""
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, ConfigDict, Field

from sheetgenius.api.deps import get_billing_service
from sheetgenius.features.billing.service import BillingService


router = APIRouter(prefix="/api", tags=["billing"])


class CheckoutRequest(BaseModel):
    """Request to create checkout session."""
    model_config = ConfigDict(populate_by_name=True)

    price_id: Optional[str] = Field(default=None, alias="priceId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    plan: Optional[str] = None


class CheckoutResponse(BaseModel):
    """Response with the checkout session id."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")


@router.post("/checkout", response_model=CheckoutResponse, response_model_by_alias=True)
def create_checkout(body: CheckoutRequest, service: BillingService = Depends(get_billing_service)):
    """
    Create Stripe checkout session.

    Returns:
        {"sessionId": "cs_..."}

    Errors:
        400: priceId (or plan) or userId missing
        500: Stripe API error
    """
    session_id = service.start_checkout(price_id=body.price_id, user_id=body.user_id, plan=body.plan)
    return {"sessionId": session_id}


@router.post("/webhooks/stripe")
async def handle_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    service: BillingService = Depends(get_billing_service),
):
    """
    Handle Stripe webhook events.

    Verifies the signature over the raw body, then reconciles the user's
    plan. Once verified, the delivery is acknowledged even if the profile
    write fails.

    Returns:
        {"received": true}

    Errors:
        400: Invalid or missing signature
        500: Stripe lookup failed
    """
    # Raw body is required for signature verification
    body = await request.body()
    service.process_webhook(body, stripe_signature)
    return {"received": True}


@router.get("/webhooks/stripe")
async def webhook_status():
    return {"message": "Webhook endpoint is active"}
