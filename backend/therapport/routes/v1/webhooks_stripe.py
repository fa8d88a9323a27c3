# backend/therapport/routes/v1/webhooks_stripe.py
"""
Stripe webhook endpoint.

The raw body is needed for signature verification, so the request is read
directly rather than parsed into a schema. Signature problems answer 400;
handler failures answer 500 so Stripe retries the delivery.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request

from ...api.dependencies.services import get_stripe_webhook_service
from ...schemas.webhook import WebhookAckResponse
from ...services.stripe_webhook_service import StripeWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stripe-webhooks-v1"])


@router.post("", response_model=WebhookAckResponse)
async def handle_stripe_webhook(
    request: Request,
    webhook_service: StripeWebhookService = Depends(get_stripe_webhook_service),
) -> WebhookAckResponse:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    result = await asyncio.to_thread(webhook_service.handle, payload, signature)
    return WebhookAckResponse(**result)
