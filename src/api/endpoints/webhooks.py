import json
import logging

from fastapi import APIRouter, HTTPException, Request, status

from src.integrations.contracts.payments import UnknownWebhookEvent, parse_webhook_event
from src.integrations.policy.webhook_signature import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-AmploPay-Signature"


@router.post("/webhook/amplo-pay", tags=["Webhooks"])
async def amplo_pay_webhook(request: Request):
    """
    Relay for Amplo Pay push notifications.

    - Verifies the HMAC-SHA256 signature of the raw body against AMPLO_PAY_WEBHOOK_SECRET.
    - Forwards validated payment.* events to the payment client.
    - Unknown event types are acknowledged and ignored so the gateway stops retrying.
    """
    body = await request.body()
    secret = request.app.state.settings.webhook_secret
    if not secret:
        logger.warning("Webhook received but AMPLO_PAY_WEBHOOK_SECRET is not configured; rejecting")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Webhook secret not configured")

    if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
        logger.warning("Webhook signature check failed")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        payload = json.loads(body or b"{}")
        event = parse_webhook_event(payload)
    except UnknownWebhookEvent as e:
        logger.info("Ignoring webhook: %s", e)
        return {"ok": True, "ignored": True}
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Malformed webhook payload: {e}") from e

    client = request.app.state.payment_client
    client.receive_external_event(event.payment_id, event.status, event.raw_payload)
    return {"ok": True, "id": event.payment_id, "status": event.status.value}
