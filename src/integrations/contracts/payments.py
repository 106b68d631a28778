from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .interfaces import TERMINAL_STATUSES, Customer, LineItem, PaymentStatus

"""
Payment contracts.

Request and webhook shapes shared by:
- clients/mocks/payments.py (simulated Pix payments, no network)
- clients/real_http/payments.py (Amplo Pay gateway)
- api/endpoints/webhooks.py (relay for gateway push notifications)
"""

# ---------------------------------------------------------------------------
# Request / event models
# ---------------------------------------------------------------------------


@dataclass
class CreatePaymentRequest:
    amount: float
    description: str
    line_items: List[LineItem]
    customer: Optional[Customer] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentWebhookEvent:
    """Payload received from the gateway webhook, after signature verification."""
    event: str
    payment_id: str
    status: PaymentStatus
    raw_payload: Dict[str, Any] = field(default_factory=dict)


WEBHOOK_EVENT_STATUSES: Dict[str, PaymentStatus] = {
    "payment.pending": PaymentStatus.PENDING,
    "payment.paid": PaymentStatus.PAID,
    "payment.failed": PaymentStatus.FAILED,
    "payment.expired": PaymentStatus.EXPIRED,
}


class UnknownWebhookEvent(ValueError):
    pass


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def validate_payment_request(request: CreatePaymentRequest) -> List[str]:
    """
    Return a list of validation errors.
    Empty list means the request is valid.
    """
    errors: List[str] = []

    if request.amount is None or request.amount <= 0:
        errors.append("amount must be greater than zero")
    if not (request.description or "").strip():
        errors.append("description is required")
    if not request.line_items:
        errors.append("at least one line item is required")

    line_sum = 0.0
    for idx, item in enumerate(request.line_items or []):
        if item.quantity <= 0:
            errors.append(f"line item {idx} ({item.category}): quantity must be greater than zero")
        if item.unit_price < 0:
            errors.append(f"line item {idx} ({item.category}): unit price must not be negative")
        if abs(item.line_total - item.quantity * item.unit_price) > 0.005:
            errors.append(f"line item {idx} ({item.category}): line total does not match quantity x unit price")
        line_sum += item.line_total

    if request.line_items and request.amount and abs(line_sum - request.amount) > 0.005:
        errors.append(f"amount {request.amount:.2f} does not match line item total {line_sum:.2f}")

    return errors


def is_terminal_status(status: Union[PaymentStatus, str]) -> bool:
    """Return True if the payment has reached a final, non-changeable state."""
    return coerce_status(status) in TERMINAL_STATUSES


def coerce_status(status: Union[PaymentStatus, str]) -> PaymentStatus:
    if isinstance(status, PaymentStatus):
        return status
    return PaymentStatus(str(status or "").strip().lower())


def status_from_webhook_event(event_name: str) -> PaymentStatus:
    key = (event_name or "").strip().lower()
    if key not in WEBHOOK_EVENT_STATUSES:
        raise UnknownWebhookEvent(f"Unsupported webhook event '{event_name}'.")
    return WEBHOOK_EVENT_STATUSES[key]


def parse_webhook_event(payload: Dict[str, Any]) -> PaymentWebhookEvent:
    """
    Build a PaymentWebhookEvent from `{event: "payment.paid", data: {id: ...}}`.

    Raises UnknownWebhookEvent for events the storefront does not track and
    ValueError when the payload has no payment id.
    """
    if not isinstance(payload, dict):
        raise ValueError("webhook payload must be a JSON object")

    event_name = str(payload.get("event") or "")
    status = status_from_webhook_event(event_name)

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    payment_id = data.get("id") or data.get("payment_id") or payload.get("payment_id")
    if not payment_id:
        raise ValueError("webhook payload has no payment id")

    return PaymentWebhookEvent(
        event=event_name,
        payment_id=str(payment_id),
        status=status,
        raw_payload=payload,
    )
