"""
Checkout flow - turn a ticket selection into a Pix payment and explain failures
"""

from typing import Any, Dict, Mapping, Optional
import logging

from src.integrations.contracts.errors import (
    AuthError,
    ConfigurationError,
    GatewayError,
    GatewayPermissionError,
    GatewayTimeoutError,
    NetworkError,
)
from src.integrations.contracts.interfaces import Customer, PaymentClient, PaymentRecord, PaymentStatus
from src.storefront.catalogue import TicketCatalogue

logger = logging.getLogger(__name__)


_REMEDIATION = {
    "configuration": {
        "http_status": 503,
        "steps": [
            "Create an account at https://amplopay.com.br",
            "Generate an API key in the dashboard",
            "Set AMPLO_PAY_API_KEY in the .env file and restart the service",
        ],
    },
    "network": {
        "http_status": 504,
        "steps": [
            "Check your internet connection",
            "Try again in a few seconds",
        ],
    },
    "server": {
        "http_status": 502,
        "steps": [
            "Wait a few minutes",
            "Try again",
            "If it persists, contact support",
        ],
    },
    "unknown": {
        "http_status": 500,
        "steps": ["Try again in a few moments"],
    },
}


def describe_payment_error(exc: Exception) -> Dict[str, Any]:
    """
    Classify a payment creation failure for the user.

    configuration: operator must fix credentials or permissions
    network: user can retry right away
    server: gateway problem, wait and retry
    """
    if isinstance(exc, (ConfigurationError, AuthError, GatewayPermissionError)):
        category = "configuration"
    elif isinstance(exc, (NetworkError, GatewayTimeoutError)):
        category = "network"
    elif isinstance(exc, GatewayError):
        category = "server"
    else:
        category = "unknown"

    remediation = _REMEDIATION[category]
    return {
        "category": category,
        "error": type(exc).__name__,
        "message": str(exc) or "Unexpected payment error",
        "remediation": list(remediation["steps"]),
        "retryable": category in {"network", "server"},
        "http_status": remediation["http_status"],
    }


class CheckoutService:
    def __init__(self, client: PaymentClient, catalogue: TicketCatalogue, poll_interval_seconds: float = 5.0):
        self.client = client
        self.catalogue = catalogue
        self.poll_interval_seconds = poll_interval_seconds

    async def start_checkout(
        self,
        selection: Mapping[str, int],
        customer: Optional[Customer] = None,
    ) -> PaymentRecord:
        """Create the payment for a selection and start watching its status.

        Raises InvalidSelectionError for bad selections and the payment error
        taxonomy for gateway failures; nothing is cached when creation fails.
        """
        line_items = self.catalogue.build_line_items(selection)
        amount = self.catalogue.total(line_items)
        description = self.catalogue.describe(line_items)

        logger.info("Starting checkout: %d ticket(s), total=%.2f", self.catalogue.ticket_count(line_items), amount)
        record = await self.client.create_payment(
            amount,
            description,
            line_items,
            customer=customer,
            metadata={"event": self.catalogue.event.name},
        )

        self.client.subscribe(record.id, self._make_listener(record.id))
        self.client.start_status_polling(record.id, self.poll_interval_seconds)
        self.client.start_expiry_timer(record.id)
        return record

    @staticmethod
    def _make_listener(payment_id: str):
        def _on_status_change(status: PaymentStatus) -> None:
            if status == PaymentStatus.PAID:
                logger.info("Checkout %s paid; tickets confirmed", payment_id)
            elif status in (PaymentStatus.FAILED, PaymentStatus.EXPIRED):
                logger.info("Checkout %s ended as %s; a new Pix code is needed", payment_id, status.value)

        return _on_status_change
