"""
Integrations layer.
This package contains all code used to communicate with the payment gateway:
- Amplo Pay Pix payments (real HTTP client)
- a simulated gateway used when no API key is configured

Key rule:
- The storefront and API MUST NOT call the gateway directly.
- They call a PaymentClient (src/integrations/contracts/interfaces.py).

Switching implementations:
- The selection of simulated vs real clients happens in ONE place
  (src/integrations/clients/factory.py), once at startup.
"""

from .contracts.errors import (
    AuthError,
    ConfigurationError,
    GatewayError,
    GatewayPermissionError,
    GatewayTimeoutError,
    NetworkError,
    PaymentError,
)
from .contracts.interfaces import (
    TERMINAL_STATUSES,
    Customer,
    LineItem,
    PaymentClient,
    PaymentRecord,
    PaymentStatus,
    StatusUpdateEvent,
)
from .contracts.payments import (
    CreatePaymentRequest,
    PaymentWebhookEvent,
    is_terminal_status,
    parse_webhook_event,
    validate_payment_request,
)

__all__ = [
    # interfaces
    "Customer", "LineItem", "PaymentClient", "PaymentRecord", "PaymentStatus",
    "StatusUpdateEvent", "TERMINAL_STATUSES",
    # payments
    "CreatePaymentRequest", "PaymentWebhookEvent",
    "is_terminal_status", "parse_webhook_event", "validate_payment_request",
    # errors
    "AuthError", "ConfigurationError", "GatewayError", "GatewayPermissionError",
    "GatewayTimeoutError", "NetworkError", "PaymentError",
]
