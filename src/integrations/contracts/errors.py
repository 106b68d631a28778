"""
Payment error taxonomy.

Creation failures surface to the checkout flow as one of these classes so it
can tell operator problems (configuration, credentials) from transient
network problems and from gateway-side failures.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PaymentError(Exception):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class ConfigurationError(PaymentError):
    """No gateway credential configured."""


class AuthError(PaymentError):
    """Gateway rejected the credential (HTTP 401)."""


class GatewayPermissionError(PaymentError, PermissionError):
    """Credential lacks permission for the operation (HTTP 403)."""


class GatewayError(PaymentError):
    """Gateway-side failure: 5xx, unexpected status or malformed response."""


class GatewayTimeoutError(PaymentError, TimeoutError):
    """No response within the per-attempt timeout."""


class NetworkError(PaymentError):
    """Transport-level failure (DNS, connection refused, TLS, CORS rejection)."""
