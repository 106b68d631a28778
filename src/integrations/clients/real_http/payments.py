"""
Real Payments HTTP Client (Amplo Pay).

Used when an Amplo Pay API key is configured. Creates Pix payments and
queries their status; every outbound call goes through _send_with_retry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

import httpx

from src.integrations.contracts.errors import (
    AuthError,
    ConfigurationError,
    GatewayError,
    GatewayPermissionError,
    GatewayTimeoutError,
    NetworkError,
    PaymentError,
)
from src.integrations.contracts.interfaces import Customer, LineItem, PaymentRecord
from src.integrations.contracts.payments import CreatePaymentRequest, validate_payment_request
from src.integrations.policy.payment_lifecycle import BasePaymentClient
from src.integrations.policy.payment_state import PaymentStore, StatusBroadcaster
from src.integrations.policy.response_wrappers import (
    IntegrationResponseError,
    normalize_amplo_pay_payment,
    normalize_amplo_pay_status,
)
from src.utils.pix import render_qr_data_url

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://sandbox.amplopay.com.br/v1"
PIX_EXPIRES_IN_SECONDS = 900
USER_AGENT = "DEBOXE-ECLIPSE/1.0"


class AmploPayClient(BasePaymentClient):
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        callback_url: Optional[str] = None,
        *,
        store: Optional[PaymentStore] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        request_timeout_seconds: float = 15.0,
        source: str = "deboxe-eclipse",
        **lifecycle_options: Any,
    ) -> None:
        super().__init__(store, broadcaster, **lifecycle_options)
        self.api_key = api_key if api_key is not None else os.getenv("AMPLO_PAY_API_KEY", "")
        self.base_url = (base_url or os.getenv("AMPLO_PAY_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        public_base = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
        self.callback_url = callback_url or f"{public_base}/webhook/amplo-pay"
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.request_timeout_seconds = request_timeout_seconds
        self.source = source
        self._transport = transport

    @property
    def mode(self) -> str:
        return "real"

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def create_payment(
        self,
        amount: float,
        description: str,
        line_items: List[LineItem],
        customer: Optional[Customer] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentRecord:
        request = CreatePaymentRequest(
            amount=amount,
            description=description,
            line_items=list(line_items or []),
            customer=customer,
            metadata=dict(metadata or {}),
        )
        errors = validate_payment_request(request)
        if errors:
            raise ValueError("; ".join(errors))

        if not self.api_key:
            raise ConfigurationError("Amplo Pay API key is not configured. Set AMPLO_PAY_API_KEY in the .env file.")

        url = f"{self.base_url}/payments"
        logger.info(
            "Creating Pix payment amount=%.2f items=%d url=%s api_key_length=%d",
            request.amount, len(request.line_items), url, len(self.api_key),
        )

        async with self._http_client() as client:
            response = await self._send_with_retry(
                client, "POST", url, json=self._build_create_body(request), headers=self._headers(json_body=True)
            )

        self._raise_for_gateway_status(response)
        data = self._json_or_gateway_error(response)

        try:
            normalized = normalize_amplo_pay_payment(
                data,
                fallback_amount=request.amount,
                expires_in_seconds=PIX_EXPIRES_IN_SECONDS,
            )
        except IntegrationResponseError as exc:
            raise GatewayError(f"Malformed gateway response: {exc}", payload=exc.payload) from exc

        qr_image = normalized.qr_code_url
        if not qr_image and normalized.pix_code:
            qr_image = render_qr_data_url(normalized.pix_code)

        record = PaymentRecord(
            id=normalized.id,
            amount=normalized.amount or request.amount,
            description=request.description,
            line_items=request.line_items,
            status=normalized.status,
            pix_payload=normalized.pix_code,
            qr_image=qr_image,
            created_at=normalized.created_at,
            expires_at=normalized.expires_at,
            metadata=request.metadata,
        )
        self._store_new_record(record)
        logger.info("Pix payment %s created (status=%s)", record.id, record.status.value)
        return record

    async def get_payment_status(self, payment_id: str) -> Optional[PaymentRecord]:
        if not self.api_key:
            logger.warning("Amplo Pay API key is not configured; returning cached payment %s", payment_id)
            return self.store.get(payment_id)

        url = f"{self.base_url}/payments/{payment_id}"
        try:
            async with self._http_client() as client:
                response = await self._send_with_retry(client, "GET", url, headers=self._headers())
            if not response.is_success:
                logger.error("Status query for payment %s failed: HTTP %s", payment_id, response.status_code)
                return self.store.get(payment_id)
            status = normalize_amplo_pay_status(self._json_or_gateway_error(response)).status
        except (PaymentError, IntegrationResponseError, httpx.HTTPError) as exc:
            logger.error("Status query for payment %s failed: %s", payment_id, exc)
            return self.store.get(payment_id)

        # Cache merge only; listeners and timers hear about it via the poller's apply_status_update
        return self.store.set_status(payment_id, status)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.request_timeout_seconds, transport=self._transport)

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers: Dict[str, str] = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _build_create_body(self, request: CreatePaymentRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "amount": request.amount,
            "description": request.description,
            "payment_method": "pix",
            "expires_in": PIX_EXPIRES_IN_SECONDS,
            "callback_url": self.callback_url,
        }
        if request.customer and request.customer.email:
            body["customer"] = {"email": request.customer.email, "name": request.customer.name}
        body["metadata"] = {
            **request.metadata,
            "tickets": json.dumps([asdict(item) for item in request.line_items]),
            "source": self.source,
        }
        return body

    async def _send_with_retry(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request with up to max_retries retries.

        Only transport failures and timeouts are retried; any HTTP response ends
        the loop. Attempt i waits i * retry_delay_seconds before the next try.
        """
        attempts = self.max_retries + 1
        failure: Optional[Tuple[PaymentError, Exception]] = None

        for attempt in range(1, attempts + 1):
            try:
                logger.debug("%s %s (attempt %d/%d)", method, url, attempt, attempts)
                return await asyncio.wait_for(
                    client.request(method, url, **kwargs),
                    timeout=self.request_timeout_seconds,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                failure = (
                    GatewayTimeoutError(
                        f"Timeout: the payment gateway took longer than {self.request_timeout_seconds:g}s to respond. "
                        "Check your internet connection."
                    ),
                    exc,
                )
            except httpx.RequestError as exc:
                failure = (NetworkError(f"Connection error: could not reach the payment gateway ({exc})."), exc)

            logger.warning("Attempt %d/%d for %s %s failed: %s", attempt, attempts, method, url, failure[0])
            if attempt < attempts:
                await asyncio.sleep(self.retry_delay_seconds * attempt)

        error, cause = failure
        raise error from cause

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        fallback = f"Error {response.status_code}: {response.reason_phrase}"
        try:
            data = response.json()
        except ValueError:
            return fallback
        if isinstance(data, dict):
            return str(data.get("message") or data.get("error") or fallback)
        return fallback

    def _raise_for_gateway_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        code = response.status_code
        detail = self._error_message(response)
        logger.error("Amplo Pay returned HTTP %s: %s", code, detail)

        if code == 401:
            raise AuthError("Invalid API key. Check AMPLO_PAY_API_KEY.", status_code=code, payload={"detail": detail})
        if code == 403:
            raise GatewayPermissionError(
                "Access denied. Check the permissions of your API key.",
                status_code=code,
                payload={"detail": detail},
            )
        if code >= 500:
            raise GatewayError(
                "Amplo Pay internal error. Try again in a few minutes.",
                status_code=code,
                payload={"detail": detail},
            )
        raise GatewayError(f"Error processing payment: {detail}", status_code=code, payload={"detail": detail})

    @staticmethod
    def _json_or_gateway_error(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError("Gateway returned a response that is not JSON.", status_code=response.status_code) from exc
