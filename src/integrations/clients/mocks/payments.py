"""
Simulated Payments Client.

Purpose:
- Stand-in for the Amplo Pay gateway when no API key is configured
- Does NOT make any network calls
- Fabricates a Pix payment locally (uuid id, synthetic Pix code, QR image)
  and approves it automatically after a fixed delay through the same
  apply_status_update path the webhook and the poller use

Swap:
Selected by src/integrations/clients/factory.py; callers only see the
PaymentClient interface, so nothing else changes when a key is added.
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from src.integrations.contracts.interfaces import (
    Customer,
    LineItem,
    PaymentRecord,
    PaymentStatus,
    utcnow,
)
from src.integrations.contracts.payments import CreatePaymentRequest, validate_payment_request
from src.integrations.policy.payment_lifecycle import BasePaymentClient
from src.integrations.policy.payment_state import PaymentStore, StatusBroadcaster
from src.utils.pix import generate_mock_pix_code, render_qr_data_url

logger = logging.getLogger(__name__)


class SimulatedPaymentsClient(BasePaymentClient):
    """
    Simulated Pix gateway.

    Parameters
    ----------
    auto_approve_seconds : float or None
        Delay before the payment is marked paid. None disables approval. Default 10.
    simulated_latency_seconds : float
        Pause before creation returns, mimicking a gateway round trip. Default 1.
    expires_in_seconds : int
        Lifetime of the Pix code. Default 900 (15 minutes).
    """

    def __init__(
        self,
        store: Optional[PaymentStore] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        *,
        auto_approve_seconds: Optional[float] = 10.0,
        simulated_latency_seconds: float = 1.0,
        expires_in_seconds: int = 900,
        **lifecycle_options: Any,
    ) -> None:
        super().__init__(store, broadcaster, **lifecycle_options)
        self.auto_approve_seconds = auto_approve_seconds
        self.simulated_latency_seconds = simulated_latency_seconds
        self.expires_in_seconds = expires_in_seconds
        logger.info("[SIMULATED] Payments client initialised (auto_approve=%ss)", auto_approve_seconds)

    @property
    def mode(self) -> str:
        return "simulated"

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

        logger.info("[SIMULATED] Creating Pix payment amount=%.2f items=%d", request.amount, len(request.line_items))
        if self.simulated_latency_seconds > 0:
            await asyncio.sleep(self.simulated_latency_seconds)

        payment_id = str(uuid.uuid4())
        pix_payload = generate_mock_pix_code()
        created_at = utcnow()

        record = PaymentRecord(
            id=payment_id,
            amount=request.amount,
            description=request.description,
            line_items=request.line_items,
            status=PaymentStatus.PENDING,
            pix_payload=pix_payload,
            qr_image=render_qr_data_url(pix_payload),
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=self.expires_in_seconds),
            metadata=request.metadata,
        )
        self._store_new_record(record)

        if self.auto_approve_seconds is not None:
            self._schedule(payment_id, "auto_approve", self._approve_later(payment_id))

        logger.info("[SIMULATED] Payment %s created", payment_id)
        return record

    async def get_payment_status(self, payment_id: str) -> Optional[PaymentRecord]:
        return self.store.get(payment_id)

    async def _approve_later(self, payment_id: str) -> None:
        await asyncio.sleep(self.auto_approve_seconds)
        logger.info("[SIMULATED] Auto-approving payment %s", payment_id)
        self.apply_status_update(payment_id, PaymentStatus.PAID, source="simulation")
