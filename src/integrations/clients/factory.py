"""Payment client factory: picks the real or simulated implementation once, at startup."""

import logging
from typing import Optional

from src.integrations.clients.mocks.payments import SimulatedPaymentsClient
from src.integrations.clients.real_http.payments import AmploPayClient
from src.integrations.contracts.interfaces import PaymentClient
from src.integrations.policy.payment_state import PaymentStore, StatusBroadcaster
from src.utils.config_loader import PaymentSettings

logger = logging.getLogger(__name__)


def build_payment_client(
    settings: PaymentSettings,
    store: Optional[PaymentStore] = None,
    broadcaster: Optional[StatusBroadcaster] = None,
) -> PaymentClient:
    """
    Return the client selected by PAYMENTS_MODE / AMPLO_PAY_API_KEY.

    With PAYMENTS_MODE=auto a missing key selects the simulated client. Forcing
    PAYMENTS_MODE=real without a key still builds the real client, so checkouts
    fail with ConfigurationError instead of silently simulating.
    """
    store = store if store is not None else PaymentStore()
    broadcaster = broadcaster if broadcaster is not None else StatusBroadcaster()

    if settings.use_real_gateway:
        if not settings.api_key:
            logger.warning("PAYMENTS_MODE=%s but AMPLO_PAY_API_KEY is empty; payments will fail", settings.mode)
        logger.info("Using Amplo Pay gateway at %s", settings.base_url)
        return AmploPayClient(
            api_key=settings.api_key,
            base_url=settings.base_url,
            callback_url=settings.callback_url,
            store=store,
            broadcaster=broadcaster,
            poll_ceiling_seconds=settings.poll_ceiling_seconds,
            retention_seconds=settings.retention_seconds,
        )

    logger.info("No Amplo Pay API key configured; using simulated payments")
    return SimulatedPaymentsClient(
        store=store,
        broadcaster=broadcaster,
        auto_approve_seconds=settings.simulated_approval_seconds,
        simulated_latency_seconds=settings.simulated_latency_seconds,
        poll_ceiling_seconds=settings.poll_ceiling_seconds,
        retention_seconds=settings.retention_seconds,
    )
