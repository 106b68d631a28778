"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.endpoints.payments import payments_api, payments_ws
from src.api.endpoints.webhooks import router as webhooks_router
from src.error_handler import ErrorHandler
from src.integrations.clients.factory import build_payment_client
from src.integrations.contracts.interfaces import PaymentClient
from src.integrations.policy.payment_state import PaymentStore, StatusBroadcaster
from src.storefront.catalogue import TicketCatalogue, load_ticket_catalogue
from src.storefront.checkout import CheckoutService
from src.utils.config_loader import PaymentSettings, load_payment_settings

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

error_handler = ErrorHandler()


def create_app(
    settings: Optional[PaymentSettings] = None,
    catalogue: Optional[TicketCatalogue] = None,
    payment_client: Optional[PaymentClient] = None,
) -> FastAPI:
    settings = settings or load_payment_settings()

    app = FastAPI(
        title="DEBOXE Eclipse Tickets API",
        description="Ticket storefront checkout with Pix payments",
        version="1.0.0",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============================================================================
    # DEPENDENCY INJECTION
    # ============================================================================

    # One store + broadcaster per app; the selected client owns neither globally.
    if payment_client is None:
        broadcaster = StatusBroadcaster()
        payment_client = build_payment_client(settings, PaymentStore(), broadcaster)
    else:
        broadcaster = payment_client.broadcaster

    catalogue = catalogue or load_ticket_catalogue(settings.tickets_config_path)

    app.state.settings = settings
    app.state.broadcaster = broadcaster
    app.state.payment_client = payment_client
    app.state.checkout = CheckoutService(payment_client, catalogue, poll_interval_seconds=settings.poll_interval_seconds)

    app.include_router(payments_api, prefix="/api/v1")
    app.include_router(payments_ws)
    app.include_router(webhooks_router)

    # ============================================================================
    # ENDPOINTS
    # ============================================================================

    @app.get("/", tags=["Health"])
    async def root():
        """Health check endpoint."""
        return {"service": "DEBOXE Eclipse Tickets API", "status": "healthy", "version": "1.0.0", "timestamp": datetime.now().isoformat()}

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Detailed health check (payment mode, cached payments)."""
        client = app.state.payment_client
        return {
            "status": "healthy",
            "payments": {"mode": client.mode, "cached": len(client.store)},
            "timestamp": datetime.now().isoformat(),
        }

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        payload = error_handler.handle_exception(exc, context={"path": request.url.path})
        return JSONResponse(status_code=500, content=payload)

    # ============================================================================
    # STARTUP/SHUTDOWN EVENTS
    # ============================================================================
    @app.on_event("startup")
    async def startup_event():
        """Initialize on startup"""
        logger.info("Starting DEBOXE Eclipse Tickets API (payments mode=%s)...", app.state.payment_client.mode)
        if not settings.webhook_secret:
            logger.warning("AMPLO_PAY_WEBHOOK_SECRET not set; gateway webhooks will be rejected and polling is the only status path")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        logger.info("Shutting down DEBOXE Eclipse Tickets API...")
        await app.state.payment_client.aclose()

    return app


app = create_app()
