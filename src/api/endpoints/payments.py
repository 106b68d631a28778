from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field

from src.integrations.contracts.errors import PaymentError
from src.integrations.contracts.interfaces import Customer, PaymentClient
from src.integrations.contracts.payments import is_terminal_status
from src.integrations.policy.payment_state import StatusBroadcaster
from src.storefront.checkout import CheckoutService, describe_payment_error

import logging

logger = logging.getLogger(__name__)

api = APIRouter()
payments_api = api
payments_ws = APIRouter()


class CheckoutRequest(BaseModel):
    tickets: Dict[str, int] = Field(..., description="Ticket code -> quantity, e.g. {'vip_inteira': 2}")
    customer_email: Optional[str] = Field(default=None, description="Sent to the gateway when present")
    customer_name: Optional[str] = None


def get_payment_client(request: Request) -> PaymentClient:
    return request.app.state.payment_client


def get_checkout(request: Request) -> CheckoutService:
    return request.app.state.checkout


@api.get("/tickets", tags=["Tickets"])
async def list_tickets(request: Request):
    return get_checkout(request).catalogue.to_dict()


@api.post("/checkout", status_code=status.HTTP_201_CREATED, tags=["Payments"])
async def checkout(body: CheckoutRequest, request: Request):
    customer = Customer(email=body.customer_email, name=body.customer_name) if body.customer_email else None
    try:
        record = await get_checkout(request).start_checkout(body.tickets, customer=customer)
    except PaymentError as e:
        info = describe_payment_error(e)
        http_status = info.pop("http_status")
        logger.warning("Checkout failed (%s): %s", info["category"], e)
        raise HTTPException(status_code=http_status, detail=info) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    client = get_payment_client(request)
    return {**record.to_dict(), "mode": client.mode}


@api.get("/payments/{payment_id}", tags=["Payments"])
async def get_payment(payment_id: str, request: Request):
    record = await get_payment_client(request).get_payment_status(payment_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return record.to_dict()


@api.post("/payments/{payment_id}/poll", status_code=status.HTTP_202_ACCEPTED, tags=["Payments"])
async def start_polling(payment_id: str, request: Request):
    client = get_payment_client(request)
    record = client.get_cached(payment_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    if record.is_terminal:
        return {"id": payment_id, "polling": False, "status": record.status.value}

    interval = request.app.state.settings.poll_interval_seconds
    client.start_status_polling(payment_id, interval)
    return {"id": payment_id, "polling": True, "interval_seconds": interval}


@payments_ws.websocket("/ws/payments")
async def payment_status_stream(websocket: WebSocket):
    """
    Stream status updates as JSON: {"id", "status", "source", "timestamp"}.

    - With ?payment_id=... only that payment is streamed: the current status is
      sent first and the socket closes after a terminal status.
    - Without it, every update is streamed until the client disconnects.
    """
    client: PaymentClient = websocket.app.state.payment_client
    broadcaster: StatusBroadcaster = websocket.app.state.broadcaster
    payment_id = websocket.query_params.get("payment_id")

    await websocket.accept()
    # Subscribe before the snapshot so no update falls in between.
    stream = broadcaster.open_stream(payment_id=payment_id)
    try:
        if payment_id:
            record = client.get_cached(payment_id)
            if record is None:
                await websocket.send_json({"id": payment_id, "error": "not_found"})
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return
            await websocket.send_json({"id": record.id, "status": record.status.value, "source": "snapshot"})
            if record.is_terminal:
                await websocket.close()
                return

        async for event in stream:
            await websocket.send_json(event.to_dict())
            if payment_id and is_terminal_status(event.status):
                await websocket.close()
                return
    except WebSocketDisconnect:
        logger.debug("Status stream client disconnected (payment_id=%s)", payment_id)
    finally:
        stream.close()
