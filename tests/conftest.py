"""Pytest fixtures for payment lifecycle, storefront and API tests."""

from datetime import timedelta

import pytest

from src.integrations.contracts.interfaces import LineItem, PaymentRecord, PaymentStatus, utcnow
from src.integrations.policy.payment_state import PaymentStore, StatusBroadcaster
from src.storefront.catalogue import EventInfo, TicketCatalogue, TicketType


@pytest.fixture
def store():
    return PaymentStore()


@pytest.fixture
def broadcaster():
    return StatusBroadcaster()


@pytest.fixture
def line_items():
    return [
        LineItem.for_quantity("VIP Inteira", 2, 130.0),
        LineItem.for_quantity("Backstage Meia", 1, 110.0),
    ]


@pytest.fixture
def catalogue():
    return TicketCatalogue(
        event=EventInfo(name="DEBOXE • ECLIPSE"),
        tickets=[
            TicketType(code="vip_meia", name="VIP Meia", section="vip", price=65),
            TicketType(code="vip_inteira", name="VIP Inteira", section="vip", price=130),
            TicketType(code="backstage_meia", name="Backstage Meia", section="backstage", price=110),
        ],
    )


@pytest.fixture
def make_record():
    """Build a cached-style PaymentRecord without going through a client."""

    def _make(payment_id="pay_1", status=PaymentStatus.PENDING, expires_in=900.0, amount=65.0):
        now = utcnow()
        return PaymentRecord(
            id=payment_id,
            amount=amount,
            description="DEBOXE • ECLIPSE - 1 ingresso(s)",
            line_items=[LineItem.for_quantity("VIP Meia", 1, amount)],
            status=status,
            created_at=now,
            expires_at=now + timedelta(seconds=expires_in),
            pix_payload="000201PIX",
        )

    return _make
