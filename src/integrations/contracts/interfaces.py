from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.EXPIRED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

@dataclass
class LineItem:
    category: str
    quantity: int
    unit_price: float
    line_total: float                    # quantity * unit_price

    @classmethod
    def for_quantity(cls, category: str, quantity: int, unit_price: float) -> "LineItem":
        return cls(
            category=category,
            quantity=quantity,
            unit_price=unit_price,
            line_total=round(quantity * unit_price, 2),
        )


@dataclass
class Customer:
    email: str
    name: Optional[str] = None


@dataclass
class PaymentRecord:
    id: str
    amount: float
    description: str
    line_items: List[LineItem]
    status: PaymentStatus
    created_at: datetime
    expires_at: datetime
    pix_payload: Optional[str] = None
    qr_image: Optional[str] = None       # data URL or gateway-hosted image URL
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "description": self.description,
            "line_items": [asdict(item) for item in self.line_items],
            "status": self.status.value,
            "pix_payload": self.pix_payload,
            "qr_image": self.qr_image,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass
class StatusUpdateEvent:
    payment_id: str
    status: PaymentStatus
    source: str = "manual"               # webhook / poll / simulation / expiry / manual
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.payment_id,
            "status": self.status.value,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
        }


StatusListener = Callable[[PaymentStatus], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# Abstract payment client interface
# ---------------------------------------------------------------------------

class PaymentClient(ABC):
    """Every payment lifecycle client (real gateway or simulated) must implement this interface."""

    @property
    @abstractmethod
    def mode(self) -> str:
        """Return "real" or "simulated"."""

    # -- Payments --

    @abstractmethod
    async def create_payment(
        self,
        amount: float,
        description: str,
        line_items: List[LineItem],
        customer: Optional[Customer] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentRecord:
        """Create a Pix payment and cache the resulting record."""

    @abstractmethod
    async def get_payment_status(self, payment_id: str) -> Optional[PaymentRecord]:
        """Refresh and return the record; falls back to the cached copy on failure."""

    @abstractmethod
    def get_cached(self, payment_id: str) -> Optional[PaymentRecord]:
        """Return the locally cached record without contacting the gateway."""

    # -- Status updates --

    @abstractmethod
    def subscribe(self, payment_id: str, on_status_change: StatusListener) -> None:
        """Register the single status listener for a payment, replacing any previous one."""

    @abstractmethod
    def apply_status_update(self, payment_id: str, new_status: Union[PaymentStatus, str], source: str = "manual") -> None:
        """Apply a status transition: listener, cache, broadcast."""

    @abstractmethod
    def receive_external_event(
        self,
        payment_id: str,
        status: Union[PaymentStatus, str],
        raw_payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Entry point for events forwarded by the webhook relay."""

    # -- Timers --

    @abstractmethod
    def start_status_polling(self, payment_id: str, interval_seconds: float = 5.0):
        """Poll the gateway until a terminal status or the polling ceiling."""

    @abstractmethod
    def start_expiry_timer(self, payment_id: str):
        """Mark the payment expired once expires_at passes while still pending."""

    @abstractmethod
    async def aclose(self) -> None:
        """Cancel outstanding timers and release network resources."""
