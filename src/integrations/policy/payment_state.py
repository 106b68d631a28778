"""
In-process payment state shared by the payment clients.

PaymentStore holds the record cache and the per-payment listener registry.
StatusBroadcaster fans status updates out to any number of observers (the
WebSocket endpoint, logging hooks, tests) without coupling them to a client.

Both objects are created once in src/api/main.py and injected into whichever
client is selected at startup.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set

from src.integrations.contracts.interfaces import (
    PaymentRecord,
    PaymentStatus,
    StatusListener,
    StatusUpdateEvent,
    utcnow,
)

logger = logging.getLogger(__name__)


class PaymentStore:
    def __init__(self) -> None:
        # payment_id -> record
        self._records: Dict[str, PaymentRecord] = {}
        # payment_id -> single listener
        self._listeners: Dict[str, StatusListener] = {}
        # payment_id -> when it reached a terminal status
        self._settled_at: Dict[str, datetime] = {}
        # One lock guards all three maps; handlers may run on FastAPI's threadpool.
        self._lock = threading.RLock()

    # --- Records ---------------------------------------------------------------

    def put(self, record: PaymentRecord) -> None:
        with self._lock:
            self._records[record.id] = record
            if record.is_terminal:
                self._settled_at.setdefault(record.id, utcnow())
            else:
                self._settled_at.pop(record.id, None)

    def get(self, payment_id: str) -> Optional[PaymentRecord]:
        with self._lock:
            return self._records.get(payment_id)

    def set_status(self, payment_id: str, status: PaymentStatus) -> Optional[PaymentRecord]:
        """Update the cached status; returns the record, or None if nothing is cached."""
        with self._lock:
            record = self._records.get(payment_id)
            if record is None:
                return None
            record.status = status
            if record.is_terminal:
                self._settled_at.setdefault(payment_id, utcnow())
            else:
                self._settled_at.pop(payment_id, None)
            return record

    def remove(self, payment_id: str) -> None:
        with self._lock:
            self._records.pop(payment_id, None)
            self._listeners.pop(payment_id, None)
            self._settled_at.pop(payment_id, None)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, payment_id: object) -> bool:
        with self._lock:
            return payment_id in self._records

    # --- Listeners -------------------------------------------------------------

    def set_listener(self, payment_id: str, callback: StatusListener) -> None:
        with self._lock:
            self._listeners[payment_id] = callback

    def get_listener(self, payment_id: str) -> Optional[StatusListener]:
        with self._lock:
            return self._listeners.get(payment_id)

    # --- Retention -------------------------------------------------------------

    def evict_settled(self, retention_seconds: float, now: Optional[datetime] = None) -> int:
        """Drop records (and their listeners) that settled more than retention_seconds ago."""
        cutoff = (now or utcnow()) - timedelta(seconds=retention_seconds)
        with self._lock:
            stale = [pid for pid, settled in self._settled_at.items() if settled <= cutoff]
            for pid in stale:
                self._records.pop(pid, None)
                self._listeners.pop(pid, None)
                self._settled_at.pop(pid, None)
        if stale:
            logger.info("Evicted %d settled payment(s) older than %ss", len(stale), retention_seconds)
        return len(stale)


class StatusStream:
    """Async iterator over broadcast events, optionally filtered to one payment."""

    def __init__(self, broadcaster: "StatusBroadcaster", payment_id: Optional[str] = None, maxsize: int = 100) -> None:
        self._broadcaster = broadcaster
        self.payment_id = payment_id
        self._queue: "asyncio.Queue[StatusUpdateEvent]" = asyncio.Queue(maxsize=maxsize)
        self._loop = asyncio.get_running_loop()

    def _offer(self, event: StatusUpdateEvent) -> None:
        if self.payment_id and event.payment_id != self.payment_id:
            return
        self._loop.call_soon_threadsafe(self._put_nowait, event)

    def _put_nowait(self, event: StatusUpdateEvent) -> None:
        if self._queue.full():
            logger.warning("Status stream queue full; dropping event for %s", event.payment_id)
            return
        self._queue.put_nowait(event)

    async def get(self) -> StatusUpdateEvent:
        return await self._queue.get()

    def __aiter__(self) -> "StatusStream":
        return self

    async def __anext__(self) -> StatusUpdateEvent:
        return await self.get()

    def close(self) -> None:
        self._broadcaster.close_stream(self)


class StatusBroadcaster:
    def __init__(self) -> None:
        self._observers: List[Callable[[StatusUpdateEvent], None]] = []
        self._streams: Set[StatusStream] = set()
        self._lock = threading.Lock()

    def add_observer(self, callback: Callable[[StatusUpdateEvent], None]) -> Callable[[], None]:
        with self._lock:
            self._observers.append(callback)

        def _remove() -> None:
            with self._lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return _remove

    def open_stream(self, payment_id: Optional[str] = None) -> StatusStream:
        """Must be called from inside a running event loop."""
        stream = StatusStream(self, payment_id=payment_id)
        with self._lock:
            self._streams.add(stream)
        return stream

    def close_stream(self, stream: StatusStream) -> None:
        with self._lock:
            self._streams.discard(stream)

    def publish(self, event: StatusUpdateEvent) -> None:
        with self._lock:
            observers = list(self._observers)
            streams = list(self._streams)

        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Status observer failed for payment %s", event.payment_id)

        for stream in streams:
            try:
                stream._offer(event)
            except RuntimeError:
                # Loop already closed; the stream's owner is gone.
                self.close_stream(stream)
