"""
Payment lifecycle shared by the real and simulated payment clients.

Subclasses only implement how a payment is created and how its status is
queried. Everything that happens after creation lives here:
- one listener per payment (subscribe)
- the single mutation point for status changes (apply_status_update)
- the webhook entry point (receive_external_event)
- timers owned by a payment: status polling with its ceiling, the expiry
  countdown, and (simulated mode) automatic approval

Timers are asyncio tasks on the running loop; every timer owned by a payment
is cancelled when the payment reaches a terminal status.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Coroutine, Dict, List, Optional, Union

from src.integrations.contracts.interfaces import (
    TERMINAL_STATUSES,
    PaymentClient,
    PaymentRecord,
    PaymentStatus,
    StatusListener,
    StatusUpdateEvent,
    utcnow,
)
from src.integrations.contracts.payments import coerce_status
from src.integrations.policy.payment_state import PaymentStore, StatusBroadcaster

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_POLL_CEILING_SECONDS = 20 * 60


class BasePaymentClient(PaymentClient):
    def __init__(
        self,
        store: Optional[PaymentStore] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        *,
        poll_ceiling_seconds: float = DEFAULT_POLL_CEILING_SECONDS,
        retention_seconds: Optional[float] = None,
    ) -> None:
        self.store = store if store is not None else PaymentStore()
        self.broadcaster = broadcaster if broadcaster is not None else StatusBroadcaster()
        self.poll_ceiling_seconds = poll_ceiling_seconds
        self.retention_seconds = retention_seconds
        # payment_id -> timer name -> task
        self._timers: Dict[str, Dict[str, asyncio.Task]] = {}

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def get_cached(self, payment_id: str) -> Optional[PaymentRecord]:
        return self.store.get(payment_id)

    def _store_new_record(self, record: PaymentRecord) -> None:
        if self.retention_seconds is not None:
            self.store.evict_settled(self.retention_seconds)
        self.store.put(record)

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    def subscribe(self, payment_id: str, on_status_change: StatusListener) -> None:
        if self.store.get_listener(payment_id) is not None:
            logger.debug("Replacing status listener for payment %s", payment_id)
        self.store.set_listener(payment_id, on_status_change)

    def apply_status_update(
        self,
        payment_id: str,
        new_status: Union[PaymentStatus, str],
        source: str = "manual",
    ) -> None:
        status = coerce_status(new_status)

        record = self.store.get(payment_id)
        previous = record.status if record is not None else None
        if previous in TERMINAL_STATUSES and previous != status:
            logger.warning(
                "Payment %s moving out of terminal status %s to %s (source=%s)",
                payment_id, previous.value, status.value, source,
            )

        listener = self.store.get_listener(payment_id)
        if listener is not None:
            self._invoke_listener(payment_id, listener, status)

        self.store.set_status(payment_id, status)
        self.broadcaster.publish(StatusUpdateEvent(payment_id=payment_id, status=status, source=source))
        logger.info("Payment %s status -> %s (source=%s)", payment_id, status.value, source)

        if status in TERMINAL_STATUSES:
            self._cancel_timers(payment_id)

    def receive_external_event(
        self,
        payment_id: str,
        status: Union[PaymentStatus, str],
        raw_payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Signature verification is the relay's job; see api/endpoints/webhooks.py
        logger.info("Webhook event for payment %s: %s", payment_id, getattr(status, "value", status))
        self.apply_status_update(payment_id, status, source="webhook")

    def _invoke_listener(self, payment_id: str, listener: StatusListener, status: PaymentStatus) -> None:
        try:
            result = listener(status)
        except Exception:
            logger.exception("Status listener for payment %s failed", payment_id)
            return

        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Async listener for payment %s called outside an event loop; skipped", payment_id)
            if inspect.iscoroutine(result):
                result.close()
            return
        task = loop.create_task(result)
        task.add_done_callback(lambda t: self._log_task_failure(t, f"status listener for {payment_id}"))

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def start_status_polling(self, payment_id: str, interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS) -> asyncio.Task:
        """Poll until a terminal status; a separate ceiling timer stops the poller regardless."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")

        logger.info("Starting status polling for %s every %ss", payment_id, interval_seconds)
        poll_task = self._schedule(payment_id, "poll", self._poll_until_settled(payment_id, interval_seconds))
        self._schedule(payment_id, "poll_ceiling", self._stop_polling_after_ceiling(payment_id, poll_task))
        return poll_task

    async def _poll_until_settled(self, payment_id: str, interval_seconds: float) -> int:
        ticks = 0
        while True:
            await asyncio.sleep(interval_seconds)
            ticks += 1
            record = await self.get_payment_status(payment_id)
            if record is not None and record.is_terminal:
                self.apply_status_update(payment_id, record.status, source="poll")
                logger.info("Polling for %s finished after %d tick(s)", payment_id, ticks)
                return ticks

    async def _stop_polling_after_ceiling(self, payment_id: str, poll_task: asyncio.Task) -> None:
        await asyncio.sleep(self.poll_ceiling_seconds)
        if not poll_task.done():
            logger.info("Polling for %s stopped at the %ss ceiling", payment_id, self.poll_ceiling_seconds)
            poll_task.cancel()

    def start_expiry_timer(self, payment_id: str) -> Optional[asyncio.Task]:
        record = self.store.get(payment_id)
        if record is None:
            logger.warning("No cached payment %s; expiry timer not started", payment_id)
            return None
        if record.is_terminal:
            return None
        return self._schedule(payment_id, "expiry", self._expire_when_due(payment_id))

    async def _expire_when_due(self, payment_id: str) -> None:
        record = self.store.get(payment_id)
        if record is None:
            return
        delay = (record.expires_at - utcnow()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)

        record = self.store.get(payment_id)
        if record is not None and record.status == PaymentStatus.PENDING:
            self.apply_status_update(payment_id, PaymentStatus.EXPIRED, source="expiry")

    def pending_timers(self, payment_id: str) -> List[str]:
        return sorted(name for name, task in self._timers.get(payment_id, {}).items() if not task.done())

    def _schedule(self, payment_id: str, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Start a timer owned by payment_id, replacing a running timer of the same name."""
        timers = self._timers.setdefault(payment_id, {})
        existing = timers.get(name)
        if existing is not None and not existing.done():
            existing.cancel()

        task = asyncio.get_running_loop().create_task(coro)
        timers[name] = task
        task.add_done_callback(lambda t: self._forget_timer(payment_id, name, t))
        return task

    def _forget_timer(self, payment_id: str, name: str, task: asyncio.Task) -> None:
        timers = self._timers.get(payment_id)
        if timers is not None and timers.get(name) is task:
            del timers[name]
            if not timers:
                self._timers.pop(payment_id, None)
        self._log_task_failure(task, f"{name} timer for {payment_id}")

    def _cancel_timers(self, payment_id: str) -> None:
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._timers.get(payment_id, {}).values()):
            if task is not current and not task.done():
                task.cancel()

    @staticmethod
    def _log_task_failure(task: asyncio.Task, label: str) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background %s failed: %s", label, exc, exc_info=exc)

    async def aclose(self) -> None:
        tasks = [task for timers in self._timers.values() for task in timers.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
