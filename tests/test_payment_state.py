import asyncio
from datetime import timedelta

import pytest

from src.integrations.contracts.interfaces import PaymentStatus, StatusUpdateEvent, utcnow


def test_store_tracks_records_and_status(store, make_record):
    store.put(make_record("pay_1"))

    assert "pay_1" in store
    assert len(store) == 1
    updated = store.set_status("pay_1", PaymentStatus.PAID)
    assert updated.status is PaymentStatus.PAID
    assert store.get("pay_1").status is PaymentStatus.PAID
    assert store.set_status("missing", PaymentStatus.PAID) is None


def test_remove_drops_record_and_listener(store, make_record):
    store.put(make_record("pay_1"))
    store.set_listener("pay_1", lambda status: None)

    store.remove("pay_1")

    assert store.get("pay_1") is None
    assert store.get_listener("pay_1") is None
    assert store.ids() == []


def test_evict_settled_only_drops_old_terminal_records(store, make_record):
    store.put(make_record("settled"))
    store.put(make_record("open"))
    store.set_listener("settled", lambda status: None)
    store.set_status("settled", PaymentStatus.PAID)

    assert store.evict_settled(60) == 0

    later = utcnow() + timedelta(seconds=120)
    assert store.evict_settled(60, now=later) == 1
    assert store.ids() == ["open"]
    assert store.get_listener("settled") is None


def test_reopened_payment_is_not_evicted(store, make_record):
    store.put(make_record("pay_1"))
    store.set_status("pay_1", PaymentStatus.EXPIRED)
    store.set_status("pay_1", PaymentStatus.PENDING)

    assert store.evict_settled(0, now=utcnow() + timedelta(days=1)) == 0


def test_broadcaster_observers_survive_failing_peers(broadcaster):
    seen = []

    def broken(event):
        raise RuntimeError("observer bug")

    broadcaster.add_observer(broken)
    remove = broadcaster.add_observer(seen.append)

    broadcaster.publish(StatusUpdateEvent("pay_1", PaymentStatus.PAID, source="poll"))
    remove()
    broadcaster.publish(StatusUpdateEvent("pay_1", PaymentStatus.PAID, source="poll"))

    assert len(seen) == 1
    assert seen[0].to_dict()["status"] == "paid"
    assert seen[0].to_dict()["source"] == "poll"


@pytest.mark.asyncio
async def test_stream_filters_by_payment_id(broadcaster):
    stream = broadcaster.open_stream(payment_id="pay_2")
    try:
        broadcaster.publish(StatusUpdateEvent("pay_1", PaymentStatus.PAID))
        broadcaster.publish(StatusUpdateEvent("pay_2", PaymentStatus.EXPIRED, source="expiry"))

        event = await asyncio.wait_for(stream.get(), timeout=1)
    finally:
        stream.close()

    assert event.payment_id == "pay_2"
    assert event.status is PaymentStatus.EXPIRED


@pytest.mark.asyncio
async def test_closed_stream_receives_nothing(broadcaster):
    stream = broadcaster.open_stream()
    stream.close()

    broadcaster.publish(StatusUpdateEvent("pay_1", PaymentStatus.PAID))
    await asyncio.sleep(0)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(stream.get(), timeout=0.05)
