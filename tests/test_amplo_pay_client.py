import asyncio
import json

import httpx
import pytest

from src.integrations.clients.real_http.payments import AmploPayClient
from src.integrations.contracts.errors import (
    AuthError,
    ConfigurationError,
    GatewayError,
    GatewayPermissionError,
    GatewayTimeoutError,
    NetworkError,
)
from src.integrations.contracts.interfaces import Customer, PaymentStatus

BASE_URL = "https://gateway.test/v1"


def make_client(handler, **kwargs):
    kwargs.setdefault("retry_delay_seconds", 0)
    return AmploPayClient(
        api_key="sk_test_123",
        base_url=BASE_URL,
        callback_url="https://shop.test/webhook/amplo-pay",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def created_payment(**overrides):
    body = {
        "id": "pay_abc",
        "amount": 370.0,
        "status": "WAITING_PAYMENT",
        "pix_code": "00020126580014BR.GOV.BCB.PIX0136abc",
        "created_at": "2026-01-10T12:00:00Z",
        "expires_at": "2026-01-10T12:15:00Z",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_create_payment_posts_pix_request_and_caches_record(line_items):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json=created_payment())

    client = make_client(handler)
    record = await client.create_payment(
        370.0,
        "DEBOXE • ECLIPSE - 3 ingresso(s)",
        line_items,
        customer=Customer(email="fan@example.com", name="Fan"),
        metadata={"event": "DEBOXE • ECLIPSE"},
    )

    assert captured["method"] == "POST"
    assert captured["url"] == f"{BASE_URL}/payments"
    assert captured["auth"] == "Bearer sk_test_123"
    body = captured["body"]
    assert body["payment_method"] == "pix"
    assert body["expires_in"] == 900
    assert body["callback_url"] == "https://shop.test/webhook/amplo-pay"
    assert body["customer"] == {"email": "fan@example.com", "name": "Fan"}
    assert body["metadata"]["event"] == "DEBOXE • ECLIPSE"
    assert body["metadata"]["source"] == "deboxe-eclipse"
    assert json.loads(body["metadata"]["tickets"])[0]["category"] == "VIP Inteira"

    assert record.id == "pay_abc"
    assert record.status is PaymentStatus.PENDING
    assert record.pix_payload.startswith("000201")
    assert record.qr_image.startswith("data:image/png;base64,")
    assert (record.expires_at - record.created_at).total_seconds() == 900
    assert client.get_cached("pay_abc") is record


@pytest.mark.asyncio
async def test_create_payment_keeps_gateway_qr_url_and_unwraps_envelope(line_items):
    def handler(request):
        payload = created_payment(qr_code_url="https://gateway.test/qr/pay_abc.png")
        return httpx.Response(200, json={"success": True, "data": payload})

    record = await make_client(handler).create_payment(370.0, "tickets", line_items)

    assert record.qr_image == "https://gateway.test/qr/pay_abc.png"


@pytest.mark.asyncio
async def test_invalid_api_key_raises_auth_error_and_caches_nothing(line_items):
    client = make_client(lambda request: httpx.Response(401, json={"message": "invalid key"}))

    with pytest.raises(AuthError) as excinfo:
        await client.create_payment(370.0, "tickets", line_items)

    assert excinfo.value.status_code == 401
    assert len(client.store) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, error_type, message",
    [
        (403, GatewayPermissionError, "Access denied"),
        (500, GatewayError, "internal error"),
        (503, GatewayError, "internal error"),
        (422, GatewayError, "amount too low"),
    ],
)
async def test_http_failures_map_to_error_taxonomy(line_items, status_code, error_type, message):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status_code, json={"message": "amount too low"})

    client = make_client(handler)
    with pytest.raises(error_type, match=message):
        await client.create_payment(370.0, "tickets", line_items)

    # HTTP responses are never retried
    assert len(calls) == 1
    assert len(client.store) == 0


@pytest.mark.asyncio
async def test_missing_api_key_raises_configuration_error(line_items):
    client = AmploPayClient(api_key="", base_url=BASE_URL, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(ConfigurationError):
        await client.create_payment(370.0, "tickets", line_items)


@pytest.mark.asyncio
async def test_invalid_request_never_reaches_gateway(line_items):
    calls = []
    client = make_client(lambda request: calls.append(request) or httpx.Response(200, json=created_payment()))

    with pytest.raises(ValueError, match="does not match"):
        await client.create_payment(1.0, "tickets", line_items)
    assert calls == []


@pytest.mark.asyncio
async def test_timeouts_are_retried_then_raised(line_items):
    attempts = []

    async def handler(request):
        attempts.append(request)
        await asyncio.sleep(1)
        return httpx.Response(200, json=created_payment())

    client = make_client(handler, request_timeout_seconds=0.02, max_retries=3)

    with pytest.raises(GatewayTimeoutError):
        await client.create_payment(370.0, "tickets", line_items)

    assert len(attempts) == 4
    assert len(client.store) == 0


@pytest.mark.asyncio
async def test_network_error_recovers_on_retry(line_items):
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(201, json=created_payment())

    client = make_client(handler)
    record = await client.create_payment(370.0, "tickets", line_items)

    assert len(attempts) == 3
    assert record.id == "pay_abc"


@pytest.mark.asyncio
async def test_retry_backoff_grows_linearly(line_items, monkeypatch):
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(seconds):
        delays.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr("src.integrations.clients.real_http.payments.asyncio.sleep", fake_sleep)

    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = make_client(handler, retry_delay_seconds=1.0, max_retries=3)
    with pytest.raises(NetworkError):
        await client.create_payment(370.0, "tickets", line_items)

    assert delays == [1.0, 2.0, 3.0]


@pytest.mark.asyncio
async def test_unknown_gateway_status_is_a_gateway_error(line_items):
    client = make_client(lambda request: httpx.Response(201, json=created_payment(status="ON_HOLD")))

    with pytest.raises(GatewayError, match="Malformed gateway response"):
        await client.create_payment(370.0, "tickets", line_items)


@pytest.mark.asyncio
async def test_status_query_updates_cache(make_record):
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/v1/payments/pay_1"
        return httpx.Response(200, json={"id": "pay_1", "status": "APPROVED"})

    client = make_client(handler)
    client.store.put(make_record("pay_1"))

    record = await client.get_payment_status("pay_1")

    assert record.status is PaymentStatus.PAID
    assert client.get_cached("pay_1").status is PaymentStatus.PAID


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, json={"message": "down"}),
        lambda request: httpx.Response(200, text="<html>oops</html>"),
        lambda request: httpx.Response(200, json={"id": "pay_1", "status": "ON_HOLD"}),
    ],
)
async def test_status_query_falls_back_to_cache(make_record, handler):
    client = make_client(handler)
    client.store.put(make_record("pay_1"))

    record = await client.get_payment_status("pay_1")

    assert record is client.get_cached("pay_1")
    assert record.status is PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_status_query_falls_back_to_cache_after_network_failures(make_record):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = make_client(handler, max_retries=1)
    client.store.put(make_record("pay_1"))

    record = await client.get_payment_status("pay_1")

    assert record.status is PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_status_query_for_unknown_payment_returns_none():
    client = make_client(lambda request: httpx.Response(404, json={"message": "not found"}))
    assert await client.get_payment_status("nope") is None


@pytest.mark.asyncio
async def test_polling_against_gateway_settles_payment(make_record):
    statuses = iter(["PENDING", "PAID"])
    client = make_client(lambda request: httpx.Response(200, json={"id": "pay_1", "status": next(statuses)}))
    client.store.put(make_record("pay_1"))
    calls = []
    client.subscribe("pay_1", calls.append)

    ticks = await asyncio.wait_for(client.start_status_polling("pay_1", interval_seconds=0.01), timeout=1)

    assert ticks == 2
    assert calls == [PaymentStatus.PAID]
    await client.aclose()


def test_client_defaults_come_from_environment(monkeypatch):
    monkeypatch.setenv("AMPLO_PAY_API_KEY", "sk_env")
    monkeypatch.setenv("AMPLO_PAY_BASE_URL", "https://env.gateway/v1/")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://tickets.example")

    client = AmploPayClient()

    assert client.mode == "real"
    assert client.api_key == "sk_env"
    assert client.base_url == "https://env.gateway/v1"
    assert client.callback_url == "https://tickets.example/webhook/amplo-pay"


@pytest.mark.asyncio
async def test_status_query_returns_created_record_unchanged(line_items):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(201, json=created_payment())
        return httpx.Response(200, json={"id": "pay_abc", "status": "WAITING_PAYMENT"})

    client = make_client(handler)
    created = await client.create_payment(370.0, "DEBOXE • ECLIPSE - 3 ingresso(s)", line_items)
    snapshot = {
        field: getattr(created, field)
        for field in ("id", "amount", "description", "line_items", "pix_payload", "qr_image", "created_at", "expires_at")
    }

    fetched = await client.get_payment_status(created.id)

    assert fetched.status is PaymentStatus.PENDING
    for field, value in snapshot.items():
        assert getattr(fetched, field) == value, field
