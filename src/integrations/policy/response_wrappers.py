from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from src.integrations.contracts.interfaces import PaymentStatus


class IntegrationResponseError(ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class GatewayPaymentModel(BaseModel):
    id: str
    amount: Optional[float] = None
    status: PaymentStatus
    pix_code: Optional[str] = None
    qr_code_url: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    raw: Dict[str, Any] = Field(default_factory=dict)


class GatewayStatusModel(BaseModel):
    id: Optional[str] = None
    status: PaymentStatus
    raw: Dict[str, Any] = Field(default_factory=dict)


def normalize_amplo_pay_payment(
    raw: Dict[str, Any],
    *,
    fallback_amount: Optional[float] = None,
    expires_in_seconds: int = 900,
) -> GatewayPaymentModel:
    data = _unwrap(raw)
    payment_id = _first_non_empty(data, "id", "payment_id", "transaction_id")
    status = _map_payment_status(_first_non_empty(data, "status", "payment_status", default="pending"))
    amount = _coerce_amount(_first_non_empty(data, "amount", default=fallback_amount or 0), "payment amount")
    pix_code = _first_non_empty(data, "pix_code", "pixCode", "copy_paste", "emv", default="")
    qr_code_url = _first_non_empty(data, "qr_code_url", "qr_code_image", "qrCodeUrl", default="")

    created_at = _parse_timestamp(data.get("created_at")) or datetime.now(timezone.utc)
    expires_at = _parse_timestamp(data.get("expires_at")) or created_at + timedelta(seconds=expires_in_seconds)

    return _build_model(
        GatewayPaymentModel,
        {
            "id": str(payment_id),
            "amount": amount,
            "status": status,
            "pix_code": str(pix_code) or None,
            "qr_code_url": str(qr_code_url) or None,
            "created_at": created_at,
            "expires_at": expires_at,
            "raw": raw,
        },
        raw,
    )


def normalize_amplo_pay_status(raw: Dict[str, Any]) -> GatewayStatusModel:
    data = _unwrap(raw)
    status = _map_payment_status(_first_non_empty(data, "status", "payment_status"))
    payment_id = data.get("id")
    return _build_model(
        GatewayStatusModel,
        {"id": str(payment_id) if payment_id else None, "status": status, "raw": raw},
        raw,
    )


def _unwrap(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise IntegrationResponseError(f"Expected a JSON object, got {type(raw).__name__}.")
    # Some gateway versions wrap the payment as {"success": true, "data": {...}}
    if isinstance(raw.get("data"), dict) and "id" not in raw:
        return raw["data"]
    return raw


def _first_non_empty(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    if default is not None:
        return default
    raise IntegrationResponseError(f"Missing required field. Checked keys: {', '.join(keys)}", payload=data)


def _coerce_amount(value: Any, label: str) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Invalid {label}: {value!r}") from exc
    if amount < 0:
        raise IntegrationResponseError(f"{label.capitalize()} must be >= 0; got {amount}.")
    return amount


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise IntegrationResponseError(f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _map_payment_status(raw_status: Any) -> PaymentStatus:
    value = str(raw_status or "").strip().upper()
    mapping = {
        "PENDING": PaymentStatus.PENDING,
        "WAITING_PAYMENT": PaymentStatus.PENDING,
        "PROCESSING": PaymentStatus.PENDING,
        "PAID": PaymentStatus.PAID,
        "APPROVED": PaymentStatus.PAID,
        "COMPLETED": PaymentStatus.PAID,
        "FAILED": PaymentStatus.FAILED,
        "REFUSED": PaymentStatus.FAILED,
        "CANCELLED": PaymentStatus.FAILED,
        "EXPIRED": PaymentStatus.EXPIRED,
    }
    if value not in mapping:
        raise IntegrationResponseError(f"Unsupported payment status '{value}'.")
    return mapping[value]


def _build_model(model_type, payload: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_type(**payload)
    except ValidationError as exc:
        raise IntegrationResponseError(f"Response validation failed: {exc}", payload=raw) from exc
