"""
Configuration loader for the checkout service
"""

import os
from pathlib import Path
from typing import Optional
import logging

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_TICKETS_CONFIG = Path(__file__).parent.parent.parent / "config" / "tickets.yml"


class PaymentSettings(BaseModel):
    """Payment gateway and lifecycle configuration (read once at startup)"""

    api_key: str = ""
    base_url: str = "https://sandbox.amplopay.com.br/v1"
    webhook_secret: str = ""
    public_base_url: str = "http://localhost:8000"
    mode: str = "auto"
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    poll_ceiling_seconds: float = Field(default=1200.0, gt=0)
    retention_seconds: Optional[float] = Field(default=None, gt=0)
    simulated_approval_seconds: float = Field(default=10.0, ge=0)
    simulated_latency_seconds: float = Field(default=1.0, ge=0)
    tickets_config_path: Path = DEFAULT_TICKETS_CONFIG

    @field_validator("mode")
    @classmethod
    def _check_mode(cls, value: str) -> str:
        value = (value or "auto").strip().lower()
        if value not in {"auto", "real", "live", "mock", "simulated"}:
            raise ValueError(f"unsupported PAYMENTS_MODE '{value}'")
        return value

    @property
    def callback_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/webhook/amplo-pay"

    @property
    def use_real_gateway(self) -> bool:
        if self.mode in {"real", "live"}:
            return True
        if self.mode in {"mock", "simulated"}:
            return False
        return bool(self.api_key)


def load_payment_settings(env_file: Optional[Path] = None) -> PaymentSettings:
    """
    Build PaymentSettings from environment variables (after loading .env)

    Raises:
        ValidationError: If a variable has an invalid value
    """
    load_dotenv(env_file)

    raw = {
        "api_key": os.getenv("AMPLO_PAY_API_KEY", "").strip(),
        "base_url": os.getenv("AMPLO_PAY_BASE_URL", "").strip() or None,
        "webhook_secret": os.getenv("AMPLO_PAY_WEBHOOK_SECRET", "").strip(),
        "public_base_url": os.getenv("PUBLIC_BASE_URL", "").strip() or None,
        "mode": os.getenv("PAYMENTS_MODE", "auto"),
        "poll_interval_seconds": os.getenv("PAYMENT_POLL_INTERVAL_SECONDS") or None,
        "poll_ceiling_seconds": os.getenv("PAYMENT_POLL_CEILING_SECONDS") or None,
        "retention_seconds": os.getenv("PAYMENT_RETENTION_SECONDS") or None,
        "simulated_approval_seconds": os.getenv("SIMULATED_APPROVAL_SECONDS") or None,
        "simulated_latency_seconds": os.getenv("SIMULATED_LATENCY_SECONDS") or None,
        "tickets_config_path": os.getenv("TICKETS_CONFIG_PATH") or None,
    }
    # Unset variables fall back to the model defaults
    values = {k: v for k, v in raw.items() if v is not None}

    try:
        settings = PaymentSettings(**values)
    except ValidationError as e:
        logger.error(f"Payment settings validation failed: {e}")
        raise

    logger.info(
        "Payment settings loaded: mode=%s api_key_set=%s webhook_secret_set=%s",
        settings.mode, bool(settings.api_key), bool(settings.webhook_secret),
    )
    return settings
