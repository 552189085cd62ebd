# app/airtel/config.py
from __future__ import annotations

from dataclasses import dataclass

from settings import settings


@dataclass(frozen=True)
class AirtelConfig:
    base_url: str
    client_id: str
    client_secret: str
    country: str
    currency: str
    pin: str
    callback_url: str
    timeout_s: float = 20.0
    token_safety_margin_s: int = 30


def airtel_config() -> AirtelConfig:
    # always reflect .env via pydantic settings
    return AirtelConfig(
        base_url=(settings.AIRTEL_API_BASE_URL or "").strip().rstrip("/"),
        client_id=(settings.AIRTEL_CLIENT_ID or "").strip(),
        client_secret=(settings.AIRTEL_CLIENT_SECRET or "").strip(),
        country=(settings.AIRTEL_COUNTRY or "KE").strip().upper(),
        currency=(settings.AIRTEL_CURRENCY or "KES").strip().upper(),
        pin=(settings.AIRTEL_PIN or "").strip(),
        callback_url=(settings.AIRTEL_CALLBACK_URL or "").strip(),
        timeout_s=float(settings.AIRTEL_HTTP_TIMEOUT_S),
        token_safety_margin_s=int(settings.AIRTEL_TOKEN_SAFETY_MARGIN_S),
    )
