from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # Runtime
    # -----------------------
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = Field(default="")
    DB_POOL_MIN: int = 1
    DB_POOL_MAX: int = 10
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # -----------------------
    # Airtel Money
    # -----------------------
    AIRTEL_API_BASE_URL: str = "https://openapiuat.airtel.africa"
    AIRTEL_CLIENT_ID: str = ""
    AIRTEL_CLIENT_SECRET: str = ""
    AIRTEL_COUNTRY: str = "KE"
    AIRTEL_CURRENCY: str = "KES"

    # disbursement PIN (sent on every B2C call)
    AIRTEL_PIN: str = ""

    AIRTEL_CALLBACK_URL: str = ""

    # HTTP timeouts
    AIRTEL_HTTP_TIMEOUT_S: float = 20.0
    AIRTEL_TOKEN_SAFETY_MARGIN_S: int = 30


settings = Settings()


_REQUIRED_OUTSIDE_DEV = (
    "DATABASE_URL",
    "AIRTEL_API_BASE_URL",
    "AIRTEL_CLIENT_ID",
    "AIRTEL_CLIENT_SECRET",
    "AIRTEL_PIN",
    "AIRTEL_CALLBACK_URL",
)


def validate_env_settings() -> None:
    """
    Fail fast on staging/prod when money-moving config is missing.
    Dev runs with whatever is set.
    """
    env = (settings.ENV or "dev").strip().lower()
    if env not in ("staging", "prod", "production"):
        return

    missing = [key for key in _REQUIRED_OUTSIDE_DEV if not str(getattr(settings, key, "") or "").strip()]
    if missing:
        raise RuntimeError(f"Missing required settings for ENV={env}: {', '.join(missing)}")
