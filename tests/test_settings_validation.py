from __future__ import annotations

import pytest

from settings import settings, validate_env_settings


def _fill_airtel(monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_URL", "postgresql://example", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_API_BASE_URL", "https://openapi.airtel.africa", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_CLIENT_ID", "id", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_CLIENT_SECRET", "secret", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_PIN", "enc-pin", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_CALLBACK_URL", "https://minibet.example/airtel/callback", raising=False)


def test_validate_env_allows_dev_missing(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "dev", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", "", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_CLIENT_SECRET", "", raising=False)
    validate_env_settings()


def test_validate_env_staging_fails_on_missing(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "staging", raising=False)
    _fill_airtel(monkeypatch)
    monkeypatch.setattr(settings, "AIRTEL_PIN", "", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_CALLBACK_URL", "  ", raising=False)

    with pytest.raises(RuntimeError) as exc:
        validate_env_settings()

    message = str(exc.value)
    assert "AIRTEL_PIN" in message
    assert "AIRTEL_CALLBACK_URL" in message
    assert "DATABASE_URL" not in message


def test_validate_env_prod_fails_on_missing(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "prod", raising=False)
    _fill_airtel(monkeypatch)
    monkeypatch.setattr(settings, "DATABASE_URL", "", raising=False)
    monkeypatch.setattr(settings, "AIRTEL_CLIENT_ID", "", raising=False)

    with pytest.raises(RuntimeError) as exc:
        validate_env_settings()

    message = str(exc.value)
    assert "DATABASE_URL" in message
    assert "AIRTEL_CLIENT_ID" in message


def test_validate_env_prod_passes_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "production", raising=False)
    _fill_airtel(monkeypatch)
    validate_env_settings()
