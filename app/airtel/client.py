# app/airtel/client.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Optional

import httpx

from app.airtel.config import AirtelConfig, airtel_config
from app.airtel.http import HttpClient, HttpResponse, is_retryable_http
from app.errors import AuthenticationError, GatewayError
from services.metrics import increment_provider_call
from services.redaction import redact_dict

logger = logging.getLogger("minibet.airtel")

TOKEN_PATH = "/auth/oauth2/token"
COLLECT_PATH = "/merchant/v1/payments/"
DISBURSE_PATH = "/standard/v2/disbursements/"

DISBURSE_TYPE_B2C = "B2C"


@dataclass
class TokenCache:
    token: Optional[str] = None
    expires_at: float = 0.0

    def valid(self, now: float) -> bool:
        return bool(self.token) and now < self.expires_at

    def clear(self) -> None:
        self.token = None
        self.expires_at = 0.0


@dataclass(frozen=True)
class CollectRequest:
    reference: str
    transaction_id: str
    msisdn: str
    amount: Decimal
    country: Optional[str] = None
    currency: Optional[str] = None
    callback_url: Optional[str] = None


@dataclass(frozen=True)
class DisburseRequest:
    reference: str
    transaction_id: str
    msisdn: str
    amount: Decimal
    currency: Optional[str] = None


@dataclass(frozen=True)
class ProviderResponse:
    """
    Parsed view over Airtel's `{data: {transaction: {...}}, status: {...}}` body.
    Fields are None when the provider left them out.
    """

    success: Optional[bool]
    status_code: Optional[str]
    transaction_id: Optional[str] = None
    airtel_money_id: Optional[str] = None
    reference_id: Optional[str] = None
    message: Optional[str] = None
    response_code: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, payload: dict[str, Any] | None) -> "ProviderResponse":
        payload = payload or {}
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        txn = data.get("transaction") if isinstance(data.get("transaction"), dict) else {}
        status = payload.get("status") if isinstance(payload.get("status"), dict) else {}

        success = status.get("success")
        if success is not None and not isinstance(success, bool):
            success = str(success).strip().lower() == "true"

        return cls(
            success=success,
            status_code=_str_or_none(txn.get("status")),
            transaction_id=_str_or_none(txn.get("id")),
            airtel_money_id=_str_or_none(txn.get("airtel_money_id")),
            reference_id=_str_or_none(txn.get("reference_id")),
            message=_str_or_none(status.get("message")),
            response_code=_str_or_none(status.get("response_code") or status.get("code")),
            raw=payload,
        )


class AirtelMoneyClient:
    """
    Airtel Money Open API client: OAuth2 client-credentials, collect (USSD push) and B2C disbursement.

    The token lives on the instance; nothing is retried here.
    """

    def __init__(
        self,
        config: Optional[AirtelConfig] = None,
        http: Optional[HttpClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or airtel_config()
        self.http = http or HttpClient(timeout_s=self.config.timeout_s)
        self._clock = clock
        self._token = TokenCache()

    # ---------------------------
    # Auth
    # ---------------------------

    def get_access_token(self) -> str:
        now = self._clock()
        if self._token.valid(now):
            return self._token.token  # type: ignore[return-value]

        cfg = self.config
        if not (cfg.base_url and cfg.client_id and cfg.client_secret):
            raise AuthenticationError("Airtel client credentials are not configured")

        url = f"{cfg.base_url}{TOKEN_PATH}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        body = {
            "client_id": cfg.client_id,
            "client_secret": cfg.client_secret,
            "grant_type": "client_credentials",
        }

        try:
            resp = self.http.post(url, headers=headers, json_body=body, debug=True)
        except httpx.HTTPError as exc:
            logger.error("airtel_auth_failed err=%s", exc)
            raise AuthenticationError(f"Failed to authenticate with Airtel Money API: {exc}") from exc

        token = resp.json.get("access_token") if resp.ok and resp.json else None
        if not token:
            logger.error(
                "airtel_auth_failed http_status=%s body=%s",
                resp.status_code,
                redact_dict(resp.json) if resp.json else resp.text[:300],
            )
            raise AuthenticationError(
                "Failed to authenticate with Airtel Money API",
                http_status=resp.status_code,
            )

        try:
            expires_in = int(resp.json.get("expires_in"))
        except (TypeError, ValueError):
            expires_in = 0
        if expires_in <= 0:
            logger.error("airtel_auth_failed http_status=%s err=bad expires_in %r", resp.status_code, resp.json.get("expires_in"))
            raise AuthenticationError(
                "Airtel Money API returned a token without a usable expires_in",
                http_status=resp.status_code,
            )

        self._token.token = str(token)
        self._token.expires_at = now + expires_in - cfg.token_safety_margin_s
        logger.info("airtel_auth_ok expires_in=%s", expires_in)
        return self._token.token

    # ---------------------------
    # Money movement
    # ---------------------------

    def collect_payment(self, req: CollectRequest) -> ProviderResponse:
        cfg = self.config
        country = req.country or cfg.country
        currency = req.currency or cfg.currency
        amount = _provider_amount(req.amount)

        body: dict[str, Any] = {
            "reference": req.reference,
            "subscriber": {
                "country": country,
                "currency": currency,
                "msisdn": req.msisdn,
            },
            "transaction": {
                "amount": amount,
                "country": country,
                "currency": currency,
                "id": req.transaction_id,
            },
        }
        callback_url = req.callback_url or cfg.callback_url
        if callback_url:
            body["callback_url"] = callback_url

        return self._call(
            stage="collect",
            path=COLLECT_PATH,
            body=body,
            reference=req.reference,
            transaction_id=req.transaction_id,
        )

    def disburse_funds(self, req: DisburseRequest) -> ProviderResponse:
        cfg = self.config
        body = {
            "payee": {
                "currency": req.currency or cfg.currency,
                "msisdn": req.msisdn,
            },
            "reference": req.reference,
            "pin": cfg.pin,
            "transaction": {
                "amount": _provider_amount(req.amount),
                "id": req.transaction_id,
                "type": DISBURSE_TYPE_B2C,
            },
        }
        return self._call(
            stage="disburse",
            path=DISBURSE_PATH,
            body=body,
            reference=req.reference,
            transaction_id=req.transaction_id,
        )

    def close(self) -> None:
        self.http.close()

    # ---------------------------
    # Internals
    # ---------------------------

    def _call(self, *, stage: str, path: str, body: dict[str, Any], reference: str, transaction_id: str) -> ProviderResponse:
        token = self.get_access_token()
        cfg = self.config

        url = f"{cfg.base_url}{path}"
        headers = {
            "Accept": "*/*",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "X-Country": cfg.country,
            "X-Currency": cfg.currency,
        }

        logger.info(
            "airtel_request stage=%s reference=%s transaction_id=%s body=%s",
            stage,
            reference,
            transaction_id,
            redact_dict(body),
        )

        try:
            resp = self.http.post(url, headers=headers, json_body=body, debug=True)
        except httpx.TimeoutException as exc:
            increment_provider_call(stage, "timeout")
            logger.error("airtel_call_failed stage=%s reference=%s transaction_id=%s err=timeout", stage, reference, transaction_id)
            raise GatewayError(f"Airtel {stage} timed out", reference=reference) from exc
        except httpx.HTTPError as exc:
            increment_provider_call(stage, "error")
            logger.error("airtel_call_failed stage=%s reference=%s transaction_id=%s err=%s", stage, reference, transaction_id, exc)
            raise GatewayError(f"Airtel {stage} failed: {exc}", reference=reference) from exc

        self._log_response(stage, reference, transaction_id, resp)

        if not resp.ok:
            increment_provider_call(stage, f"http_{resp.status_code}")
            logger.error(
                "airtel_call_failed stage=%s reference=%s transaction_id=%s http_status=%s retryable=%s",
                stage,
                reference,
                transaction_id,
                resp.status_code,
                is_retryable_http(resp.status_code),
            )
            raise GatewayError(f"Airtel {stage} returned HTTP {resp.status_code}", http_status=resp.status_code, reference=reference)

        if resp.json is None:
            increment_provider_call(stage, "malformed")
            logger.error("airtel_call_failed stage=%s reference=%s transaction_id=%s err=non-json body", stage, reference, transaction_id)
            raise GatewayError(f"Airtel {stage} returned a non-JSON body", http_status=resp.status_code, reference=reference)

        increment_provider_call(stage, "ok")
        return ProviderResponse.from_json(resp.json)

    @staticmethod
    def _log_response(stage: str, reference: str, transaction_id: str, resp: HttpResponse) -> None:
        logger.info(
            "airtel_response stage=%s reference=%s transaction_id=%s http_status=%s body=%s",
            stage,
            reference,
            transaction_id,
            resp.status_code,
            redact_dict(resp.json) if resp.json is not None else resp.text[:500],
        )


def _provider_amount(amount: Decimal) -> int | float:
    value = abs(Decimal(amount))
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
