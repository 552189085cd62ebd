# app/airtel/callback.py
from __future__ import annotations

import logging
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger("minibet.callbacks")

SUCCESS_CODE = "TS"
# transaction in progress / ambiguous: the provider will call again
IN_FLIGHT_CODES = frozenset({"TIP", "TA"})


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


# -----------------------------
# Inbound shapes
# -----------------------------

class CallbackTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "transaction_id", "txn_id"))
    reference_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("reference_id", "reference"))
    airtel_money_id: Optional[str] = None
    amount: Optional[Union[float, str]] = None
    currency: Optional[str] = None
    msisdn: Optional[str] = None
    status: Optional[str] = Field(default=None, validation_alias=AliasChoices("status", "status_code"))
    message: Optional[str] = None
    response_code: Optional[str] = None

    @field_validator("id", "reference_id", "airtel_money_id", "msisdn", "status", "response_code", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _as_text(value)


class DirectCallback(BaseModel):
    """`{"transaction": {...}}` as Airtel KE posts it."""

    model_config = ConfigDict(extra="ignore")
    transaction: CallbackTransaction


class _WrappedData(BaseModel):
    model_config = ConfigDict(extra="ignore")
    transaction: CallbackTransaction


class WrappedCallback(BaseModel):
    """`{"data": {"transaction": {...}}}` as the collection API echoes it."""

    model_config = ConfigDict(extra="ignore")
    data: _WrappedData


# -----------------------------
# Canonical envelope
# -----------------------------

class CanonicalTransaction(BaseModel):
    id: Optional[str] = None
    reference_id: Optional[str] = None
    airtel_money_id: Optional[str] = None
    amount: Optional[Union[float, str]] = None
    currency: Optional[str] = None
    msisdn: Optional[str] = None
    status: Optional[str] = None


class CanonicalData(BaseModel):
    transaction: CanonicalTransaction


class CallbackStatus(BaseModel):
    success: bool
    message: str = ""
    response_code: Optional[str] = None


class CallbackEnvelope(BaseModel):
    data: CanonicalData
    status: CallbackStatus

    @property
    def transaction(self) -> CanonicalTransaction:
        return self.data.transaction

    @property
    def status_code(self) -> str:
        return (self.data.transaction.status or "").strip().upper()

    @property
    def in_flight(self) -> bool:
        return not self.status.success and self.status_code in IN_FLIGHT_CODES


def _parse_shape(payload: Any) -> Optional[CallbackTransaction]:
    if not isinstance(payload, dict):
        return None

    if isinstance(payload.get("data"), dict):
        try:
            return WrappedCallback.model_validate(payload).data.transaction
        except ValidationError:
            pass

    if isinstance(payload.get("transaction"), dict):
        try:
            return DirectCallback.model_validate(payload).transaction
        except ValidationError:
            pass

    return None


def normalize_callback(payload: Any) -> Any:
    """
    Canonicalize either callback shape into
    `{data: {transaction: {...}}, status: {success, message, response_code}}`.

    Payloads with no transaction object come back untouched; the engine drops them.
    """
    txn = _parse_shape(payload)
    if txn is None:
        logger.warning("callback_unrecognized_shape keys=%s", sorted(payload.keys()) if isinstance(payload, dict) else type(payload).__name__)
        return payload

    status_code = (txn.status or "").strip().upper()
    envelope = CallbackEnvelope(
        data=CanonicalData(
            transaction=CanonicalTransaction(
                id=txn.id,
                reference_id=txn.reference_id,
                airtel_money_id=txn.airtel_money_id,
                amount=txn.amount,
                currency=txn.currency,
                msisdn=txn.msisdn,
                status=status_code or None,
            )
        ),
        status=CallbackStatus(
            success=status_code == SUCCESS_CODE,
            message=txn.message or "",
            response_code=txn.response_code or status_code or None,
        ),
    )
    return envelope.model_dump()


def parse_envelope(normalized: Any) -> Optional[CallbackEnvelope]:
    if not isinstance(normalized, dict):
        return None
    try:
        return CallbackEnvelope.model_validate(normalized)
    except ValidationError:
        return None
