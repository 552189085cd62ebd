# services/redaction.py
from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
# bare digit runs only; ids like MiniBet1700... are left alone
_MSISDN_RE = re.compile(r"(?<![\w.])\+?\d{9,15}\b")

# any key containing one of these is dropped from logs entirely
_SECRET_KEY_MARKERS = ("token", "authorization", "secret", "signature", "password", "pin")
_MSISDN_KEY_MARKERS = ("msisdn", "phone")

# free text carrying any of these is not worth partial masking
_SECRET_TEXT_MARKERS = ("access_token", "client_secret", "bearer")


def mask_msisdn(value: str) -> str:
    if len(value) <= 6:
        return value
    return f"{value[:3]}****{value[-2:]}"


def _mask_email(match: re.Match) -> str:
    return f"{match.group(1)}***{match.group(3)}"


def redact_text(value: str) -> str:
    lowered = value.lower()
    if any(marker in lowered for marker in _SECRET_TEXT_MARKERS):
        return REDACTED

    masked = _EMAIL_RE.sub(_mask_email, value)
    return _MSISDN_RE.sub(lambda m: mask_msisdn(m.group(0)), masked)


def _key_has(key: str, markers: tuple[str, ...]) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in markers)


def redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    """Copy of `payload` safe for logging: secrets dropped, msisdns masked, nested values walked."""
    out: dict[str, Any] = {}
    for k, v in payload.items():
        if _key_has(k, _SECRET_KEY_MARKERS):
            out[k] = REDACTED
        elif _key_has(k, _MSISDN_KEY_MARKERS) and isinstance(v, str):
            out[k] = mask_msisdn(v)
        else:
            out[k] = redact_value(v)
    return out
