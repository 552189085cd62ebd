# app/airtel/phone.py
from __future__ import annotations

import re

_NON_DIGIT = re.compile(r"\D")

COUNTRY_PREFIX = "254"
LOCAL_LENGTH = 9


def normalize_msisdn(raw: str | None) -> str:
    """
    Map a subscriber number to the local format Airtel KE routes on (7XXXXXXXX).

    Never raises. Unrecognized shapes come back as the cleaned digits, and
    empty input comes back as "" which callers must reject before hitting the gateway.
    """
    if not raw:
        return ""

    cleaned = _NON_DIGIT.sub("", str(raw))

    if cleaned.startswith(COUNTRY_PREFIX):
        return cleaned[len(COUNTRY_PREFIX):]
    if cleaned.startswith("0"):
        return cleaned[1:]
    if len(cleaned) == LOCAL_LENGTH and cleaned.startswith("7"):
        return cleaned
    if len(cleaned) == LOCAL_LENGTH:
        return cleaned

    if len(cleaned) >= LOCAL_LENGTH:
        last9 = cleaned[-LOCAL_LENGTH:]
        if last9.startswith("7"):
            return last9

    return cleaned
