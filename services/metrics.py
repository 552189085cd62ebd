from __future__ import annotations

from threading import Lock
from typing import Tuple


_lock = Lock()
_counters: dict[str, dict[Tuple[Tuple[str, str], ...], int]] = {}


def _inc(name: str, labels: dict[str, str] | None = None, value: int = 1) -> None:
    key = tuple(sorted((labels or {}).items()))
    with _lock:
        series = _counters.setdefault(name, {})
        series[key] = int(series.get(key, 0)) + int(value)


def increment_http_requests(route: str, status: int) -> None:
    _inc("http_requests_total", {"route": route, "status": str(status)})


def increment_provider_call(operation: str, result: str) -> None:
    _inc("airtel_calls_total", {"operation": operation, "result": result})


def increment_transaction_outcome(tx_type: str, status: str, source: str) -> None:
    _inc("transaction_outcomes_total", {"type": tx_type, "status": status, "source": source})


def increment_callback_event(matched: bool, applied: bool) -> None:
    _inc(
        "airtel_callbacks_total",
        {
            "matched": str(matched).lower(),
            "applied": str(applied).lower(),
        },
    )


def counter_value(name: str, **labels: str) -> int:
    key = tuple(sorted(labels.items()))
    with _lock:
        return int(_counters.get(name, {}).get(key, 0))


def reset_counters() -> None:
    with _lock:
        _counters.clear()


def render_prometheus() -> str:
    lines: list[str] = []
    with _lock:
        for name, series in sorted(_counters.items()):
            lines.append(f"# TYPE {name} counter")
            for labels, value in sorted(series.items()):
                if labels:
                    label_str = ",".join(f'{k}="{v}"' for k, v in labels)
                    lines.append(f"{name}{{{label_str}}} {value}")
                else:
                    lines.append(f"{name} {value}")
    return "\n".join(lines) + ("\n" if lines else "")
