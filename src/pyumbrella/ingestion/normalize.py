"""Normalization helpers.

Centralizes defensive parsing and placeholder handling for device payloads.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def decode_text(payload: bytes | str) -> str:
    """Decode an MQTT payload as UTF-8, replacing undecodable bytes."""
    if isinstance(payload, str):
        return payload
    return payload.decode("utf-8", errors="replace")
