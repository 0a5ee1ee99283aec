"""Helpers for safe logging.

Account records carry credential hashes and pending one-time codes, and
device payloads are arbitrary bytes from the network. Everything logged
from those sources goes through one of the helpers below.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "pass",
        "credential",
        "credential_hash",
        "otp",
        "code",
        "pending_code",
        "token",
        "authorization",
    }
)


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Pydantic models are dumped first, so an :class:`~pyumbrella.models.Account`
    can be passed directly.
    """
    if _depth > 10:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, BaseModel):
        return redact_for_log(value.model_dump(mode="json"), max_string=max_string, _depth=_depth + 1)

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return preview_payload(bytes(value), max_bytes=max_string)

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)


def preview_payload(payload: bytes, *, max_bytes: int = 256) -> str:
    """Printable, bounded rendering of an inbound MQTT payload."""
    text = payload[:max_bytes].decode("utf-8", errors="backslashreplace")
    if len(payload) > max_bytes:
        return f"{text}…<{len(payload)}b>"
    return text
