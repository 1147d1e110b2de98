"""Shorten JSON payloads before they reach DEBUG logs.

Registration payloads may carry photos as base64 data URLs of several
hundred kilobytes; those are replaced by a short marker.
"""

from __future__ import annotations

from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset({"password", "token", "authorization"})


def _shorten(value: str, max_string: int) -> str:
    if value.startswith("data:") and len(value) > 64:
        media_type = value[5:].split(";", 1)[0].split(",", 1)[0]
        return f"<data-url:{media_type or 'unknown'}:{len(value)}c>"
    if len(value) > max_string:
        return f"{value[:max_string]}…<truncated>"
    return value


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Return a copy of decoded JSON *value* safe for debug logs."""
    if isinstance(value, str):
        return _shorten(value, max_string)
    if isinstance(value, dict):
        return {
            key: "<redacted>" if str(key).lower() in _SENSITIVE_KEYS else redact_for_log(item, max_string=max_string)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact_for_log(item, max_string=max_string) for item in value]
    return value
