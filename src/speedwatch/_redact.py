"""Helpers for safe debug logging.

Relay payloads carry broker credentials and the user's own position.
Credentials are replaced outright; coordinates are coarsened to two
decimals (roughly a kilometre) so logs stay useful for debugging
without pinpointing anyone.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from speedwatch.ingestion.normalize import safe_float

_SECRET_KEYS: frozenset[str] = frozenset({"password", "token", "authorization", "cookie", "access_token"})

_COORDINATE_KEYS: frozenset[str] = frozenset({"lat", "latitude", "lon", "lng", "longitude"})

_COORDINATE_DECIMALS = 2


def _coarsen(value: Any) -> Any:
    parsed = safe_float(value)
    if parsed is None:
        return "<redacted>"
    return round(parsed, _COORDINATE_DECIMALS)


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* with secrets removed and coordinates coarsened."""
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SECRET_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _COORDINATE_KEYS:
                redacted[key] = _coarsen(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
