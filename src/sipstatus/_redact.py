"""Helpers for safe debug logging.

AMI records carry credentials (``Action: Login`` sends ``Secret``) and the
HTTP layer handles session cookies. Everything that may contain them goes
through :func:`redact_for_log` before it reaches a DEBUG line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "secret",
        "key",
        "cookie",
        "set-cookie",
        "authorization",
    }
)
_SENSITIVE_SUFFIXES: tuple[str, ...] = ("password", "secret", "token")


def _is_sensitive(key: str) -> bool:
    lowered = key.strip().lower()
    return lowered in _SENSITIVE_KEYS or lowered.endswith(_SENSITIVE_SUFFIXES)


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 10:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>" if _is_sensitive(str(k)) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
