"""Normalization helpers.

Centralizes the raw-state vocabulary and device-name parsing. This is the
single mapping used by bulk sync, live events and stream sessions.
"""

from __future__ import annotations

from typing import Any

from sipstatus._constants import DEVICE_PREFIXES
from sipstatus.models.endpoint import CanonicalStatus, is_numeric_extension

_STATE_TABLE: dict[str, CanonicalStatus] = {
    "INUSE": CanonicalStatus.IN_USE,
    "NOT_INUSE": CanonicalStatus.NOT_IN_USE,
    "IDLE": CanonicalStatus.NOT_IN_USE,
    "RINGING": CanonicalStatus.RINGING,
    "BUSY": CanonicalStatus.BUSY,
    "UNAVAILABLE": CanonicalStatus.UNAVAILABLE,
    "INVALID": CanonicalStatus.UNAVAILABLE,
    "UNKNOWN": CanonicalStatus.UNAVAILABLE,
    "": CanonicalStatus.UNAVAILABLE,
}


def normalize_state(value: Any) -> CanonicalStatus:
    """Map a raw AMI device state (any case) to its canonical status.

    Missing values count as empty; anything unmapped is ``Unknown``.
    """
    raw = "" if value is None else str(value).strip().upper()
    return _STATE_TABLE.get(raw, CanonicalStatus.UNKNOWN)


def strip_device_prefix(device: Any) -> str | None:
    """Return the part after a known transport prefix, or ``None``."""
    if not isinstance(device, str):
        return None
    for prefix in DEVICE_PREFIXES:
        if device.startswith(prefix):
            return device[len(prefix) :]
    return None


def extension_from_device(device: Any) -> str | None:
    """``PJSIP/1234`` -> ``"1234"``; ``None`` for other technologies or non-numeric ids."""
    ext = strip_device_prefix(device)
    if ext is None or not is_numeric_extension(ext):
        return None
    return ext
