"""Endpoint model: one PBX extension as shown on the dashboard."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator


class CanonicalStatus(StrEnum):
    """Human-readable device states stored and broadcast."""

    IN_USE = "In use"
    NOT_IN_USE = "Not in use"
    RINGING = "Ringing"
    BUSY = "Busy"
    UNAVAILABLE = "Unavailable"
    UNKNOWN = "Unknown"


def is_numeric_extension(value: str) -> bool:
    """Return ``True`` when *value* is a non-negative integer id (ASCII digits only)."""
    return bool(value) and value.isascii() and value.isdigit()


class Endpoint(BaseModel):
    """A phone extension known to the state store."""

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
    )

    extension: str
    """Numeric extension id, unique and never reused."""

    description: str = ""
    """Set from the descriptor source only; live events never touch it."""

    status: str = ""
    """Canonical status string (see :class:`CanonicalStatus`)."""

    disabled: bool = False
    """Reserved; no event path drives it yet."""

    @field_validator("extension")
    @classmethod
    def _require_numeric(cls, value: str) -> str:
        if not is_numeric_extension(value):
            raise ValueError(f"extension must be numeric, got {value!r}")
        return value
