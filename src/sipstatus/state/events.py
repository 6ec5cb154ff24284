"""Normalized status updates.

All ingestion paths convert raw upstream records into these events. Only the
state/store layer is allowed to merge them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sipstatus.models.endpoint import is_numeric_extension


class UpdateSource(StrEnum):
    SYNC = "sync"
    LIVE = "live"
    MANUAL = "manual"


class StatusUpdate(BaseModel):
    """A canonical (extension, status) pair ready for the store and broadcaster."""

    model_config = ConfigDict(frozen=True)

    extension: str = Field(..., description="Numeric extension id")
    status: str = Field(..., description="Canonical status string")
    source: UpdateSource = UpdateSource.LIVE
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("extension")
    @classmethod
    def _require_numeric(cls, value: str) -> str:
        ext = value.strip()
        if not is_numeric_extension(ext):
            raise ValueError(f"extension must be numeric, got {value!r}")
        return ext
