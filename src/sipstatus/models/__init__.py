"""Data models exposed by sipstatus."""

from sipstatus.models.endpoint import CanonicalStatus, Endpoint, is_numeric_extension

__all__ = [
    "CanonicalStatus",
    "Endpoint",
    "is_numeric_extension",
]
