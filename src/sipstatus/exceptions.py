"""Custom exception hierarchy for sipstatus."""

from __future__ import annotations

from typing import Any


class SipStatusError(Exception):
    """Base exception for all sipstatus errors."""


class ConfigError(SipStatusError):
    """Invalid or missing configuration."""


class DescriptionSourceError(SipStatusError):
    """Extension descriptions could not be loaded."""


class AmiError(SipStatusError):
    """Failure talking to the Asterisk Manager Interface."""


class AmiConnectionError(AmiError):
    """Not connected, connection lost, or no reply in time."""


class AmiActionError(AmiError):
    """An action was answered with ``Response: Error``."""

    def __init__(
        self,
        message: str,
        *,
        action: str = "",
        response: dict[str, Any] | None = None,
    ) -> None:
        self.action = action
        self.response = response or {}
        super().__init__(message)
