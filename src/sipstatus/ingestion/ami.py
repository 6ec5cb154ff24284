"""AMI ingestion helpers.

This module translates raw AMI event records into normalized status updates
and wires the steady-state path: update the store, then publish.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from sipstatus._constants import (
    DEVICE_STATE_EVENTS,
    NOISY_EVENT_PREFIXES,
    NOISY_EVENTS,
    NOISY_USER_EVENTS,
)
from sipstatus._redact import redact_for_log
from sipstatus.broadcast import Broadcaster
from sipstatus.ingestion.normalize import extension_from_device, normalize_state
from sipstatus.state.events import StatusUpdate, UpdateSource
from sipstatus.state.store import StateStore

_logger = logging.getLogger(__name__)

AmiRecord = Mapping[str, Any]


class _HandlerRegistry(Protocol):
    def register_handler(self, event: str, handler: Any) -> None: ...

    def register_default_handler(self, handler: Any) -> None: ...


def build_update_from_event(
    record: AmiRecord,
    *,
    source: UpdateSource = UpdateSource.LIVE,
) -> StatusUpdate | None:
    """Build a :class:`StatusUpdate` from a device state record.

    Returns ``None`` for anything that is not a ``DeviceStateChange`` /
    ``DeviceState`` event about a numeric SIP or PJSIP device.
    """
    if record.get("Event") not in DEVICE_STATE_EVENTS:
        return None
    ext = extension_from_device(record.get("Device"))
    if ext is None:
        return None
    return StatusUpdate(
        extension=ext,
        status=str(normalize_state(record.get("State"))),
        source=source,
    )


def is_noisy_event(record: AmiRecord) -> bool:
    """Whether an unhandled event is too chatty for the diagnostic log."""
    event = str(record.get("Event") or "")
    if event in NOISY_EVENTS or event.startswith(NOISY_EVENT_PREFIXES):
        return True
    return event == "UserEvent" and record.get("UserEvent") in NOISY_USER_EVENTS


def log_unhandled_event(record: AmiRecord) -> None:
    """Catch-all observer: diagnostic visibility only, never mutates state."""
    if is_noisy_event(record):
        return
    _logger.info("Default handler: %s", redact_for_log(dict(record)))


class DeviceStateHandler:
    """Steady-state path: normalize, upsert, publish."""

    def __init__(self, store: StateStore, broadcaster: Broadcaster) -> None:
        self._store = store
        self._broadcaster = broadcaster

    async def __call__(self, record: AmiRecord) -> StatusUpdate | None:
        update = build_update_from_event(record)
        if update is None:
            return None

        _logger.info("State change: %s -> %s", update.extension, update.status)
        self._store.apply(update)

        _logger.debug(
            "Broadcasting filtered event extension=%s state=%s clients=%d",
            update.extension,
            update.status,
            self._broadcaster.client_count(),
        )
        await self._broadcaster.publish_update(update)
        return update

    def attach(self, client: _HandlerRegistry) -> None:
        """Register on an upstream client for live state events."""
        for event in sorted(DEVICE_STATE_EVENTS):
            client.register_handler(event, self)
        client.register_default_handler(log_unhandled_event)
