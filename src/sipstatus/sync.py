"""Startup bulk sync.

Runs once after the upstream connection comes up:

1. preload descriptions (status defaults to ``Unavailable``),
2. ask upstream for the current state of every device,
3. apply ``DeviceState`` records until the list-complete marker or the
   ceiling, whichever comes first,
4. publish the resulting snapshot so clients that connected meanwhile
   converge on it,
5. hand every event still queued on the sync channel to the live handler,
   then detach the channel.

A missing marker degrades to "whatever arrived"; an upstream failure leaves
the store with the preloaded entries. Neither stops the process.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sipstatus._ami import AmiRecord, EventHandler, UpstreamClient
from sipstatus._constants import DEVICE_STATE_LIST_ACTION, DEVICE_STATE_LIST_COMPLETE, SYNC_CEILING_SECONDS
from sipstatus._redact import redact_for_log
from sipstatus.broadcast import Broadcaster
from sipstatus.descriptions import DescriptionSource
from sipstatus.exceptions import AmiError, DescriptionSourceError, SipStatusError
from sipstatus.ingestion.ami import build_update_from_event
from sipstatus.state.events import UpdateSource
from sipstatus.state.store import StateStore

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    """Outcome of one bulk sync."""

    preloaded: int = 0
    applied: int = 0
    completed: bool = False
    published: int = 0
    handed_over: int = 0
    error: str | None = None


class SyncCoordinator:
    """One-shot startup sync.

    While it runs the coordinator owns the upstream event stream through an
    event channel. *live_handler* receives whatever is left on that channel
    when the sync finishes, in arrival order, before the channel is detached,
    so no event falls between the sync and the steady-state path.
    """

    def __init__(
        self,
        *,
        client: UpstreamClient,
        store: StateStore,
        broadcaster: Broadcaster,
        descriptions: DescriptionSource,
        live_handler: EventHandler | None = None,
        ceiling: float = SYNC_CEILING_SECONDS,
    ) -> None:
        self._client = client
        self._store = store
        self._broadcaster = broadcaster
        self._descriptions = descriptions
        self._live_handler = live_handler
        self._ceiling = ceiling
        self._started = False

    async def run(self) -> SyncReport:
        """Perform the bulk sync. May only be called once."""
        if self._started:
            raise SipStatusError("Bulk sync already ran")
        self._started = True

        preloaded = await self._preload()

        channel: asyncio.Queue[AmiRecord] = asyncio.Queue()
        self._client.set_event_channel(channel)
        handed_over = 0
        try:
            _logger.info("Requesting initial device states")
            try:
                records = await self._client.action({"Action": DEVICE_STATE_LIST_ACTION, "ActionID": "init"})
            except AmiError as exc:
                _logger.error("Error getting device states: %s", exc)
                return SyncReport(preloaded=preloaded, error=str(exc))
            _logger.info("DeviceStateList response: %s", redact_for_log(records[0] if records else {}))

            # Some upstream clients attach the list events to the response.
            applied, completed = self._apply(records[1:])
            if not completed:
                collected, completed = await self._collect(channel)
                applied += collected
            if completed:
                _logger.info("Device state list complete (%d states)", applied)
            else:
                _logger.warning(
                    "Timeout waiting for device states after %.1fs; continuing with %d collected",
                    self._ceiling,
                    applied,
                )
            published = await self._publish_snapshot()
        finally:
            handed_over = await self._hand_over(channel)

        self._log_states()
        return SyncReport(
            preloaded=preloaded,
            applied=applied,
            completed=completed,
            published=published,
            handed_over=handed_over,
        )

    async def _preload(self) -> int:
        try:
            descriptions = await self._descriptions.get_descriptions()
        except DescriptionSourceError as exc:
            _logger.warning("Failed to initialize extension cache: %s", exc)
            return 0
        preloaded = self._store.preload(descriptions)
        _logger.debug("Extension cache initialized with %d descriptions", preloaded)
        return preloaded

    def _apply(self, records: Iterable[AmiRecord]) -> tuple[int, bool]:
        applied = 0
        for record in records:
            if record.get("Event") == DEVICE_STATE_LIST_COMPLETE:
                return applied, True
            update = build_update_from_event(record, source=UpdateSource.SYNC)
            if update is None:
                continue
            _logger.debug("Got device state: %s = %s", record.get("Device"), update.status)
            self._store.apply(update)
            applied += 1
        return applied, False

    async def _collect(self, channel: asyncio.Queue[AmiRecord]) -> tuple[int, bool]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._ceiling
        applied = 0
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return applied, False
            try:
                record = await asyncio.wait_for(channel.get(), remaining)
            except TimeoutError:
                return applied, False
            count, completed = self._apply([record])
            applied += count
            if completed:
                return applied, True

    async def _publish_snapshot(self) -> int:
        endpoints = self._store.snapshot()
        for endpoint in endpoints:
            _logger.debug(
                "Broadcasting initial state for extension %s with state %s",
                endpoint.extension,
                endpoint.status,
            )
            await self._broadcaster.publish(endpoint.extension, endpoint.status)
        return len(endpoints)

    async def _hand_over(self, channel: asyncio.Queue[AmiRecord]) -> int:
        handed = 0
        while not channel.empty():
            record = channel.get_nowait()
            handed += 1
            if self._live_handler is None:
                continue
            try:
                result = self._live_handler(record)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.exception("Live handler failed for event %s", record.get("Event"))
        # No await between the last empty check and the detach.
        self._client.set_event_channel(None)
        if handed:
            _logger.debug("Handed %d queued events to the live handler", handed)
        return handed

    def _log_states(self) -> None:
        if not _logger.isEnabledFor(logging.DEBUG):
            return
        _logger.debug("Current device states")
        for endpoint in self._store.snapshot():
            _logger.debug(
                "Extension state extension=%s status=%s description=%s",
                endpoint.extension,
                endpoint.status,
                endpoint.description,
            )
