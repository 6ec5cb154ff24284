"""Internal Asterisk Manager Interface client.

A thin layer over :class:`panoramisk.Manager`, which owns framing, login,
ActionID correlation, keep-alive pings and reconnects. This module adds the
routing the service needs: per-event handlers, a catch-all handler, and an
optional event channel that takes over the stream during the startup sync.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from panoramisk import Manager

from sipstatus._redact import redact_for_log
from sipstatus.config import AmiSettings
from sipstatus.exceptions import AmiActionError, AmiConnectionError

AmiRecord = dict[str, str]
EventHandler = Callable[[AmiRecord], Awaitable[Any] | Any]
LifecycleCallback = Callable[[str], Any]

_LIFECYCLE_EVENTS = frozenset({"connect", "error"})


class UpstreamClient(Protocol):
    """Structural interface of the upstream client used by the core.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`AmiClient`) concrete.
    """

    def register_handler(self, event: str, handler: EventHandler) -> None: ...

    def register_default_handler(self, handler: EventHandler | None) -> None: ...

    def set_event_channel(self, channel: asyncio.Queue[AmiRecord] | None) -> None: ...

    async def action(self, fields: Mapping[str, str], *, timeout: float | None = None) -> list[AmiRecord]: ...


def _to_records(result: Any) -> list[AmiRecord]:
    messages = result if isinstance(result, list) else [result]
    return [{str(key): str(value) for key, value in dict(message).items()} for message in messages]


class AmiClient:
    """Event routing and lifecycle callbacks around a panoramisk manager.

    While an event channel is set, every event goes to the channel and
    nowhere else; handlers see events only when no channel is set.
    """

    def __init__(
        self,
        settings: AmiSettings,
        *,
        action_timeout: float = 10.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._action_timeout = action_timeout
        self._logger = logger or logging.getLogger(__name__)
        self._handlers: dict[str, list[EventHandler]] = {}
        self._default_handler: EventHandler | None = None
        self._lifecycle: dict[str, list[LifecycleCallback]] = {}
        self._channel: asyncio.Queue[AmiRecord] | None = None
        self._manager: Manager | None = None
        self._dispatch_tasks: set[asyncio.Task[None]] = set()
        self._logged_in = False

    @property
    def is_connected(self) -> bool:
        """Whether the client is logged in on a live connection."""
        return self._logged_in

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on(self, name: str, callback: LifecycleCallback) -> None:
        """Register a lifecycle callback (``"connect"`` or ``"error"``)."""
        if name not in _LIFECYCLE_EVENTS:
            raise ValueError(f"unknown lifecycle event {name!r}")
        self._lifecycle.setdefault(name, []).append(callback)

    def register_handler(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def register_default_handler(self, handler: EventHandler | None) -> None:
        """Handler for events that have no specific handler."""
        self._default_handler = handler

    def set_event_channel(self, channel: asyncio.Queue[AmiRecord] | None) -> None:
        """Route every event into *channel* instead of the handlers; ``None`` detaches."""
        self._channel = channel

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Dial the PBX; the manager keeps reconnecting on its own afterwards.

        A failed first dial is reported through the ``"error"`` callbacks and
        does not raise.
        """
        if self._manager is not None:
            return
        settings = self._settings
        manager = Manager(
            loop=asyncio.get_running_loop(),
            host=settings.host,
            port=settings.port,
            username=settings.username,
            secret=settings.password,
            reconnect_timeout=settings.reconnect_interval,
            on_login=self._on_login,
            on_disconnect=self._on_disconnect,
        )
        manager.register_event("*", self._on_event)
        self._manager = manager

        self._logger.debug("AMI dial host=%s port=%s", settings.host, settings.port)
        try:
            # Shielded so a slow dial keeps going under the manager's own retry logic.
            await asyncio.wait_for(asyncio.shield(manager.connect()), settings.dial_timeout)
        except (OSError, TimeoutError) as exc:
            self._logger.debug("AMI dial failed", exc_info=True)
            self._emit("error", str(exc) or exc.__class__.__name__)

    async def close(self) -> None:
        manager = self._manager
        self._manager = None
        self._logged_in = False
        if manager is not None:
            manager.close()
        for task in list(self._dispatch_tasks):
            task.cancel()
        if self._dispatch_tasks:
            await asyncio.gather(*self._dispatch_tasks, return_exceptions=True)

    def _on_login(self, *_args: Any) -> None:
        self._logged_in = True
        self._emit("connect", f"{self._settings.host}:{self._settings.port}")

    def _on_disconnect(self, _manager: Any = None, exc: BaseException | None = None) -> None:
        self._logged_in = False
        self._emit("error", str(exc) if exc else "AMI connection lost")

    def _emit(self, name: str, message: str) -> None:
        for callback in self._lifecycle.get(name, []):
            try:
                callback(message)
            except Exception:
                self._logger.exception("AMI %s callback failed", name)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _on_event(self, _manager: Any, message: Any) -> None:
        record = _to_records(message)[0]
        channel = self._channel
        if channel is not None:
            channel.put_nowait(record)
            return
        task = asyncio.get_running_loop().create_task(self._dispatch(record))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)

    async def _dispatch(self, record: AmiRecord) -> None:
        handlers = self._handlers.get(record.get("Event", ""))
        if not handlers:
            if self._default_handler is None:
                return
            handlers = [self._default_handler]

        for handler in handlers:
            try:
                result = handler(record)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._logger.exception("AMI handler failed for event %s", record.get("Event"))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def action(self, fields: Mapping[str, str], *, timeout: float | None = None) -> list[AmiRecord]:
        """Send an action and return its records, the ``Response`` first.

        List actions may come back with their events attached; the manager
        decides, and any it does not attach arrive as ordinary events.
        """
        manager = self._manager
        if manager is None or not self._logged_in:
            raise AmiConnectionError("AMI not connected")

        payload = dict(fields)
        action_name = payload.get("Action", "")
        self._logger.debug("AMI action %s", redact_for_log(payload))
        try:
            result = await asyncio.wait_for(manager.send_action(payload), timeout or self._action_timeout)
        except TimeoutError as exc:
            raise AmiConnectionError(f"No response to {action_name} within timeout") from exc
        except OSError as exc:
            raise AmiConnectionError(f"Sending {action_name} failed: {exc}") from exc

        records = _to_records(result)
        response = records[0] if records else {}
        self._logger.debug("AMI response %s", redact_for_log(response))
        if response.get("Response", "").lower() == "error":
            raise AmiActionError(
                f"{action_name} failed: {response.get('Message', '')}",
                action=action_name,
                response=response,
            )
        return records
