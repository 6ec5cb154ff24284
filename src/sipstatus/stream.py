"""Per-client event stream.

A :class:`StreamSession` moves through three states:

``CONNECTING``
    subscribe, queue the visible snapshot and the connection marker on the
    subscription's mailbox;
``STREAMING``
    drain the mailbox to the client, racing it against the keep-alive timer
    and the disconnect signal;
``CLOSED``
    unsubscribe (exactly once, on every exit path).

Sessions never reconnect; a client that drops comes back as a new session
and gets a fresh snapshot.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from sipstatus._constants import KEEPALIVE_INTERVAL_SECONDS, SSE_CONNECTED, SSE_DATA_PREFIX, SSE_KEEPALIVE
from sipstatus.broadcast import Broadcaster, Message, Subscription, format_update
from sipstatus.models.endpoint import Endpoint
from sipstatus.state.policy import is_visible
from sipstatus.state.store import StateStore

_logger = logging.getLogger(__name__)

Writer = Callable[[str], Awaitable[None]]


class SessionState(StrEnum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


class StreamSession:
    """Stream status frames to one client until it goes away."""

    def __init__(
        self,
        *,
        broadcaster: Broadcaster,
        store: StateStore,
        authenticated: bool,
        write: Writer,
        disconnected: asyncio.Event | None = None,
        keepalive_interval: float = KEEPALIVE_INTERVAL_SECONDS,
        client: str = "-",
    ) -> None:
        self._broadcaster = broadcaster
        self._store = store
        self._authenticated = authenticated
        self._write = write
        self._disconnected = disconnected
        self._keepalive_interval = keepalive_interval
        self._client = client
        self._state = SessionState.CONNECTING

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    def _visible(self, endpoint: Endpoint) -> bool:
        return bool(endpoint.status) and is_visible(endpoint.extension, authenticated=self._authenticated)

    async def run(self) -> None:
        """Run the session to completion.

        Returns when the disconnect signal fires or the client stops
        accepting writes; task cancellation propagates after cleanup.
        """
        subscription, unsubscribe = await self._broadcaster.subscribe(self._authenticated)
        initial: asyncio.Task[None] | None = None
        try:
            # The snapshot is queued like any publish, so one stalled client
            # costs the same bounded wait on both paths.
            initial = asyncio.ensure_future(self._send_initial(subscription))
            self._state = SessionState.STREAMING
            await self._stream(subscription)
        except ConnectionError as exc:
            _logger.info("Client %s went away: %s", self._client, exc)
        finally:
            self._state = SessionState.CLOSED
            if initial is not None and not initial.done():
                initial.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await initial
            # Shielded so a second cancel cannot leave the subscription behind.
            await asyncio.shield(unsubscribe())
            _logger.debug("Session closed client=%s clients=%d", self._client, self._broadcaster.client_count())

    async def _send_initial(self, subscription: Subscription) -> None:
        _logger.debug("Sending initial states client=%s", self._client)
        frames = [format_update(endpoint.extension, endpoint.status) for endpoint in self._store.snapshot(self._visible)]
        frames.append(SSE_CONNECTED)
        dropped = 0
        for frame in frames:
            if not await subscription.mailbox.offer(frame):
                dropped += 1
        if dropped:
            _logger.warning("Client %s buffer full, %d initial messages skipped", self._client, dropped)
        _logger.debug("Finished sending initial states client=%s", self._client)

    async def _stream(self, subscription: Subscription) -> None:
        receive_task: asyncio.Task[Message] | None = None
        closed_task: asyncio.Task[bool] | None = None
        if self._disconnected is not None:
            closed_task = asyncio.ensure_future(self._disconnected.wait())
        try:
            while True:
                if receive_task is None:
                    receive_task = asyncio.ensure_future(subscription.receive())
                waiters: set[asyncio.Future[Any]] = {receive_task}
                if closed_task is not None:
                    waiters.add(closed_task)

                done, _pending = await asyncio.wait(
                    waiters,
                    timeout=self._keepalive_interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if closed_task is not None and closed_task in done:
                    _logger.info("Client %s context done", self._client)
                    return
                if receive_task in done:
                    message = receive_task.result()
                    receive_task = None
                    await self._forward(message)
                    continue
                await self._write(SSE_KEEPALIVE)
                _logger.debug("Sent keep-alive client=%s", self._client)
        finally:
            for task in (receive_task, closed_task):
                if task is not None and not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task

    async def _forward(self, message: Message) -> None:
        if message.startswith((SSE_DATA_PREFIX, ":")):
            await self._write(message)
            _logger.debug("Sent update client=%s", self._client)
            return
        _logger.debug("Dropping unformatted message for client=%s: %r", self._client, message)
