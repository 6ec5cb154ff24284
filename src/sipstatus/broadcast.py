"""Fan-out of status updates to connected streaming clients.

Each client owns a :class:`Subscription` with a bounded :class:`Mailbox`.
A publish walks every subscription once, honouring the visibility policy,
and gives each full mailbox a short grace period before dropping the
message for that client only. Delivery is best-effort and at-most-once.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from sipstatus._constants import DELIVERY_TIMEOUT_SECONDS, SSE_DATA_PREFIX, SUBSCRIBER_CAPACITY
from sipstatus.state.events import StatusUpdate
from sipstatus.state.policy import is_visible

_logger = logging.getLogger(__name__)

#: One pre-formatted event-stream frame.
Message = str
Unsubscribe = Callable[[], Awaitable[None]]

_subscription_ids = itertools.count(1)


def format_update(extension: str, status: str) -> str:
    """Render one event-stream data frame: ``data: <ext> <status>\\n\\n``."""
    return f"{SSE_DATA_PREFIX}{extension} {status}\n\n"


class Mailbox:
    """Bounded message queue with a timed put.

    The single backpressure primitive of the package: live publishes and a
    session's initial snapshot both reach the client through :meth:`offer`.
    """

    def __init__(
        self,
        capacity: int = SUBSCRIBER_CAPACITY,
        timeout: float = DELIVERY_TIMEOUT_SECONDS,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=capacity)
        self._timeout = timeout
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def offer(self, message: Message) -> bool:
        """Enqueue *message*, waiting at most the configured timeout.

        Returns ``False`` when the message was dropped.
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            pass
        try:
            await asyncio.wait_for(self._queue.put(message), self._timeout)
        except TimeoutError:
            return False
        return True

    async def get(self) -> Message:
        return await self._queue.get()

    def close(self) -> None:
        """Refuse further offers and release queued messages."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()


@dataclass(eq=False)
class Subscription:
    """One connected streaming client."""

    authenticated: bool
    mailbox: Mailbox
    id: int = field(default_factory=lambda: next(_subscription_ids))

    async def receive(self) -> Message:
        return await self.mailbox.get()


@dataclass(frozen=True)
class PublishResult:
    delivered: int = 0
    dropped: int = 0
    hidden: int = 0


class Broadcaster:
    """Registry of live subscriptions plus the publish fan-out.

    A single lock covers the subscription set. Publish holds it for the
    whole pass (including each subscriber's grace period), so subscribe and
    unsubscribe can wait up to one fan-out duration. With tens of viewers
    that bound is well under a second.
    """

    def __init__(
        self,
        *,
        capacity: int = SUBSCRIBER_CAPACITY,
        delivery_timeout: float = DELIVERY_TIMEOUT_SECONDS,
    ) -> None:
        self._capacity = capacity
        self._delivery_timeout = delivery_timeout
        self._lock = asyncio.Lock()
        self._subscriptions: dict[int, Subscription] = {}

    def client_count(self) -> int:
        """Number of active subscriptions (observability only)."""
        return len(self._subscriptions)

    async def subscribe(self, authenticated: bool) -> tuple[Subscription, Unsubscribe]:
        """Register a new client.

        Returns the subscription to receive from and an action that removes
        it again. The action is safe to await more than once.
        """
        subscription = Subscription(
            authenticated=authenticated,
            mailbox=Mailbox(self._capacity, self._delivery_timeout),
        )
        async with self._lock:
            self._subscriptions[subscription.id] = subscription
        _logger.debug(
            "Subscribed id=%s authenticated=%s clients=%s",
            subscription.id,
            authenticated,
            self.client_count(),
        )

        done = False

        async def unsubscribe() -> None:
            nonlocal done
            if done:
                return
            done = True
            async with self._lock:
                self._subscriptions.pop(subscription.id, None)
                subscription.mailbox.close()
            _logger.debug("Unsubscribed id=%s clients=%s", subscription.id, self.client_count())

        return subscription, unsubscribe

    async def publish(self, extension: str, status: str) -> PublishResult:
        """Send one formatted update to every subscriber allowed to see it."""
        message = format_update(extension, status)
        delivered = dropped = hidden = 0

        async with self._lock:
            for subscription in self._subscriptions.values():
                if not is_visible(extension, authenticated=subscription.authenticated):
                    hidden += 1
                    continue
                if await subscription.mailbox.offer(message):
                    delivered += 1
                else:
                    dropped += 1
                    _logger.warning("Client buffer full, message skipped (subscription %s)", subscription.id)

        if dropped:
            _logger.warning(
                "Filtered broadcast partially complete: %d active clients, %d skipped",
                delivered,
                dropped,
            )
        else:
            _logger.debug("Filtered broadcast complete active_clients=%d", delivered)
        _logger.debug("Broadcast filtered event extension=%s state=%s", extension, status)
        return PublishResult(delivered=delivered, dropped=dropped, hidden=hidden)

    async def publish_update(self, update: StatusUpdate) -> PublishResult:
        return await self.publish(update.extension, update.status)
