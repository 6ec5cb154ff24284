"""Service wiring: upstream connection, bulk sync, steady state, HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiohttp import web

from sipstatus._ami import AmiClient
from sipstatus.auth import SessionAuthenticator
from sipstatus.broadcast import Broadcaster
from sipstatus.config import StatusConfig
from sipstatus.descriptions import DescriptionSource, description_source_from_path
from sipstatus.ingestion.ami import DeviceStateHandler
from sipstatus.state.store import StateStore
from sipstatus.sync import SyncCoordinator, SyncReport
from sipstatus.web import Services, create_app, serve

_logger = logging.getLogger(__name__)


class StatusService:
    """Owns the shared services and runs the startup sequence.

    Usage::

        async with StatusService(config) as service:
            await service.start()
            await service.serve_forever()
    """

    def __init__(
        self,
        config: StatusConfig,
        *,
        client: AmiClient | None = None,
        descriptions: DescriptionSource | None = None,
    ) -> None:
        self._config = config
        self.store = StateStore()
        self.broadcaster = Broadcaster(
            capacity=config.subscriber_capacity,
            delivery_timeout=config.delivery_timeout,
        )
        self.authenticator = SessionAuthenticator(
            config.admin_password,
            key=config.session_key,
            lifetime=config.session_lifetime,
        )
        self._client = client or AmiClient(config.ami)
        self._descriptions = descriptions or description_source_from_path(config.descriptions_file)
        self._ready = asyncio.Event()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> StatusService:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def _on_connect(self, message: str) -> None:
        _logger.info("Connected: %s", message)
        self._ready.set()

    def _on_error(self, message: str) -> None:
        _logger.error("CONNECTION ERROR: %s", message)

    async def start(self) -> SyncReport:
        """Connect upstream, bulk-sync, then leave events to the steady-state path.

        The live handler is registered before dialling; the sync's event
        channel holds events back from it until the sync hands over.
        """
        live = DeviceStateHandler(self.store, self.broadcaster)
        live.attach(self._client)

        self._client.on("connect", self._on_connect)
        self._client.on("error", self._on_error)
        await self._client.connect()

        if not self._client.is_connected:
            try:
                await asyncio.wait_for(self._ready.wait(), self._config.connect_wait)
                _logger.info("AMI connection ready")
            except TimeoutError:
                _logger.warning("Timeout waiting for AMI connection")

        coordinator = SyncCoordinator(
            client=self._client,
            store=self.store,
            broadcaster=self.broadcaster,
            descriptions=self._descriptions,
            live_handler=live,
            ceiling=self._config.sync_ceiling,
        )
        return await coordinator.run()

    def create_app(self) -> web.Application:
        return create_app(
            Services(
                config=self._config,
                store=self.store,
                broadcaster=self.broadcaster,
                authenticator=self.authenticator,
            )
        )

    async def serve_forever(self) -> None:
        await serve(self.create_app(), self._config.serve_ip, self._config.serve_port)
