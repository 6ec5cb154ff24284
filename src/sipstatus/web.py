"""HTTP surface: event stream, login, snapshot JSON.

Deliberately thin: every handler delegates to the state store, the
broadcaster, the authenticator or a :class:`StreamSession`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

from aiohttp import web

from sipstatus.auth import SessionAuthenticator
from sipstatus.broadcast import Broadcaster
from sipstatus.config import StatusConfig
from sipstatus.state.events import StatusUpdate, UpdateSource
from sipstatus.state.policy import is_visible
from sipstatus.state.store import StateStore
from sipstatus.stream import StreamSession

_logger = logging.getLogger(__name__)

SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "X-Accel-Buffering": "no",
}


@dataclass(frozen=True)
class Services:
    """Shared services handed to every request handler."""

    config: StatusConfig
    store: StateStore
    broadcaster: Broadcaster
    authenticator: SessionAuthenticator


SERVICES = web.AppKey("services", Services)


def resolve_client_ip(request: web.Request) -> str:
    """Best-effort client address for logging, proxy headers first."""
    for header in ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP"):
        value = request.headers.get(header)
        if value:
            # X-Forwarded-For may list a proxy chain; the first hop is the client.
            return value.split(",", 1)[0].strip()
    return request.remote or "-"


async def handle_events(request: web.Request) -> web.StreamResponse:
    services = request.app[SERVICES]
    client_ip = resolve_client_ip(request)
    _logger.info("New SSE connection from %s", client_ip)

    authenticated = services.authenticator.is_authenticated(request)
    _logger.debug("SSE client=%s authenticated=%s", client_ip, authenticated)

    response = web.StreamResponse(headers=SSE_HEADERS)
    await response.prepare(request)

    async def write(frame: str) -> None:
        await response.write(frame.encode("utf-8"))

    session = StreamSession(
        broadcaster=services.broadcaster,
        store=services.store,
        authenticated=authenticated,
        write=write,
        keepalive_interval=services.config.keepalive_interval,
        client=client_ip,
    )
    await session.run()
    return response


async def handle_login(request: web.Request) -> web.Response:
    services = request.app[SERVICES]
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise web.HTTPBadRequest(text="Invalid request") from None
    password = body.get("password") if isinstance(body, dict) else None
    if not isinstance(password, str):
        raise web.HTTPBadRequest(text="Invalid request")

    if not services.authenticator.check_password(password):
        _logger.info("Failed login from %s", resolve_client_ip(request))
        raise web.HTTPUnauthorized(text="Invalid password")

    response = web.Response(status=200)
    services.authenticator.login(response)
    _logger.info("Login from %s", resolve_client_ip(request))
    return response


async def handle_endpoints(request: web.Request) -> web.Response:
    services = request.app[SERVICES]
    authenticated = services.authenticator.is_authenticated(request)
    endpoints = services.store.snapshot(lambda ep: is_visible(ep.extension, authenticated=authenticated))
    return web.json_response([endpoint.model_dump() for endpoint in endpoints])


async def handle_test_update(request: web.Request) -> web.Response:
    services = request.app[SERVICES]
    ext = request.query.get("ext") or "12345"
    state = request.query.get("state") or "In use"
    _logger.info("Manual test update for extension %s to state %s", ext, state)

    try:
        update = StatusUpdate(extension=ext, status=state, source=UpdateSource.MANUAL)
    except ValueError:
        raise web.HTTPBadRequest(text=f"Extension must be numeric, got {ext!r}") from None
    await services.broadcaster.publish_update(update)
    return web.Response(text=f"Sent update for extension {update.extension} with state {update.status}")


def create_app(services: Services) -> web.Application:
    app = web.Application()
    app[SERVICES] = services
    app.router.add_get("/events", handle_events)
    app.router.add_post("/api/login", handle_login)
    app.router.add_get("/api/endpoints", handle_endpoints)
    if services.config.debug:
        app.router.add_get("/test-update", handle_test_update)
    return app


async def serve(app: web.Application, host: str, port: int) -> None:
    """Serve *app* until cancelled."""
    runner = web.AppRunner(app, handler_cancellation=True)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    _logger.info("Starting server on %s:%s", host, port)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
