from __future__ import annotations

import pytest
from aiohttp.test_utils import TestClient, TestServer, make_mocked_request

from sipstatus._constants import SESSION_COOKIE_NAME
from sipstatus.auth import SessionAuthenticator
from sipstatus.broadcast import Broadcaster
from sipstatus.config import StatusConfig
from sipstatus.state.store import StateStore
from sipstatus.web import Services, create_app, resolve_client_ip


def _services(*, debug: bool = False, admin_password: str = "letmein") -> Services:
    config = StatusConfig(admin_password=admin_password, debug=debug, keepalive_interval=0.05)
    store = StateStore()
    store.preload({"1001": "Reception", "55555": "Warehouse"})
    store.upsert("12345", "Ringing")
    return Services(
        config=config,
        store=store,
        broadcaster=Broadcaster(),
        authenticator=SessionAuthenticator(config.admin_password, secure_cookie=False),
    )


async def _login(client: TestClient, password: str = "letmein") -> dict[str, str]:
    resp = await client.post("/api/login", json={"password": password})
    assert resp.status == 200
    token = resp.cookies[SESSION_COOKIE_NAME].value
    return {"Cookie": f"{SESSION_COOKIE_NAME}={token}"}


@pytest.mark.asyncio
async def test_login_sets_session_cookie() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        resp = await client.post("/api/login", json={"password": "letmein"})

        assert resp.status == 200
        morsel = resp.cookies[SESSION_COOKIE_NAME]
        assert morsel.value
        assert morsel["httponly"]
        assert morsel["samesite"] == "Strict"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("body", "status", "text"),
    [
        ({"password": "wrong"}, 401, "Invalid password"),
        ({"password": 42}, 400, "Invalid request"),
        (["letmein"], 400, "Invalid request"),
    ],
)
async def test_login_rejections(body: object, status: int, text: str) -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        resp = await client.post("/api/login", json=body)

        assert resp.status == status
        assert await resp.text() == text
        assert SESSION_COOKIE_NAME not in resp.cookies


@pytest.mark.asyncio
async def test_login_rejects_malformed_json() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        resp = await client.post("/api/login", data=b"{not json", headers={"Content-Type": "application/json"})

        assert resp.status == 400
        assert await resp.text() == "Invalid request"


@pytest.mark.asyncio
async def test_login_disabled_without_admin_password() -> None:
    async with TestClient(TestServer(create_app(_services(admin_password="")))) as client:
        resp = await client.post("/api/login", json={"password": ""})

        assert resp.status == 401


@pytest.mark.asyncio
async def test_endpoints_are_filtered_by_session() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        anonymous = await (await client.get("/api/endpoints")).json()
        headers = await _login(client)
        admin = await (await client.get("/api/endpoints", headers=headers)).json()

    assert [item["extension"] for item in anonymous] == ["12345", "55555"]
    assert [item["extension"] for item in admin] == ["1001", "12345", "55555"]
    assert admin[0] == {
        "extension": "1001",
        "description": "Reception",
        "status": "Unavailable",
        "disabled": False,
    }


@pytest.mark.asyncio
async def test_forged_cookie_is_anonymous() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        resp = await client.get("/api/endpoints", headers={"Cookie": f"{SESSION_COOKIE_NAME}=forged"})
        body = await resp.json()

    assert [item["extension"] for item in body] == ["12345", "55555"]


async def _read_until_connected(resp: object) -> list[str]:
    lines: list[str] = []
    while True:
        raw = await resp.content.readline()  # type: ignore[attr-defined]
        assert raw, "stream ended before the connection marker"
        line = raw.decode("utf-8").rstrip("\n")
        if not line:
            continue
        lines.append(line)
        if line == "data: Connected to updates":
            return lines


@pytest.mark.asyncio
async def test_events_stream_sends_visible_snapshot() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        resp = await client.get("/events")
        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/event-stream")
        assert resp.headers["Cache-Control"] == "no-cache"

        lines = await _read_until_connected(resp)
        resp.close()

    assert lines == [
        "data: 12345 Ringing",
        "data: 55555 Unavailable",
        "data: Connected to updates",
    ]


@pytest.mark.asyncio
async def test_events_stream_for_authenticated_viewer() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        headers = await _login(client)
        resp = await client.get("/events", headers=headers)
        lines = await _read_until_connected(resp)
        resp.close()

    assert lines[0] == "data: 1001 Unavailable"
    assert len(lines) == 4


@pytest.mark.asyncio
async def test_test_update_is_not_routed_outside_debug() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        resp = await client.get("/test-update")

        assert resp.status == 404


@pytest.mark.asyncio
async def test_test_update_publishes_in_debug() -> None:
    services = _services(debug=True)
    subscription, _ = await services.broadcaster.subscribe(authenticated=False)

    async with TestClient(TestServer(create_app(services))) as client:
        default = await client.get("/test-update")
        explicit = await client.get("/test-update", params={"ext": "77777", "state": "Busy"})
        invalid = await client.get("/test-update", params={"ext": "abc"})

        assert default.status == 200
        assert await default.text() == "Sent update for extension 12345 with state In use"
        assert explicit.status == 200
        assert invalid.status == 400

    assert await subscription.receive() == "data: 12345 In use\n\n"
    assert await subscription.receive() == "data: 77777 Busy\n\n"


def test_resolve_client_ip_prefers_forwarded_header() -> None:
    request = make_mocked_request("GET", "/events", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

    assert resolve_client_ip(request) == "203.0.113.9"


@pytest.mark.asyncio
async def test_login_only_accepts_post() -> None:
    async with TestClient(TestServer(create_app(_services()))) as client:
        resp = await client.get("/api/login")

        assert resp.status == 405
