from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import pytest
from ami_peer import FakeAmiServer, accept_login

from sipstatus._ami import AmiClient
from sipstatus.config import AmiSettings, StatusConfig
from sipstatus.descriptions import StaticDescriptionSource
from sipstatus.service import StatusService


class _FakeClient:
    def __init__(self, *, connects: bool = True) -> None:
        self.connects = connects
        self.callbacks: dict[str, list[Callable[[str], Any]]] = {}
        self.handlers: dict[str, list[Any]] = {}
        self.default: Any = None
        self.channel: asyncio.Queue[dict[str, str]] | None = None
        self.connected = False
        self.closed = False

    @property
    def is_connected(self) -> bool:
        return self.connected

    def on(self, name: str, callback: Callable[[str], Any]) -> None:
        self.callbacks.setdefault(name, []).append(callback)

    async def connect(self) -> None:
        if self.connects:
            self.connected = True
            for callback in self.callbacks.get("connect", []):
                callback("fake:5038")

    async def close(self) -> None:
        self.closed = True

    def register_handler(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def register_default_handler(self, handler: Any) -> None:
        self.default = handler

    def set_event_channel(self, channel: asyncio.Queue[dict[str, str]] | None) -> None:
        self.channel = channel

    async def action(self, fields: Mapping[str, str], *, timeout: float | None = None) -> list[dict[str, str]]:
        assert self.channel is not None
        self.channel.put_nowait({"Event": "DeviceState", "Device": "PJSIP/1001", "State": "RINGING"})
        self.channel.put_nowait({"Event": "DeviceStateListComplete"})
        return [{"Response": "Success", "ActionID": fields["ActionID"]}]

    async def emit(self, record: dict[str, str]) -> None:
        for handler in self.handlers.get(record["Event"], []):
            await handler(record)


async def _wait_until(condition: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def _answer_device_state_list(record: dict[str, str]) -> list[dict[str, str]]:
    """List events, the complete marker, then a live change in the same burst."""
    if record.get("Action") != "DeviceStateList":
        return accept_login(record)
    action_id = record.get("ActionID", "")
    return [
        {
            "Response": "Success",
            "ActionID": action_id,
            "EventList": "start",
            "Message": "Device State Changes will follow",
        },
        {"Event": "DeviceState", "ActionID": action_id, "Device": "PJSIP/55555", "State": "NOT_INUSE"},
        {
            "Event": "DeviceStateListComplete",
            "ActionID": action_id,
            "EventList": "Complete",
            "ListItems": "1",
        },
        {"Event": "DeviceStateChange", "Device": "PJSIP/55555", "State": "INUSE"},
    ]


@pytest.mark.asyncio
async def test_start_syncs_then_hands_over_to_live_events() -> None:
    client = _FakeClient()
    config = StatusConfig(admin_password="letmein", connect_wait=1.0, sync_ceiling=1.0)

    async with StatusService(
        config,
        client=client,  # type: ignore[arg-type]
        descriptions=StaticDescriptionSource({"1001": "Reception"}),
    ) as service:
        report = await service.start()

        assert report.completed is True
        endpoint = service.store.get("1001")
        assert endpoint is not None
        assert (endpoint.status, endpoint.description) == ("Ringing", "Reception")
        assert client.channel is None
        assert set(client.handlers) == {"DeviceState", "DeviceStateChange"}

        await client.emit({"Event": "DeviceStateChange", "Device": "PJSIP/1001", "State": "NOT_INUSE"})
        endpoint = service.store.get("1001")
        assert endpoint is not None
        assert endpoint.status == "Not in use"

    assert client.closed


@pytest.mark.asyncio
async def test_start_proceeds_when_upstream_is_slow() -> None:
    client = _FakeClient(connects=False)
    config = StatusConfig(connect_wait=0.01, sync_ceiling=1.0)

    async with StatusService(
        config,
        client=client,  # type: ignore[arg-type]
        descriptions=StaticDescriptionSource(),
    ) as service:
        report = await service.start()

    assert report.applied == 1
    assert client.closed


@pytest.mark.asyncio
async def test_change_right_after_list_complete_is_applied() -> None:
    server = FakeAmiServer(_answer_device_state_list)
    await server.start()
    config = StatusConfig(
        ami=AmiSettings(
            host="127.0.0.1",
            port=server.port,
            username="monitor",
            password="hunter2",
            dial_timeout=1.0,
            reconnect_interval=10.0,
        ),
        connect_wait=2.0,
        sync_ceiling=1.0,
    )
    try:
        async with StatusService(
            config,
            client=AmiClient(config.ami, action_timeout=1.0),
            descriptions=StaticDescriptionSource(),
        ) as service:
            report = await service.start()

            assert report.completed is True

            def in_use() -> bool:
                endpoint = service.store.get("55555")
                return endpoint is not None and endpoint.status == "In use"

            await _wait_until(in_use)
    finally:
        await server.stop()
