"""Minimal in-process AMI peer for client and service tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping

Responder = Callable[[dict[str, str]], list[dict[str, str]]]

BANNER = b"Asterisk Call Manager/5.0.1\r\n"


def frame(fields: Mapping[str, str]) -> bytes:
    lines = [f"{key}: {value}" for key, value in fields.items()]
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


def parse(lines: list[str]) -> dict[str, str]:
    record: dict[str, str] = {}
    for line in lines:
        key, sep, value = line.partition(":")
        if sep:
            record[key.strip()] = value.strip()
    return record


def accept_login(record: dict[str, str]) -> list[dict[str, str]]:
    """Answer Login and Ping; anything else gets a generic success."""
    action_id = record.get("ActionID", "")
    if record.get("Action") == "Login":
        return [{"Response": "Success", "ActionID": action_id, "Message": "Authentication accepted"}]
    if record.get("Action") == "Ping":
        return [{"Response": "Success", "ActionID": action_id, "Ping": "Pong"}]
    return [{"Response": "Success", "ActionID": action_id}]


class FakeAmiServer:
    """Banner, then one batch of records per received action.

    ``push`` sends unsolicited events to every connected client.
    """

    def __init__(self, responder: Responder = accept_login) -> None:
        self.responder = responder
        self.received: list[dict[str, str]] = []
        self.server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []

    @property
    def port(self) -> int:
        assert self.server is not None
        return self.server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def stop(self) -> None:
        assert self.server is not None
        for writer in self._writers:
            writer.close()
        self.server.close()
        await self.server.wait_closed()

    async def push(self, *records: dict[str, str]) -> None:
        for writer in self._writers:
            for record in records:
                writer.write(frame(record))
            await writer.drain()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        writer.write(BANNER)
        await writer.drain()
        lines: list[str] = []
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                line = raw.decode("utf-8").rstrip("\r\n")
                if line:
                    lines.append(line)
                    continue
                if not lines:
                    continue
                record = parse(lines)
                lines = []
                self.received.append(record)
                for reply in self.responder(record):
                    writer.write(frame(reply))
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()
