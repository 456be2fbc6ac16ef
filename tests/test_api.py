from __future__ import annotations

import asyncio

import pytest

from itachctl.api import (
    Client,
    CommandSupersededError,
    ConfigurationError,
    DeviceProtocolError,
    TransportTimeoutError,
)
from itachctl.core.model import ClientConfig, DeviceProfile

IR_LINE = "sendir,1:1,99,38000,1,1,343,171,21,21"


class FakeDevice:
    """Loopback stand-in for the device: one reply per connection."""

    def __init__(self, replies: dict[str, str]) -> None:
        self.replies = replies
        self.received: list[str] = []

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        line = (await reader.readuntil(b"\r\n")).decode("ascii").strip()
        self.received.append(line)
        fields = line.split(",")
        reply = self.replies.get(fields[0])
        if reply is not None:
            writer.write(reply.format(address=fields[1], id=fields[2] if len(fields) > 2 else "").encode("ascii"))
            await writer.drain()
        await reader.read()
        writer.close()


def test_missing_host_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        Client()
    with pytest.raises(ConfigurationError):
        Client(config=ClientConfig(host=""))


def test_defaults() -> None:
    client = Client("itach.local")
    assert client.config == ClientConfig(host="itach.local", port=4998, timeout_ms=20000, module=1, debug=False)


def test_from_profile_uses_profile_config() -> None:
    profile = DeviceProfile(id="den", name="Den", config=ClientConfig(host="10.0.0.9", port=5000))
    client = Client.from_profile(profile)
    assert client.config.host == "10.0.0.9"
    assert client.config.port == 5000


def test_send_against_loopback_device() -> None:
    device = FakeDevice(
        {
            "sendir": "completeir,{address},{id}\r",
            "setstate": "setstate,{address},1\r",
        }
    )

    async def scenario() -> tuple[list[str | None], list[str]]:
        server = await asyncio.start_server(device.handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        events: list[str] = []
        async with server:
            async with Client("127.0.0.1", port=port, timeout=2000) as client:
                client.on("sent", lambda: events.append("sent"))
                ir = client.submit(IR_LINE)
                serial = client.submit({"serial": "setstate,1:3,1", "module": 2})
                assert client.in_flight
                results = list(await asyncio.gather(ir, serial))
        return results, events

    results, events = asyncio.run(scenario())
    assert results == ["completeir,1:1,1", "setstate,1:2,1"]
    assert device.received == ["sendir,1:1,1,38000,1,1,343,171,21,21", "setstate,1:2,1"]
    assert events == ["sent", "sent"]


def test_device_error_is_raised_from_send() -> None:
    device = FakeDevice({"sendir": "ERR_1:1,001\r"})

    async def scenario() -> None:
        server = await asyncio.start_server(device.handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            async with Client("127.0.0.1", port=port, timeout=2000) as client:
                with pytest.raises(DeviceProtocolError) as exc:
                    await client.send(IR_LINE)
                assert exc.value.code == "001"
                assert client.pending == ()

    asyncio.run(scenario())


def test_superseded_serial_send_fails_first_future() -> None:
    device = FakeDevice(
        {
            "sendir": "completeir,{address},{id}\r",
            "setstate": "setstate,{address},1\r",
        }
    )

    async def scenario() -> list[object]:
        server = await asyncio.start_server(device.handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            async with Client("127.0.0.1", port=port, timeout=2000) as client:
                ir = client.submit(IR_LINE)
                first = client.submit("setstate,1:3,1")
                second = client.submit("setstate,1:3,0")
                results = await asyncio.gather(ir, first, second, return_exceptions=True)
                assert client.pending == ()
        return list(results)

    ir, first, second = asyncio.run(scenario())
    assert ir == "completeir,1:1,1"
    assert isinstance(first, CommandSupersededError)
    assert second == "setstate,1:3,1"
    assert device.received == ["sendir,1:1,1,38000,1,1,343,171,21,21", "setstate,1:3,0"]


def test_callback_receives_outcome_alongside_future() -> None:
    class TimeoutTransport:
        async def exchange(self, line: str, *, on_event=None) -> list[str]:
            raise TransportTimeoutError("No response")

    async def scenario() -> list[tuple[Exception | None, str | None]]:
        outcomes: list[tuple[Exception | None, str | None]] = []
        client = Client("itach.local", transport=TimeoutTransport())
        future = client.submit(IR_LINE, callback=lambda error, response: outcomes.append((error, response)))
        with pytest.raises(TransportTimeoutError):
            await future
        return outcomes

    outcomes = asyncio.run(scenario())
    assert len(outcomes) == 1
    assert isinstance(outcomes[0][0], TransportTimeoutError)


def test_disconnect_can_cancel_abandoned_futures() -> None:
    class HangingTransport:
        async def exchange(self, line: str, *, on_event=None) -> list[str]:
            await asyncio.sleep(3600)
            return []

    async def scenario() -> None:
        client = Client("itach.local", transport=HangingTransport())
        kept = client.submit(IR_LINE)
        await asyncio.sleep(0)
        assert client.disconnect() == ["1"]
        assert not kept.done()

        cancelled = client.submit(IR_LINE)
        await asyncio.sleep(0)
        assert client.disconnect(cancel_pending=True) == ["2"]
        assert cancelled.cancelled()

    asyncio.run(scenario())


def test_urgent_send_dropped_while_busy() -> None:
    class HangingTransport:
        async def exchange(self, line: str, *, on_event=None) -> list[str]:
            await asyncio.sleep(3600)
            return []

    async def scenario() -> None:
        client = Client("itach.local", transport=HangingTransport())
        assert client.submit(IR_LINE, urgent=True) is not None
        assert client.submit(IR_LINE, urgent=True) is None
        assert await client.send(IR_LINE, urgent=True) is None
        client.disconnect(cancel_pending=True)

    asyncio.run(scenario())
