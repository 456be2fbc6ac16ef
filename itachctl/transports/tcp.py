"""TCP transport: one connection per command, CR-terminated status lines."""

from __future__ import annotations

import asyncio
import logging

from itachctl.core.codec import frame, split_response_lines
from itachctl.core.errors import (
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from itachctl.transports.base import EventHook

LOGGER = logging.getLogger(__name__)

CONNECTING = "connecting"
CONNECTED = "connected"
SENT = "sent"
DISCONNECTED = "disconnected"


class TCPTransport:
    def __init__(
        self,
        host: str,
        port: int,
        *,
        timeout_s: float = 20.0,
        read_size: int = 1024,
        debug: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self.read_size = read_size
        self._debug = debug

    async def exchange(
        self,
        line: str,
        *,
        on_event: EventHook | None = None,
    ) -> list[str]:
        emit = on_event or (lambda _event: None)
        if self._debug:
            LOGGER.debug("Connecting to %s:%s", self.host, self.port)
        emit(CONNECTING)
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise TransportTimeoutError(
                f"Connect to {self.host}:{self.port} timed out after {self.timeout_s}s"
            ) from exc
        except OSError as exc:
            raise TransportConnectError(
                f"Connect to {self.host}:{self.port} failed: {exc}"
            ) from exc

        if self._debug:
            LOGGER.debug("Connected to %s:%s, sending %r", self.host, self.port, line)
        emit(CONNECTED)
        try:
            try:
                writer.write(frame(line))
                await asyncio.wait_for(writer.drain(), timeout=self.timeout_s)
            except asyncio.TimeoutError as exc:
                raise TransportTimeoutError(f"Send to {self.host}:{self.port} timed out") from exc
            except OSError as exc:
                raise TransportSendError(f"Send to {self.host}:{self.port} failed: {exc}") from exc
            emit(SENT)

            try:
                return await asyncio.wait_for(self._read_lines(reader), timeout=self.timeout_s)
            except asyncio.TimeoutError as exc:
                raise TransportTimeoutError(
                    f"No response from {self.host}:{self.port} within {self.timeout_s}s"
                ) from exc
            except OSError as exc:
                raise TransportSendError(f"Receive from {self.host}:{self.port} failed: {exc}") from exc
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                LOGGER.debug("Error while closing connection to %s:%s: %s", self.host, self.port, exc)
            if self._debug:
                LOGGER.debug("Disconnected from %s:%s", self.host, self.port)
            emit(DISCONNECTED)

    async def _read_lines(self, reader: asyncio.StreamReader) -> list[str]:
        buffer = ""
        while True:
            chunk = await reader.read(self.read_size)
            if not chunk:
                lines, rest = split_response_lines(buffer)
                return lines + ([rest] if rest else [])
            buffer += chunk.decode("ascii", errors="replace")
            if self._debug:
                LOGGER.debug("Received data: %r", chunk)
            lines, _rest = split_response_lines(buffer)
            if lines:
                return lines
