"""Stable public API for driving iTach-class devices.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from itachctl.core.error_codes import ERROR_CODES
from itachctl.core.errors import (
    CommandKindMismatchError,
    CommandSupersededError,
    CommandSyntaxError,
    ConfigLoadError,
    ConfigurationError,
    ConfigValidationError,
    DeviceBusyError,
    DeviceError,
    DeviceProtocolError,
    ItachctlError,
    LearnError,
    MalformedCommandError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    UnrecognizedCommandError,
)
from itachctl.core.model import (
    DEFAULT_MODULE,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    ClientConfig,
    Command,
    CompletionCallback,
    DeviceProfile,
    InfraredCommand,
    SerialCommand,
)
from itachctl.core.service import LIFECYCLE_EVENTS, DispatchService
from itachctl.transports.base import LearnTransport, Transport

__all__ = [
    "ItachctlError",
    "ConfigurationError",
    "ConfigLoadError",
    "ConfigValidationError",
    "CommandSyntaxError",
    "UnrecognizedCommandError",
    "CommandKindMismatchError",
    "MalformedCommandError",
    "CommandSupersededError",
    "DeviceError",
    "DeviceProtocolError",
    "DeviceBusyError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "LearnError",
    "ClientConfig",
    "DeviceProfile",
    "InfraredCommand",
    "SerialCommand",
    "ERROR_CODES",
    "LIFECYCLE_EVENTS",
    "Client",
]


class Client:
    """Public client for one iTach-class device.

    Commands are serialized: each one gets its own TCP connection and the next
    queued command is only sent after the device answered the previous one.
    ``submit``/``send`` must be called from a running event loop.

    ``disconnect`` abandons pending commands: their callbacks are never invoked
    and their futures stay pending unless ``cancel_pending=True`` is passed.
    """

    def __init__(
        self,
        host: str | None = None,
        *,
        port: int = DEFAULT_PORT,
        timeout: int = DEFAULT_TIMEOUT_MS,
        module: int = DEFAULT_MODULE,
        debug: bool = False,
        config: ClientConfig | None = None,
        transport: Transport | None = None,
        learn_client: LearnTransport | None = None,
    ) -> None:
        if config is None:
            if not host:
                raise ConfigurationError("Host is required to talk to the device")
            config = ClientConfig(host=host, port=port, timeout_ms=timeout, module=module, debug=debug)
        elif not config.host:
            raise ConfigurationError("Host is required to talk to the device")
        self._service = DispatchService(config, transport=transport, learn_client=learn_client)
        self._futures: dict[str, asyncio.Future[str | None]] = {}

    @classmethod
    def from_profile(
        cls,
        profile: DeviceProfile,
        *,
        transport: Transport | None = None,
        learn_client: LearnTransport | None = None,
    ) -> Client:
        return cls(config=profile.config, transport=transport, learn_client=learn_client)

    @property
    def config(self) -> ClientConfig:
        return self._service.config

    @property
    def pending(self) -> tuple[str, ...]:
        return self._service.registry.pending_ids()

    @property
    def queued(self) -> int:
        return len(self._service.queue)

    @property
    def in_flight(self) -> bool:
        return self._service.queue.in_flight

    def on(self, event: str, handler: Callable[[], None]) -> None:
        self._service.on(event, handler)

    def off(self, event: str, handler: Callable[[], None]) -> None:
        self._service.off(event, handler)

    def submit(
        self,
        command: str | Mapping[str, Any] | Command,
        *,
        urgent: bool = False,
        callback: CompletionCallback | None = None,
    ) -> asyncio.Future[str | None] | None:
        """Queue ``command`` and return a future for the device's answer.

        The future resolves with the response line or fails with a
        :class:`DeviceError`/:class:`TransportError`. ``callback``, if given, is
        invoked with ``(error, response)`` as well. Returns ``None`` when an
        urgent command was dropped because the client was busy.
        """
        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()

        def _complete(error: Exception | None, response: str | None) -> None:
            if self._futures.get(key) is future:
                del self._futures[key]
            if not future.done():
                if error is not None:
                    future.set_exception(error)
                else:
                    future.set_result(response)
            if callback is not None:
                callback(error, response)

        key = ""
        identifier = self._service.send(command, urgent=urgent, callback=_complete)
        if identifier is None:
            return None
        key = str(identifier)
        self._futures[key] = future
        return future

    async def send(
        self,
        command: str | Mapping[str, Any] | Command,
        *,
        urgent: bool = False,
    ) -> str | None:
        future = self.submit(command, urgent=urgent)
        if future is None:
            return None
        return await future

    async def learn(self) -> Any:
        return await self._service.learn()

    def learn_with(self, callback: Callable[[str | None, Any], None]) -> asyncio.Task[None]:
        return self._service.learn_with(callback)

    def disconnect(self, *, cancel_pending: bool = False) -> list[str]:
        abandoned = self._service.disconnect()
        futures, self._futures = self._futures, {}
        if cancel_pending:
            for future in futures.values():
                future.cancel()
        return abandoned

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        self.disconnect(cancel_pending=True)
