"""Core data models used across codec, service, loader, and CLI."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_PORT = 4998
DEFAULT_TIMEOUT_MS = 20000
DEFAULT_MODULE = 1

Identifier = int | str
CompletionCallback = Callable[[Exception | None, str | None], None]


@dataclass(frozen=True)
class ClientConfig:
    host: str
    port: int = DEFAULT_PORT
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    module: int = DEFAULT_MODULE
    debug: bool = False

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class InfraredCommand:
    body: str
    repeat: int | None = None


@dataclass(frozen=True)
class SerialCommand:
    body: str
    module: int | str | None = None


Command = InfraredCommand | SerialCommand


@dataclass(frozen=True)
class PendingCommand:
    identifier: Identifier
    line: str


class ResponseKind(str, Enum):
    BUSY = "busy"
    ERROR = "error"
    ACK = "ack"
    OTHER = "other"


@dataclass(frozen=True)
class Response:
    kind: ResponseKind
    line: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class DeviceProfile:
    id: str
    name: str
    config: ClientConfig
    commands: dict[str, Any] = field(default_factory=dict)
