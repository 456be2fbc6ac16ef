"""Domain-specific errors for itachctl."""

from __future__ import annotations


class ItachctlError(Exception):
    """Base error for itachctl."""


class ConfigurationError(ItachctlError):
    """Raised when a client is constructed with an unusable configuration."""


class ConfigLoadError(ItachctlError):
    """Raised when reading device profile files fails."""


class ConfigValidationError(ItachctlError):
    """Raised when a device profile does not conform to schema or semantics."""


class CommandSyntaxError(ItachctlError):
    """Raised when a command cannot be turned into a protocol line."""


class UnrecognizedCommandError(CommandSyntaxError):
    """Raised when a command is neither a sendir nor a setstate line."""


class CommandKindMismatchError(CommandSyntaxError):
    """Raised when an ir/serial field carries a line of the other kind."""


class MalformedCommandError(CommandSyntaxError):
    """Raised when a command line has too few fields or is not plain ASCII."""


class CommandSupersededError(CommandSyntaxError):
    """Raised for a pending serial command replaced by a newer one to the same address."""


class DeviceError(ItachctlError):
    """Base error for failures reported by the device itself."""


class DeviceProtocolError(DeviceError):
    """Raised when the device answers with an ERR status line."""

    def __init__(self, code: str, description: str | None, line: str) -> None:
        self.code = code
        self.description = description
        self.line = line
        super().__init__(description or f"Unknown device error code '{code}' ({line})")


class DeviceBusyError(DeviceError):
    """Raised when the device is still transmitting a previous IR command."""


class TransportError(ItachctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on TCP connect failures."""


class TransportSendError(TransportError):
    """Raised when writing or reading the connection fails."""


class TransportTimeoutError(TransportError):
    """Raised when connect or receive times out."""


class LearnError(ItachctlError):
    """Raised when the IR learn endpoint fails or returns a non-200 status."""
