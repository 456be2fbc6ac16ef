"""Command parsing/encoding and response line classification."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from itachctl.core.errors import (
    CommandKindMismatchError,
    CommandSyntaxError,
    MalformedCommandError,
    UnrecognizedCommandError,
)
from itachctl.core.model import (
    DEFAULT_MODULE,
    Command,
    Identifier,
    InfraredCommand,
    Response,
    ResponseKind,
    SerialCommand,
)

IR_MARKER = "sendir"
SERIAL_MARKER = "setstate"
BUSY_STATUS = "busyIR"
ERROR_PREFIX = "ERR"
FIELD_SEPARATOR = ","
LINE_TERMINATOR = "\r\n"

_MIN_IR_FIELDS = 6
_MIN_SERIAL_FIELDS = 3


def _split(body: str) -> list[str]:
    return body.strip().split(FIELD_SEPARATOR)


def _check_fields(fields: list[str], *, minimum: int, body: str) -> None:
    if len(fields) < minimum:
        raise MalformedCommandError(
            f"Command '{body}' has {len(fields)} fields, expected at least {minimum}"
        )


def _check_ascii(text: str, *, body: str) -> None:
    if not text.isascii():
        raise MalformedCommandError(f"Command '{body}' contains non-ASCII characters")


def _from_string(source: str) -> Command:
    if IR_MARKER in source:
        return _build_infrared(source, repeat=None)
    if SERIAL_MARKER in source:
        return _build_serial(source, module=None)
    raise UnrecognizedCommandError(
        f"Unexpected command '{source}', expected a {IR_MARKER} or {SERIAL_MARKER} (serial) line"
    )


def _from_mapping(source: Mapping[str, Any]) -> Command:
    ir_body = source.get("ir")
    serial_body = source.get("serial")
    if (ir_body is None) == (serial_body is None):
        raise CommandSyntaxError(
            f"Command {dict(source)!r} must define exactly one of 'ir' or 'serial'"
        )
    if ir_body is not None:
        return _build_infrared(str(ir_body), repeat=source.get("repeat"))
    return _build_serial(str(serial_body), module=source.get("module"))


def _build_infrared(body: str, *, repeat: Any) -> InfraredCommand:
    fields = _split(body)
    if SERIAL_MARKER in fields[0]:
        raise CommandKindMismatchError(
            f"Serial command '{body}' was passed as an ir command"
        )
    if IR_MARKER not in fields[0]:
        raise UnrecognizedCommandError(f"Command '{body}' is not a {IR_MARKER} line")
    _check_ascii(body, body=body)
    _check_fields(fields, minimum=_MIN_IR_FIELDS, body=body)
    if repeat is not None:
        try:
            repeat = int(repeat)
        except (TypeError, ValueError) as exc:
            raise CommandSyntaxError(f"Repeat override must be an integer, got {repeat!r}") from exc
        if repeat < 1:
            raise CommandSyntaxError(f"Repeat override must be positive, got {repeat}")
    return InfraredCommand(body=body.strip(), repeat=repeat)


def _build_serial(body: str, *, module: Any) -> SerialCommand:
    fields = _split(body)
    if IR_MARKER in fields[0]:
        raise CommandKindMismatchError(
            f"IR command '{body}' was passed as a serial command"
        )
    if SERIAL_MARKER not in fields[0]:
        raise UnrecognizedCommandError(f"Command '{body}' is not a {SERIAL_MARKER} line")
    _check_ascii(body, body=body)
    _check_fields(fields, minimum=_MIN_SERIAL_FIELDS, body=body)
    if module is not None:
        _check_ascii(str(module), body=body)
    return SerialCommand(body=body.strip(), module=module)


def parse_command(source: str | Mapping[str, Any] | Command) -> Command:
    """Turn a raw protocol string or an ``{ir|serial, module?, repeat?}`` mapping
    into an :class:`InfraredCommand` or :class:`SerialCommand`.

    Raises a :class:`CommandSyntaxError` subclass when the input cannot be sent.
    """
    if isinstance(source, (InfraredCommand, SerialCommand)):
        return source
    if not source:
        raise CommandSyntaxError("Missing input")
    if isinstance(source, str):
        return _from_string(source)
    if isinstance(source, Mapping):
        return _from_mapping(source)
    raise CommandSyntaxError(f"Unsupported command type {type(source).__name__}")


def serial_address(command: SerialCommand, *, default_module: int = DEFAULT_MODULE) -> str:
    """Return the module:connector address a serial command is sent to."""
    if command.module is None:
        return _split(command.body)[1]
    module = str(command.module)
    if ":" in module:
        return module
    return f"{default_module}:{module}"


def encode_command(
    command: Command,
    identifier: Identifier | None = None,
    *,
    default_module: int = DEFAULT_MODULE,
) -> str:
    """Assemble the wire line for ``command`` (without the CRLF terminator).

    IR lines carry ``identifier`` in their id field; serial lines are addressed
    by module:connector, which doubles as their identifier.
    """
    fields = _split(command.body)
    if isinstance(command, InfraredCommand):
        if identifier is not None:
            fields[2] = str(identifier)
        if command.repeat is not None:
            fields[4] = str(command.repeat)
    else:
        fields[1] = serial_address(command, default_module=default_module)
    return FIELD_SEPARATOR.join(fields)


def frame(line: str) -> bytes:
    return (line + LINE_TERMINATOR).encode("ascii")


def split_response_lines(buffer: str) -> tuple[list[str], str]:
    """Split received text into complete status lines and the unterminated rest.

    The device terminates lines with CR; CRLF and bare LF are tolerated.
    """
    normalized = buffer.replace("\r\n", "\r").replace("\n", "\r")
    *complete, rest = normalized.split("\r")
    return [line for line in complete if line], rest


def parse_response(line: str) -> Response:
    fields = tuple(line.split(FIELD_SEPARATOR))
    status = fields[0]
    if status == BUSY_STATUS:
        kind = ResponseKind.BUSY
    elif status.startswith(ERROR_PREFIX):
        kind = ResponseKind.ERROR
    elif status in (SERIAL_MARKER, IR_MARKER):
        kind = ResponseKind.ACK
    else:
        kind = ResponseKind.OTHER
    return Response(kind=kind, line=line, fields=fields)
