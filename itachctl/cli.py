"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

import typer

from itachctl.api import Client
from itachctl.core.codec import IR_MARKER
from itachctl.core.config_loader import load_profiles
from itachctl.core.error_codes import ERROR_CODES
from itachctl.core.errors import ItachctlError
from itachctl.core.model import DEFAULT_MODULE, DEFAULT_PORT, DEFAULT_TIMEOUT_MS, ClientConfig, DeviceProfile

app = typer.Typer(help="Drive iTach-class IR/serial devices over their TCP protocol")


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_profiles() -> dict[str, DeviceProfile]:
    loaded = load_profiles()
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded.profiles


def _require_profile(device: str) -> DeviceProfile:
    profiles = _load_profiles()
    profile = profiles.get(device)
    if profile is None:
        available = ", ".join(sorted(profiles)) or "<none>"
        raise typer.BadParameter(f"Unknown device '{device}'. Available: {available}", param_hint="--device")
    return profile


def _resolve_config(
    *,
    host: str | None,
    device: str | None,
    port: int | None,
    timeout: int | None,
    module: int | None,
    debug: bool,
) -> tuple[ClientConfig, DeviceProfile | None]:
    profile = _require_profile(device) if device else None
    if profile is None and not host:
        raise typer.BadParameter("Either --host or --device is required", param_hint="--host")
    base = profile.config if profile else ClientConfig(host=host or "")
    config = ClientConfig(
        host=host or base.host,
        port=port if port is not None else base.port,
        timeout_ms=timeout if timeout is not None else base.timeout_ms,
        module=module if module is not None else base.module,
        debug=debug or base.debug,
    )
    return config, profile


def _build_command(
    command: str,
    profile: DeviceProfile | None,
    *,
    repeat: int | None,
    connector: str | None,
) -> str | Mapping[str, Any]:
    source: str | Mapping[str, Any] = command
    if profile is not None and command in profile.commands:
        source = profile.commands[command]
    if repeat is None and connector is None:
        return source
    if isinstance(source, str):
        source = {"ir": source} if IR_MARKER in source else {"serial": source}
    overrides = dict(source)
    if repeat is not None:
        overrides["repeat"] = repeat
    if connector is not None:
        overrides["module"] = connector
    return overrides


async def _send(config: ClientConfig, source: str | Mapping[str, Any], urgent: bool) -> str | None:
    async with Client(config=config) as client:
        return await client.send(source, urgent=urgent)


async def _learn(config: ClientConfig) -> Any:
    async with Client(config=config) as client:
        return await client.learn()


@app.command("send")
def send_command(
    command: str = typer.Argument(..., help="Raw sendir/setstate line or a named command of --device"),
    host: str | None = typer.Option(None, "--host", help="Device host name or IP"),
    device: str | None = typer.Option(None, "--device", help="Configured device profile ID"),
    port: int | None = typer.Option(None, "--port", help=f"TCP port (default {DEFAULT_PORT})"),
    timeout: int | None = typer.Option(None, "--timeout", help=f"Timeout in ms (default {DEFAULT_TIMEOUT_MS})"),
    module: int | None = typer.Option(None, "--module", help=f"Default module index (default {DEFAULT_MODULE})"),
    repeat: int | None = typer.Option(None, "--repeat", help="Override the IR repeat count"),
    connector: str | None = typer.Option(None, "--connector", help="Override the serial connector"),
    urgent: bool = typer.Option(False, "--urgent", help="Send only if the device is idle"),
    debug: bool = typer.Option(False, "--debug", help="Log protocol traffic"),
) -> None:
    """Send one command to the device and print its response."""
    _configure_logging(debug)
    try:
        config, profile = _resolve_config(
            host=host, device=device, port=port, timeout=timeout, module=module, debug=debug
        )
        source = _build_command(command, profile, repeat=repeat, connector=connector)
        response = asyncio.run(_send(config, source, urgent))
        typer.echo(f"Sent to {config.host}:{config.port}")
        if response:
            typer.echo(f"response={response}")
    except ItachctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("learn")
def learn_command(
    host: str | None = typer.Option(None, "--host", help="Device host name or IP"),
    device: str | None = typer.Option(None, "--device", help="Configured device profile ID"),
    debug: bool = typer.Option(False, "--debug", help="Log HTTP traffic"),
) -> None:
    """Fetch the last learned IR code from the device."""
    _configure_logging(debug)
    try:
        config, _profile = _resolve_config(
            host=host, device=device, port=None, timeout=None, module=None, debug=debug
        )
        payload = asyncio.run(_learn(config))
        typer.echo(json.dumps(payload, indent=2))
    except ItachctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices() -> None:
    """List configured device profiles."""
    try:
        profiles = _load_profiles()
        if not profiles:
            typer.echo("No device profiles configured")
            return
        for profile in sorted(profiles.values(), key=lambda p: p.id):
            typer.echo(f"{profile.id}: {profile.name} ({profile.config.host}:{profile.config.port})")
    except ItachctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("commands")
def list_commands(
    device: str = typer.Option(..., "--device", help="Configured device profile ID"),
) -> None:
    """List the named commands of a device profile."""
    try:
        profile = _require_profile(device)
        if not profile.commands:
            typer.echo(f"No commands defined for {profile.id}")
            return
        for name, command in sorted(profile.commands.items()):
            typer.echo(f"  {name}: {command if isinstance(command, str) else json.dumps(command)}")
    except ItachctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("errors")
def list_error_codes() -> None:
    """Print the device error code catalog."""
    for code, description in ERROR_CODES.items():
        typer.echo(f"{code}: {description}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
