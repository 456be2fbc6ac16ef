"""Device profile loading and validation for YAML-based itachctl configuration."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from itachctl.core.codec import parse_command
from itachctl.core.errors import CommandSyntaxError, ConfigLoadError, ConfigValidationError
from itachctl.core.model import (
    DEFAULT_MODULE,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    ClientConfig,
    DeviceProfile,
)

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys and keeps on/off as strings."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, DeviceProfile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("itachctl.schemas").joinpath("device.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def profile_dirs() -> tuple[Path, Path]:
    """Return the (data, config) profile directories; config entries win."""
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_data / "itachctl/devices", xdg_config / "itachctl/devices"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read device profile {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Device profile {path} must contain a mapping at root")
    return loaded


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false")


def build_profile(doc: dict[str, Any], source: Path | str) -> DeviceProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    commands: dict[str, Any] = {}
    for name, command in doc.get("commands", {}).items():
        try:
            parse_command(command)
        except CommandSyntaxError as exc:
            raise ConfigValidationError(f"{doc['id']}.commands.{name}: {exc}") from exc
        commands[name] = command

    config = ClientConfig(
        host=doc["host"],
        port=int(doc.get("port", DEFAULT_PORT)),
        timeout_ms=int(doc.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
        module=int(doc.get("module", DEFAULT_MODULE)),
        debug=_normalize_bool(doc.get("debug", False), context=f"{doc['id']}.debug"),
    )
    return DeviceProfile(id=doc["id"], name=doc["name"], config=config, commands=commands)


def _iter_profile_paths(directories: Iterable[Path]) -> list[Path]:
    paths: list[Path] = []
    for directory in directories:
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles(directories: Iterable[Path] | None = None) -> LoadedProfiles:
    profiles: dict[str, DeviceProfile] = {}
    sources: dict[str, Path] = {}
    warnings: list[str] = []

    for path in _iter_profile_paths(directories if directories is not None else profile_dirs()):
        profile = build_profile(_read_yaml(path), path)
        if profile.id in profiles:
            warning = f"Device profile '{profile.id}' in {path} overrides {sources[profile.id]}"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile
        sources[profile.id] = path

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
