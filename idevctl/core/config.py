"""Configuration loading and validation for YAML-based idevctl settings."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from idevctl.core.errors import ConfigLoadError, ConfigValidationError
from idevctl.core.model import ClientConfig

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


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
class LoadedConfig:
    config: ClientConfig
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("idevctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "idevctl/config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: Path | Traversable) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def _merge(base: dict[str, Any], override: dict[str, Any], source: Path, warnings: list[str]) -> None:
    for key, value in override.items():
        if key == "services":
            services = base.setdefault("services", {})
            for name, identifier in value.items():
                if name in services and services[name] != identifier:
                    warning = f"Service '{name}' remapped to '{identifier}' by {source}"
                    LOGGER.warning(warning)
                    warnings.append(warning)
                services[name] = identifier
        else:
            base[key] = value


def _build_config(doc: dict[str, Any]) -> ClientConfig:
    return ClientConfig(
        label=doc["label"],
        lockdown_port=int(doc["lockdown_port"]),
        connect_timeout_s=float(doc["connect_timeout_s"]),
        plist_format=doc["plist_format"],
        pairing_retry_interval_s=float(doc["pairing_retry_interval_s"]),
        core_device_version=doc["core_device_version"],
        services=dict(doc.get("services", {})),
    )


def load_config(path: Path | None = None) -> LoadedConfig:
    warnings: list[str] = []

    packaged = resources.files("idevctl.defaults").joinpath("client.yaml")
    doc = _read_yaml(packaged)
    _validate(doc, packaged)

    sources: list[Path] = []
    user_path = _user_config_path()
    if user_path.is_file():
        sources.append(user_path)
    if path is not None:
        sources.append(path)

    for source in sources:
        override = _read_yaml(source)
        _validate(override, source)
        _merge(doc, override, source, warnings)

    return LoadedConfig(config=_build_config(doc), warnings=tuple(warnings))
