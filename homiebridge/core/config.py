"""Configuration loading and validation for YAML-based homiebridge settings."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from homiebridge.core.errors import ConfigLoadError, ConfigValidationError, InvalidIdentifierError
from homiebridge.core.identifiers import validate_id

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_BLUETOOTH_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
CONFIG_ENV_VAR = "HOMIEBRIDGE_CONFIG"
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
class MQTTSettings:
    host: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    client_id_prefix: str = "homiebridge"
    keepalive: int = 60
    qos: int = 1
    base_topic: str = "homie"
    outbound_queue: int = 10


@dataclass(frozen=True)
class ScanSettings:
    service_uuid: str = "0000181c" + _BLUETOOTH_BASE_UUID_SUFFIX
    adapter: str | None = None
    queue_size: int = 16
    buffer_size: int = 256


@dataclass(frozen=True)
class StaticDevice:
    address: str
    id: str
    name: str | None = None


@dataclass(frozen=True)
class BridgeSettings:
    mqtt: MQTTSettings = field(default_factory=MQTTSettings)
    scan: ScanSettings = field(default_factory=ScanSettings)
    devices: dict[str, StaticDevice] = field(default_factory=dict)


@dataclass(frozen=True)
class LoadedSettings:
    settings: BridgeSettings
    sources: tuple[str, ...]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("homiebridge.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "homiebridge/config.yaml"


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


def normalize_service_uuid(value: str, *, context: str = "scan.service_uuid") -> str:
    normalized = value.strip().lower()
    if normalized.startswith("0x"):
        normalized = normalized[2:]
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    if len(normalized) == 4:
        return f"0000{normalized}{_BLUETOOTH_BASE_UUID_SUFFIX}"
    if len(normalized) == 8:
        return f"{normalized}{_BLUETOOTH_BASE_UUID_SUFFIX}"
    return normalized


def normalize_address(address: str) -> str:
    return address.strip().upper()


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for section, values in override.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section] = {**merged[section], **values}
        else:
            merged[section] = values
    return merged


def _build_settings(doc: dict[str, Any]) -> BridgeSettings:
    mqtt_doc = doc.get("mqtt", {})
    scan_doc = doc.get("scan", {})
    mqtt = MQTTSettings(**mqtt_doc)

    try:
        validate_id(mqtt.client_id_prefix, kind="client id prefix")
    except InvalidIdentifierError as exc:
        raise ConfigValidationError(f"mqtt.client_id_prefix: {exc}") from exc

    scan = ScanSettings(
        service_uuid=normalize_service_uuid(
            scan_doc.get("service_uuid", ScanSettings.service_uuid)
        ),
        adapter=scan_doc.get("adapter"),
        queue_size=int(scan_doc.get("queue_size", ScanSettings.queue_size)),
        buffer_size=int(scan_doc.get("buffer_size", ScanSettings.buffer_size)),
    )

    devices: dict[str, StaticDevice] = {}
    seen_ids: dict[str, str] = {}
    for raw_address, device_doc in (doc.get("devices") or {}).items():
        address = normalize_address(str(raw_address))
        if address in devices:
            raise ConfigValidationError(f"Device address '{address}' is listed twice")
        try:
            device_id = validate_id(device_doc["id"], kind="device")
        except InvalidIdentifierError as exc:
            raise ConfigValidationError(f"devices.{raw_address}.id: {exc}") from exc
        if device_id in seen_ids:
            raise ConfigValidationError(
                f"Device id '{device_id}' is used by both {seen_ids[device_id]} and {address}"
            )
        seen_ids[device_id] = address
        devices[address] = StaticDevice(address=address, id=device_id, name=device_doc.get("name"))

    return BridgeSettings(mqtt=mqtt, scan=scan, devices=devices)


def _packaged_config_path() -> Traversable:
    return resources.files("homiebridge.defaults").joinpath("config.yaml")


def load_settings(path: Path | None = None) -> LoadedSettings:
    sources: list[str] = []
    warnings: list[str] = []

    packaged = _packaged_config_path()
    doc = _read_yaml(packaged)
    _validate(doc, packaged)
    sources.append(str(packaged))

    explicit = path or (Path(os.environ[CONFIG_ENV_VAR]) if os.environ.get(CONFIG_ENV_VAR) else None)
    if explicit is not None:
        if not explicit.is_file():
            raise ConfigLoadError(f"Config file {explicit} does not exist")
        user_path: Path | None = explicit
    else:
        candidate = _user_config_path()
        user_path = candidate if candidate.is_file() else None

    if user_path is not None:
        user_doc = _read_yaml(user_path)
        _validate(user_doc, user_path)
        doc = _merge(doc, user_doc)
        sources.append(str(user_path))

    settings = _build_settings(doc)
    if settings.mqtt.qos == 0:
        warning = "mqtt.qos is 0; publish order is not confirmed by the broker"
        LOGGER.warning(warning)
        warnings.append(warning)

    return LoadedSettings(settings=settings, sources=tuple(sources), warnings=tuple(warnings))
