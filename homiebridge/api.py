"""Public entry points for code that embeds homiebridge.

Callers that feed advertisements from their own scanner, register extra
Homie devices by hand, or only read device descriptions should import from
here. Anything under `homiebridge.core` may change between releases.
"""

from __future__ import annotations

from homiebridge.core.config import BridgeSettings, LoadedSettings, load_settings
from homiebridge.core.decoder import decode_advertisement
from homiebridge.core.errors import (
    BusConnectError,
    BusError,
    BusPublishError,
    ConfigLoadError,
    ConfigValidationError,
    DecodeError,
    DeviceError,
    DeviceExistsError,
    DeviceUnavailableError,
    HomieBridgeError,
    InvalidIdentifierError,
    MalformedAdvertisementError,
    MissingContextError,
    ScannerError,
    UnknownNodeError,
    UnknownPropertyError,
    UnknownReadingKindError,
    UnsupportedEncodingError,
    ValueTypeError,
)
from homiebridge.core.mapper import map_reading, map_rssi
from homiebridge.core.model import (
    Advertisement,
    DataType,
    DeviceDescriptor,
    DeviceState,
    NodeDescriptor,
    PropertyDescriptor,
    Reading,
    Unit,
    Value,
)
from homiebridge.core.registry import Device, DeviceRegistry, PendingDevice
from homiebridge.core.service import BridgeService, PublishedValue
from homiebridge.transports.base import Bus, BusFactory

__all__ = [
    "HomieBridgeError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DecodeError",
    "UnsupportedEncodingError",
    "UnknownReadingKindError",
    "MalformedAdvertisementError",
    "InvalidIdentifierError",
    "ValueTypeError",
    "MissingContextError",
    "DeviceError",
    "DeviceExistsError",
    "DeviceUnavailableError",
    "UnknownNodeError",
    "UnknownPropertyError",
    "BusError",
    "BusConnectError",
    "BusPublishError",
    "ScannerError",
    "Advertisement",
    "DataType",
    "DeviceDescriptor",
    "DeviceState",
    "NodeDescriptor",
    "PropertyDescriptor",
    "Reading",
    "Unit",
    "Value",
    "Device",
    "DeviceRegistry",
    "PendingDevice",
    "BridgeSettings",
    "LoadedSettings",
    "load_settings",
    "decode_advertisement",
    "map_reading",
    "map_rssi",
    "Bus",
    "BusFactory",
    "BridgeService",
    "PublishedValue",
    "Bridge",
]


class Bridge:
    """Public client for feeding advertisements and reading device state.

    A `Bridge` wraps configuration, the device registry and the bus factory
    behind a stable API. Lookups return immutable descriptors; `send`
    publishes a value for an existing property.
    """

    def __init__(
        self,
        settings: BridgeSettings | None = None,
        *,
        bus_factory: BusFactory | None = None,
    ) -> None:
        self._service = BridgeService(settings or BridgeSettings(), bus_factory=bus_factory)

    @property
    def registry(self) -> DeviceRegistry:
        return self._service.registry

    async def handle_advertisement(self, advertisement: Advertisement) -> list[PublishedValue]:
        return await self._service.handle_advertisement(advertisement)

    def devices(self) -> list[DeviceDescriptor]:
        return self._service.registry.devices()

    def device(self, device_id: str) -> DeviceDescriptor | None:
        return self._service.registry.device(device_id)

    async def node(self, device_id: str, node_id: str) -> NodeDescriptor | None:
        return await self._service.registry.node(device_id, node_id)

    async def property(
        self,
        device_id: str,
        node_id: str,
        property_id: str,
    ) -> PropertyDescriptor | None:
        return await self._service.registry.property(device_id, node_id, property_id)

    async def send(self, device_id: str, node_id: str, property_id: str, value: Value) -> None:
        await self._service.registry.send(device_id, node_id, property_id, value)

    async def close(self) -> None:
        await self._service.close()
