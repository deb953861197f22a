"""Core data models used across decoder, registry, publisher, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Union

from homiebridge.core.errors import InvalidIdentifierError
from homiebridge.core.identifiers import validate_id


@dataclass(frozen=True)
class Battery:
    value: float


@dataclass(frozen=True)
class Temperature:
    value: float


@dataclass(frozen=True)
class Humidity:
    value: float


@dataclass(frozen=True)
class Voltage:
    value: float


@dataclass(frozen=True)
class Power:
    value: bool


Reading = Union[Battery, Temperature, Humidity, Voltage, Power]


class DataType(str, Enum):
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"
    ENUM = "enum"
    COLOR = "color"


class DeviceState(str, Enum):
    INIT = "init"
    READY = "ready"
    DISCONNECTED = "disconnected"
    SLEEPING = "sleeping"
    LOST = "lost"
    ALERT = "alert"


class Unit(str, Enum):
    DEGREE_CELSIUS = "°C"
    DEGREE_FAHRENHEIT = "°F"
    DEGREE = "°"
    LITER = "L"
    GALLON = "gal"
    VOLTS = "V"
    WATT = "W"
    AMPERE = "A"
    PERCENT = "%"
    METER = "m"
    FEET = "ft"
    PASCAL = "Pa"
    PSI = "psi"
    COUNT = "#"


@dataclass(frozen=True)
class IntRange:
    min: int
    max: int


@dataclass(frozen=True)
class FloatRange:
    min: float
    max: float


@dataclass(frozen=True)
class EnumValues:
    values: tuple[str, ...]


class ColorFormat(str, Enum):
    RGB = "rgb"
    HSV = "hsv"


Format = Union[IntRange, FloatRange, EnumValues, ColorFormat]


@dataclass(frozen=True)
class RgbColor:
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class HsvColor:
    h: int
    s: int
    v: int


Value = Union[int, float, bool, str, RgbColor, HsvColor, datetime, timedelta]


@dataclass(frozen=True)
class PropertyDescriptor:
    id: str
    name: str
    datatype: DataType
    settable: bool = False
    retained: bool = True
    unit: Unit | str | None = None
    format: Format | None = None

    def __post_init__(self) -> None:
        validate_id(self.id, kind="property")


@dataclass(frozen=True)
class NodeDescriptor:
    id: str
    name: str
    type: str
    properties: tuple[PropertyDescriptor, ...] = ()

    def __post_init__(self) -> None:
        validate_id(self.id, kind="node")
        _reject_duplicates((p.id for p in self.properties), kind="property", owner=self.id)

    @property
    def property_ids(self) -> tuple[str, ...]:
        return tuple(p.id for p in self.properties)

    def get_property(self, property_id: str) -> PropertyDescriptor | None:
        for prop in self.properties:
            if prop.id == property_id:
                return prop
        return None

    def with_property(self, prop: PropertyDescriptor) -> NodeDescriptor:
        return replace(self, properties=self.properties + (prop,))


@dataclass(frozen=True)
class DeviceDescriptor:
    id: str
    name: str
    state: DeviceState = DeviceState.INIT
    nodes: tuple[NodeDescriptor, ...] = ()

    def __post_init__(self) -> None:
        validate_id(self.id, kind="device")
        _reject_duplicates((n.id for n in self.nodes), kind="node", owner=self.id)

    @property
    def node_ids(self) -> tuple[str, ...]:
        return tuple(n.id for n in self.nodes)

    def get_node(self, node_id: str) -> NodeDescriptor | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def with_node(self, node: NodeDescriptor) -> DeviceDescriptor:
        return replace(self, nodes=self.nodes + (node,))

    def with_replaced_node(self, node: NodeDescriptor) -> DeviceDescriptor:
        nodes = tuple(node if n.id == node.id else n for n in self.nodes)
        return replace(self, nodes=nodes)

    def with_state(self, state: DeviceState) -> DeviceDescriptor:
        return replace(self, state=state)


@dataclass(frozen=True)
class Advertisement:
    address: str
    name: str | None = None
    rssi: int | None = None
    service_data: dict[str, bytes] = field(default_factory=dict)


def _reject_duplicates(ids, *, kind: str, owner: str) -> None:
    seen: set[str] = set()
    for item_id in ids:
        if item_id in seen:
            raise InvalidIdentifierError(f"Duplicate {kind} id '{item_id}' in '{owner}'")
        seen.add(item_id)
