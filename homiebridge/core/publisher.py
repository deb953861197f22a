"""Homie payload encoding and topic publishing."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from homiebridge.core.errors import ValueTypeError
from homiebridge.core.model import (
    ColorFormat,
    DataType,
    DeviceState,
    EnumValues,
    FloatRange,
    Format,
    HsvColor,
    IntRange,
    NodeDescriptor,
    PropertyDescriptor,
    RgbColor,
    Unit,
    Value,
)
from homiebridge.transports.base import Bus

HOMIE_VERSION = "4.0.0"
BASE_TOPIC = "homie"
DEFAULT_QOS = 1
LOGGER = logging.getLogger(__name__)


def _number_text(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def encode_value(value: Value) -> bytes:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (int, float)):
        text = _number_text(value)
    elif isinstance(value, str):
        text = value
    elif isinstance(value, RgbColor):
        text = f"{value.r},{value.g},{value.b}"
    elif isinstance(value, HsvColor):
        text = f"{value.h},{value.s},{value.v}"
    elif isinstance(value, datetime):
        moment = value if value.tzinfo is not None else value.astimezone()
        text = moment.isoformat()
    elif isinstance(value, timedelta):
        text = str(int(value.total_seconds()))
    else:
        raise ValueTypeError(f"Cannot encode value of type {type(value).__name__}")
    return text.encode("utf-8")


def encode_format(fmt: Format) -> bytes:
    if isinstance(fmt, (IntRange, FloatRange)):
        text = f"{_number_text(fmt.min)}:{_number_text(fmt.max)}"
    elif isinstance(fmt, EnumValues):
        text = ",".join(fmt.values)
    elif isinstance(fmt, ColorFormat):
        text = fmt.value
    else:
        raise ValueTypeError(f"Unknown format {fmt!r}")
    return text.encode("utf-8")


def encode_unit(unit: Unit | str) -> bytes:
    text = unit.value if isinstance(unit, Unit) else unit
    return text.encode("utf-8")


def check_value(prop: PropertyDescriptor, value: Value) -> None:
    datatype = prop.datatype
    if datatype is DataType.BOOLEAN:
        ok = isinstance(value, bool)
    elif datatype is DataType.INTEGER:
        ok = isinstance(value, (int, timedelta)) and not isinstance(value, bool)
    elif datatype is DataType.FLOAT:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif datatype is DataType.COLOR:
        ok = isinstance(value, (RgbColor, HsvColor))
    elif datatype is DataType.ENUM:
        ok = isinstance(value, str)
        if ok and isinstance(prop.format, EnumValues):
            ok = value in prop.format.values
    else:
        ok = isinstance(value, (str, datetime))
    if not ok:
        raise ValueTypeError(
            f"Value {value!r} does not fit {datatype.value} property '{prop.id}'"
        )


class TopicPublisher:
    """Publishes one device's topics below ``{base_topic}/{device_id}``."""

    def __init__(
        self,
        bus: Bus,
        device_id: str,
        *,
        base_topic: str = BASE_TOPIC,
        qos: int = DEFAULT_QOS,
    ) -> None:
        self.bus = bus
        self.device_id = device_id
        self.base_topic = base_topic
        self.qos = qos

    def topic(self, *parts: str) -> str:
        return "/".join((self.base_topic, self.device_id, *parts))

    async def _publish(self, parts: tuple[str, ...], payload: bytes, *, retain: bool) -> None:
        topic = self.topic(*parts)
        LOGGER.debug("publish %s = %r (retain=%s)", topic, payload, retain)
        await self.bus.publish(topic, payload, qos=self.qos, retain=retain)

    async def publish_meta(self, *parts: str, payload: str | bytes) -> None:
        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        await self._publish(parts, data, retain=True)

    async def publish_homie_version(self) -> None:
        await self.publish_meta("$homie", payload=HOMIE_VERSION)

    async def publish_state(self, state: DeviceState) -> None:
        await self.publish_meta("$state", payload=state.value)

    async def publish_name(self, name: str) -> None:
        await self.publish_meta("$name", payload=name)

    async def publish_nodes(self, node_ids: tuple[str, ...]) -> None:
        await self.publish_meta("$nodes", payload=",".join(node_ids))

    async def publish_properties(self, node: NodeDescriptor) -> None:
        await self.publish_meta(node.id, "$properties", payload=",".join(node.property_ids))

    async def advertise_node(self, node: NodeDescriptor) -> None:
        await self.publish_meta(node.id, "$name", payload=node.name)
        await self.publish_meta(node.id, "$type", payload=node.type)
        await self.publish_properties(node)
        for prop in node.properties:
            await self.advertise_property(node.id, prop)

    async def advertise_property(self, node_id: str, prop: PropertyDescriptor) -> None:
        await self.publish_meta(node_id, prop.id, "$name", payload=prop.name)
        await self.publish_meta(node_id, prop.id, "$datatype", payload=prop.datatype.value)
        await self.publish_meta(node_id, prop.id, "$settable", payload=_bool_text(prop.settable))
        await self.publish_meta(node_id, prop.id, "$retained", payload=_bool_text(prop.retained))
        if prop.format is not None:
            await self.publish_meta(node_id, prop.id, "$format", payload=encode_format(prop.format))
        if prop.unit is not None:
            await self.publish_meta(node_id, prop.id, "$unit", payload=encode_unit(prop.unit))

    async def publish_value(self, node_id: str, prop: PropertyDescriptor, value: Value) -> None:
        check_value(prop, value)
        await self._publish((node_id, prop.id), encode_value(value), retain=prop.retained)


def _bool_text(value: bool) -> str:
    return "true" if value else "false"
