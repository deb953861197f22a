"""Mapping of decoded readings onto Homie property descriptors."""

from __future__ import annotations

from homiebridge.core.model import (
    Battery,
    DataType,
    FloatRange,
    Humidity,
    NodeDescriptor,
    Power,
    PropertyDescriptor,
    Reading,
    Temperature,
    Unit,
    Value,
    Voltage,
)

SENSOR_NODE = NodeDescriptor(id="sensor", name="Sensor", type="BTHome")
LINK_NODE = NodeDescriptor(id="link", name="Link", type="Bluetooth")

_PERCENT_RANGE = FloatRange(0, 100)

_PROPERTIES: dict[type, PropertyDescriptor] = {
    Battery: PropertyDescriptor(
        id="battery",
        name="Battery",
        datatype=DataType.FLOAT,
        unit=Unit.PERCENT,
        format=_PERCENT_RANGE,
    ),
    Temperature: PropertyDescriptor(
        id="temperature",
        name="Temperature",
        datatype=DataType.FLOAT,
        unit=Unit.DEGREE_CELSIUS,
    ),
    Humidity: PropertyDescriptor(
        id="humidity",
        name="Humidity",
        datatype=DataType.FLOAT,
        unit=Unit.PERCENT,
        format=_PERCENT_RANGE,
    ),
    Voltage: PropertyDescriptor(
        id="voltage",
        name="Voltage",
        datatype=DataType.FLOAT,
        unit=Unit.VOLTS,
    ),
    Power: PropertyDescriptor(
        id="power",
        name="Power",
        datatype=DataType.BOOLEAN,
    ),
}

RSSI_PROPERTY = PropertyDescriptor(
    id="rssi",
    name="RSSI",
    datatype=DataType.INTEGER,
    unit="dBm",
)


def map_reading(reading: Reading) -> tuple[PropertyDescriptor, Value]:
    return _PROPERTIES[type(reading)], reading.value


def map_rssi(rssi: int) -> tuple[PropertyDescriptor, Value]:
    return RSSI_PROPERTY, int(rssi)
