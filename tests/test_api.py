from __future__ import annotations

import pytest

from homiebridge import api
from homiebridge.api import Bridge
from homiebridge.core.model import Advertisement, DeviceState

BTHOME_UUID = "0000181c-0000-1000-8000-00805f9b34fb"


def test_public_surface_exports() -> None:
    for name in api.__all__:
        assert hasattr(api, name), name


@pytest.mark.asyncio
async def test_bridge_feeds_advertisements_and_reads_back(bus_factory) -> None:
    bridge = Bridge(bus_factory=bus_factory)
    advertisement = Advertisement(
        address="a4:c1:38:00:11:22",
        name="Bedroom",
        rssi=None,
        service_data={BTHOME_UUID: bytes.fromhex("400000" "0302c409")},
    )

    published = await bridge.handle_advertisement(advertisement)

    assert published == [("sensor", "temperature", 25.0)]
    [device] = bridge.devices()
    assert device.id == "bthome-a4c138001122"
    assert device.state is DeviceState.READY
    assert bridge.device("missing") is None

    node = await bridge.node(device.id, "sensor")
    assert node.property_ids == ("temperature",)
    prop = await bridge.property(device.id, "sensor", "temperature")
    assert prop.unit.value == "°C"

    bus_factory.clear()
    await bridge.send(device.id, "sensor", "temperature", 19.25)
    assert bus_factory.published == [
        ("homie/bthome-a4c138001122/sensor/temperature", "19.25", True)
    ]

    await bridge.close()
    assert bridge.device(device.id).state is DeviceState.DISCONNECTED


@pytest.mark.asyncio
async def test_bridge_registry_accepts_manual_devices(bus_factory) -> None:
    bridge = Bridge(bus_factory=bus_factory)
    pending = bridge.registry.pending("thermostat", "Thermostat")
    pending.add_node(
        api.NodeDescriptor(
            id="heating",
            name="Heating",
            type="Boiler",
            properties=(
                api.PropertyDescriptor(id="target", name="Target", datatype=api.DataType.FLOAT),
            ),
        )
    )
    device = await pending.finalize()
    await device.send("heating", "target", 20.5)

    assert bus_factory.payloads()["homie/thermostat/heating/target"] == "20.5"
