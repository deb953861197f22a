"""Service layer used by CLI and the public API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable

from homiebridge.core.config import BridgeSettings, normalize_address
from homiebridge.core.decoder import decode_advertisement
from homiebridge.core.errors import (
    BusError,
    DecodeError,
    DeviceError,
    HomieBridgeError,
    InvalidIdentifierError,
    MissingContextError,
)
from homiebridge.core.identifiers import slugify_id
from homiebridge.core.mapper import LINK_NODE, SENSOR_NODE, map_reading, map_rssi
from homiebridge.core.model import Advertisement, NodeDescriptor, PropertyDescriptor, Value
from homiebridge.core.registry import DeviceRegistry
from homiebridge.transports.base import BusFactory

DEVICE_ID_PREFIX = "bthome"
LOGGER = logging.getLogger(__name__)

PublishedValue = tuple[str, str, Value]


class BridgeService:
    def __init__(
        self,
        settings: BridgeSettings,
        *,
        bus_factory: BusFactory | None = None,
        registry: DeviceRegistry | None = None,
    ) -> None:
        self.settings = settings
        if registry is None:
            if bus_factory is None:
                from homiebridge.transports.mqtt import mqtt_bus_factory

                bus_factory = mqtt_bus_factory(settings.mqtt)
            registry = DeviceRegistry(
                bus_factory,
                base_topic=settings.mqtt.base_topic,
                qos=settings.mqtt.qos,
            )
        self.registry = registry
        self._queues: dict[str, asyncio.Queue[Advertisement]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}

    def resolve_identity(self, advertisement: Advertisement) -> tuple[str, str]:
        address = normalize_address(advertisement.address)
        static = self.settings.devices.get(address)
        if static is not None:
            return static.id, static.name or advertisement.name or static.id
        if not advertisement.name:
            raise MissingContextError(f"Advertisement from {address} carries no device name")
        device_id = slugify_id(f"{DEVICE_ID_PREFIX}-{address}", kind="device")
        return device_id, advertisement.name

    async def handle_advertisement(self, advertisement: Advertisement) -> list[PublishedValue]:
        data = advertisement.service_data.get(self.settings.scan.service_uuid)
        if data is None:
            LOGGER.debug("Ignoring advertisement from %s without service data", advertisement.address)
            return []

        device_id, name = self.resolve_identity(advertisement)
        readings = decode_advertisement(data)

        updates: list[tuple[NodeDescriptor, PropertyDescriptor, Value]] = [
            (SENSOR_NODE, *map_reading(reading)) for reading in readings
        ]
        if advertisement.rssi is not None:
            updates.append((LINK_NODE, *map_rssi(advertisement.rssi)))
        if not updates:
            return []

        device = self.registry.handle(device_id)
        if device is None:
            pending = self.registry.pending(device_id, name)
            for node in _group_nodes(updates):
                pending.add_node(node)
            device = await pending.finalize()
        else:
            for node, prop, _ in updates:
                if await device.node(node.id) is None:
                    await device.node_or_insert(node.with_property(prop))
                await device.property_or_insert(node.id, prop)

        published: list[PublishedValue] = []
        for node, prop, value in updates:
            await device.send(node.id, prop.id, value)
            published.append((node.id, prop.id, value))
        return published

    async def dispatch(self, advertisement: Advertisement) -> None:
        """Queue an advertisement on its peripheral's worker; waits while the queue is full."""
        address = normalize_address(advertisement.address)
        queue = self._queues.get(address)
        if queue is None:
            queue = asyncio.Queue(maxsize=self.settings.scan.queue_size)
            self._queues[address] = queue
            self._workers[address] = asyncio.create_task(
                self._worker(address, queue), name=f"homiebridge-{address}"
            )
        await queue.put(advertisement)

    async def _worker(self, address: str, queue: asyncio.Queue[Advertisement]) -> None:
        while True:
            advertisement = await queue.get()
            try:
                await self.handle_advertisement(advertisement)
            except (DecodeError, MissingContextError) as exc:
                LOGGER.warning("Skipping advertisement from %s: %s", address, exc)
            except (BusError, DeviceError, InvalidIdentifierError) as exc:
                LOGGER.error("Failed to publish advertisement from %s: %s", address, exc)
            except HomieBridgeError as exc:
                LOGGER.error("Advertisement from %s rejected: %s", address, exc)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued advertisement has been handled."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def run(self, advertisements: AsyncIterable[Advertisement]) -> None:
        async for advertisement in advertisements:
            await self.dispatch(advertisement)

    async def close(self) -> None:
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        await self.registry.close()


def _group_nodes(
    updates: list[tuple[NodeDescriptor, PropertyDescriptor, Value]],
) -> list[NodeDescriptor]:
    nodes: dict[str, NodeDescriptor] = {}
    for node, prop, _ in updates:
        current = nodes.get(node.id, node)
        if current.get_property(prop.id) is None:
            current = current.with_property(prop)
        nodes[node.id] = current
    return list(nodes.values())
