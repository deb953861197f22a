"""Device registry: owns every Homie device and orders its topology changes.

Each device lives in its own entry guarded by a shared/exclusive lock.
Lookups and value publishes share the lock; adding a node or a property
takes it exclusively and brackets the change with ``$state=init`` and
``$state=ready`` so observers know when the description is stable.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from homiebridge.core.errors import (
    BusError,
    DeviceError,
    DeviceExistsError,
    DeviceUnavailableError,
    InvalidIdentifierError,
    UnknownNodeError,
    UnknownPropertyError,
)
from homiebridge.core.identifiers import validate_id
from homiebridge.core.locks import SharedExclusiveLock
from homiebridge.core.model import (
    DeviceDescriptor,
    DeviceState,
    NodeDescriptor,
    PropertyDescriptor,
    Value,
)
from homiebridge.core.publisher import BASE_TOPIC, DEFAULT_QOS, TopicPublisher
from homiebridge.transports.base import BusFactory, LastWill

LOGGER = logging.getLogger(__name__)

_REVIVABLE_STATES = (DeviceState.DISCONNECTED, DeviceState.LOST)


@dataclass
class _DeviceEntry:
    descriptor: DeviceDescriptor
    publisher: TopicPublisher
    lock: SharedExclusiveLock


async def _complete(coro: Coroutine[Any, Any, None]) -> bool:
    """Run coro to the end even if the caller is cancelled meanwhile.

    Returns True when the caller was cancelled while waiting; the caller is
    expected to re-raise the cancellation once its own bookkeeping is done.
    If coro fails after such a cancellation, CancelledError is raised
    chained to the failure.
    """
    task = asyncio.ensure_future(coro)
    cancelled = False
    while True:
        try:
            await asyncio.shield(task)
            break
        except asyncio.CancelledError:
            if task.cancelled():
                raise
            cancelled = True
            if task.done():
                break
    try:
        task.result()
    except Exception as exc:
        if cancelled:
            raise asyncio.CancelledError from exc
        raise
    return cancelled


class PendingDevice:
    """Staged device description; ``finalize`` brings it up on the bus."""

    def __init__(self, registry: DeviceRegistry, device_id: str, name: str) -> None:
        self._registry = registry
        self.device_id = validate_id(device_id, kind="device")
        self.name = name
        self._nodes: list[NodeDescriptor] = []
        self._finalized = False

    @property
    def nodes(self) -> tuple[NodeDescriptor, ...]:
        return tuple(self._nodes)

    def add_node(self, node: NodeDescriptor) -> None:
        if self._finalized:
            raise DeviceError(f"Device '{self.device_id}' was already finalized")
        validate_id(node.id, kind="node")
        if any(existing.id == node.id for existing in self._nodes):
            raise InvalidIdentifierError(
                f"Duplicate node id '{node.id}' in '{self.device_id}'"
            )
        self._nodes.append(node)

    async def finalize(self) -> Device:
        if self._finalized:
            raise DeviceError(f"Device '{self.device_id}' was already finalized")
        self._finalized = True
        return await self._registry._bring_up(self)


class Device:
    """Live handle for a device owned by a registry."""

    def __init__(self, registry: DeviceRegistry, device_id: str) -> None:
        self._registry = registry
        self.id = device_id

    @property
    def descriptor(self) -> DeviceDescriptor:
        descriptor = self._registry.device(self.id)
        if descriptor is None:
            raise DeviceUnavailableError(f"Unknown device '{self.id}'")
        return descriptor

    @property
    def state(self) -> DeviceState:
        return self.descriptor.state

    async def node(self, node_id: str) -> NodeDescriptor | None:
        return await self._registry.node(self.id, node_id)

    async def node_or_insert(self, node: NodeDescriptor) -> NodeDescriptor:
        return await self._registry.node_or_insert(self.id, node)

    async def property_or_insert(self, node_id: str, prop: PropertyDescriptor) -> PropertyDescriptor:
        return await self._registry.property_or_insert(self.id, node_id, prop)

    async def send(self, node_id: str, property_id: str, value: Value) -> None:
        await self._registry.send(self.id, node_id, property_id, value)

    async def disconnect(self) -> None:
        await self._registry.disconnect(self.id)


class DeviceRegistry:
    def __init__(
        self,
        bus_factory: BusFactory,
        *,
        base_topic: str = BASE_TOPIC,
        qos: int = DEFAULT_QOS,
    ) -> None:
        self._bus_factory = bus_factory
        self.base_topic = base_topic
        self.qos = qos
        self._entries: dict[str, _DeviceEntry] = {}
        self._reserved: set[str] = set()

    def pending(self, device_id: str, name: str) -> PendingDevice:
        pending = PendingDevice(self, device_id, name)
        self._check_available(pending.device_id)
        return pending

    def _check_available(self, device_id: str) -> None:
        entry = self._entries.get(device_id)
        if device_id in self._reserved or (
            entry is not None and entry.descriptor.state not in _REVIVABLE_STATES
        ):
            raise DeviceExistsError(f"Device '{device_id}' is already live")

    async def _bring_up(self, pending: PendingDevice) -> Device:
        device_id = pending.device_id
        self._check_available(device_id)
        self._reserved.add(device_id)
        try:
            descriptor = DeviceDescriptor(
                id=device_id,
                name=pending.name,
                state=DeviceState.INIT,
                nodes=pending.nodes,
            )
            will = LastWill(
                topic=f"{self.base_topic}/{device_id}/$state",
                payload=DeviceState.LOST.value.encode("utf-8"),
                qos=self.qos,
                retain=True,
            )
            bus = await self._bus_factory(device_id, will)
            publisher = TopicPublisher(bus, device_id, base_topic=self.base_topic, qos=self.qos)

            async def bring_up() -> None:
                try:
                    await self._publish_bring_up(publisher, descriptor)
                except Exception:
                    LOGGER.error("Bring-up of device '%s' failed", device_id)
                    await _retire(publisher, device_id)
                    raise

            cancelled = await _complete(bring_up())
            self._entries[device_id] = _DeviceEntry(
                descriptor=descriptor.with_state(DeviceState.READY),
                publisher=publisher,
                lock=SharedExclusiveLock(),
            )
        finally:
            self._reserved.discard(device_id)

        LOGGER.info("Device '%s' is ready with nodes %s", device_id, ",".join(descriptor.node_ids))
        if cancelled:
            raise asyncio.CancelledError
        return Device(self, device_id)

    @staticmethod
    async def _publish_bring_up(publisher: TopicPublisher, descriptor: DeviceDescriptor) -> None:
        await publisher.publish_homie_version()
        await publisher.publish_state(DeviceState.INIT)
        await publisher.publish_name(descriptor.name)
        for node in descriptor.nodes:
            await publisher.advertise_node(node)
        await publisher.publish_nodes(descriptor.node_ids)
        await publisher.publish_state(DeviceState.READY)

    def _entry(self, device_id: str) -> _DeviceEntry:
        entry = self._entries.get(device_id)
        if entry is None:
            raise DeviceUnavailableError(f"Unknown device '{device_id}'")
        return entry

    @staticmethod
    def _ensure_ready(entry: _DeviceEntry) -> None:
        if entry.descriptor.state is not DeviceState.READY:
            raise DeviceUnavailableError(
                f"Device '{entry.descriptor.id}' is {entry.descriptor.state.value}, not ready"
            )

    def device(self, device_id: str) -> DeviceDescriptor | None:
        entry = self._entries.get(device_id)
        return entry.descriptor if entry is not None else None

    def devices(self) -> list[DeviceDescriptor]:
        return [entry.descriptor for entry in self._entries.values()]

    def handle(self, device_id: str) -> Device | None:
        entry = self._entries.get(device_id)
        if entry is None or entry.descriptor.state in _REVIVABLE_STATES:
            return None
        return Device(self, device_id)

    async def node(self, device_id: str, node_id: str) -> NodeDescriptor | None:
        entry = self._entry(device_id)
        async with entry.lock.shared():
            return entry.descriptor.get_node(node_id)

    async def property(
        self, device_id: str, node_id: str, property_id: str
    ) -> PropertyDescriptor | None:
        entry = self._entry(device_id)
        async with entry.lock.shared():
            node = entry.descriptor.get_node(node_id)
            return node.get_property(property_id) if node is not None else None

    async def node_or_insert(self, device_id: str, node: NodeDescriptor) -> NodeDescriptor:
        validate_id(node.id, kind="node")
        entry = self._entry(device_id)
        async with entry.lock.shared():
            existing = entry.descriptor.get_node(node.id)
        if existing is not None:
            return existing

        async with entry.lock.exclusive():
            existing = entry.descriptor.get_node(node.id)
            if existing is not None:
                return existing
            self._ensure_ready(entry)
            updated = entry.descriptor.with_node(node)

            async def advertise() -> None:
                await entry.publisher.advertise_node(node)
                await entry.publisher.publish_nodes(updated.node_ids)

            await self._bracket(entry, updated, advertise)
        LOGGER.info("Added node '%s' to device '%s'", node.id, device_id)
        return node

    async def property_or_insert(
        self, device_id: str, node_id: str, prop: PropertyDescriptor
    ) -> PropertyDescriptor:
        validate_id(prop.id, kind="property")
        entry = self._entry(device_id)
        async with entry.lock.shared():
            existing = self._node_of(entry, node_id).get_property(prop.id)
        if existing is not None:
            return existing

        async with entry.lock.exclusive():
            node = self._node_of(entry, node_id)
            existing = node.get_property(prop.id)
            if existing is not None:
                return existing
            self._ensure_ready(entry)
            updated_node = node.with_property(prop)
            updated = entry.descriptor.with_replaced_node(updated_node)

            async def advertise() -> None:
                await entry.publisher.advertise_property(node_id, prop)
                await entry.publisher.publish_properties(updated_node)

            await self._bracket(entry, updated, advertise)
        LOGGER.info("Added property '%s/%s' to device '%s'", node_id, prop.id, device_id)
        return prop

    @staticmethod
    def _node_of(entry: _DeviceEntry, node_id: str) -> NodeDescriptor:
        node = entry.descriptor.get_node(node_id)
        if node is None:
            raise UnknownNodeError(f"Device '{entry.descriptor.id}' has no node '{node_id}'")
        return node

    async def _bracket(
        self,
        entry: _DeviceEntry,
        updated: DeviceDescriptor,
        advertise: Callable[[], Awaitable[None]],
    ) -> None:
        # Caller holds the exclusive lock.
        async def sequence() -> None:
            try:
                await entry.publisher.publish_state(DeviceState.INIT)
                entry.descriptor = updated.with_state(DeviceState.INIT)
                await advertise()
                await entry.publisher.publish_state(DeviceState.READY)
            except Exception:
                LOGGER.error("Topology change on device '%s' failed; abandoning it", updated.id)
                await self._abandon(entry)
                raise
            entry.descriptor = entry.descriptor.with_state(DeviceState.READY)

        cancelled = await _complete(sequence())
        if cancelled:
            raise asyncio.CancelledError

    async def _abandon(self, entry: _DeviceEntry) -> None:
        state = await _retire(entry.publisher, entry.descriptor.id)
        entry.descriptor = entry.descriptor.with_state(state)

    async def send(self, device_id: str, node_id: str, property_id: str, value: Value) -> None:
        entry = self._entry(device_id)
        async with entry.lock.shared():
            self._ensure_ready(entry)
            prop = self._node_of(entry, node_id).get_property(property_id)
            if prop is None:
                raise UnknownPropertyError(
                    f"Node '{device_id}/{node_id}' has no property '{property_id}'"
                )
            await entry.publisher.publish_value(node_id, prop, value)

    async def disconnect(self, device_id: str) -> None:
        entry = self._entry(device_id)
        async with entry.lock.exclusive():
            if entry.descriptor.state in _REVIVABLE_STATES:
                return
            try:
                await entry.publisher.publish_state(DeviceState.DISCONNECTED)
            except BusError:
                entry.descriptor = entry.descriptor.with_state(DeviceState.LOST)
                raise
            entry.descriptor = entry.descriptor.with_state(DeviceState.DISCONNECTED)
            await entry.publisher.bus.disconnect()
        LOGGER.info("Device '%s' disconnected", device_id)

    async def close(self) -> None:
        for device_id in list(self._entries):
            try:
                await self.disconnect(device_id)
            except BusError as exc:
                LOGGER.error("Failed to disconnect device '%s': %s", device_id, exc)


async def _retire(publisher: TopicPublisher, device_id: str) -> DeviceState:
    """Publish disconnected and close; on failure leave the connection for the will."""
    try:
        await publisher.publish_state(DeviceState.DISCONNECTED)
        await publisher.bus.disconnect()
    except BusError as exc:
        LOGGER.warning(
            "Device '%s' could not be disconnected cleanly (%s); broker will report it lost",
            device_id,
            exc,
        )
        return DeviceState.LOST
    return DeviceState.DISCONNECTED
