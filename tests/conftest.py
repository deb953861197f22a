from __future__ import annotations

import asyncio

import pytest

from homiebridge.core.errors import BusPublishError
from homiebridge.transports.base import LastWill


class FakeBus:
    def __init__(self, factory: FakeBusFactory, device_id: str, will: LastWill | None) -> None:
        self.factory = factory
        self.device_id = device_id
        self.will = will
        self.disconnected = False

    async def publish(self, topic: str, payload: bytes, *, qos: int, retain: bool) -> None:
        # yield like a real client waiting for the broker ack
        await asyncio.sleep(0)
        gate = self.factory.holds.get(self.device_id)
        if gate is not None:
            await gate.wait()
        if topic in self.factory.fail_topics or (
            self.factory.fail_payloads.get(topic) == payload
        ):
            raise BusPublishError(f"Failed to publish to topic {topic}")
        self.factory.published.append((topic, payload.decode("utf-8"), retain))

    async def subscribe(self, topic: str):
        for item in self.factory.incoming:
            yield item

    async def disconnect(self) -> None:
        if self.factory.fail_disconnect:
            raise BusPublishError("connection already gone")
        self.disconnected = True


class FakeBusFactory:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, bool]] = []
        self.buses: dict[str, FakeBus] = {}
        self.fail_topics: set[str] = set()
        self.fail_payloads: dict[str, bytes] = {}
        self.fail_disconnect = False
        self.incoming: list[tuple[str, bytes]] = []
        self.holds: dict[str, asyncio.Event] = {}

    async def __call__(self, device_id: str, will: LastWill | None) -> FakeBus:
        bus = FakeBus(self, device_id, will)
        self.buses[device_id] = bus
        return bus

    def topics(self, device_id: str | None = None) -> list[str]:
        return [
            topic
            for topic, _, _ in self.published
            if device_id is None or topic.startswith(f"homie/{device_id}/")
        ]

    def payloads(self) -> dict[str, str]:
        return {topic: payload for topic, payload, _ in self.published}

    def clear(self) -> None:
        self.published.clear()


@pytest.fixture
def bus_factory() -> FakeBusFactory:
    return FakeBusFactory()
