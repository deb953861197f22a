"""MQTT bus implementation on top of aiomqtt."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack

import aiomqtt

from homiebridge.core.config import MQTTSettings
from homiebridge.core.errors import BusConnectError, BusError, BusPublishError
from homiebridge.transports.base import BusFactory, LastWill

LOGGER = logging.getLogger(__name__)


class MQTTBus:
    """One broker connection; publishes suspend while the outbound window is full."""

    def __init__(
        self,
        settings: MQTTSettings,
        *,
        identifier: str,
        will: LastWill | None = None,
    ) -> None:
        self.settings = settings
        self.identifier = identifier
        self.will = will
        self._client: aiomqtt.Client | None = None
        self._stack: AsyncExitStack | None = None
        self._outbound = asyncio.Semaphore(settings.outbound_queue)

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _build_client(self) -> aiomqtt.Client:
        will = None
        if self.will is not None:
            will = aiomqtt.Will(
                topic=self.will.topic,
                payload=self.will.payload,
                qos=self.will.qos,
                retain=self.will.retain,
            )
        return aiomqtt.Client(
            self.settings.host,
            port=self.settings.port,
            username=self.settings.username,
            password=self.settings.password,
            identifier=self.identifier,
            keepalive=self.settings.keepalive,
            will=will,
        )

    async def connect(self) -> None:
        if self._client is not None:
            return
        client = self._build_client()
        stack = AsyncExitStack()
        try:
            await stack.enter_async_context(client)
        except aiomqtt.MqttError as exc:
            raise BusConnectError(
                f"MQTT connect to {self.settings.host}:{self.settings.port} failed: {exc}"
            ) from exc
        self._client = client
        self._stack = stack
        LOGGER.debug("Connected to %s:%s as %s", self.settings.host, self.settings.port, self.identifier)

    def _require_client(self) -> aiomqtt.Client:
        if self._client is None:
            raise BusPublishError(f"MQTT client '{self.identifier}' is not connected")
        return self._client

    async def publish(self, topic: str, payload: bytes, *, qos: int, retain: bool) -> None:
        client = self._require_client()
        async with self._outbound:
            try:
                await client.publish(topic, payload=payload, qos=qos, retain=retain)
            except aiomqtt.MqttError as exc:
                raise BusPublishError(f"Failed to publish to topic {topic}: {exc}") from exc

    async def subscribe(self, topic: str) -> AsyncIterator[tuple[str, bytes]]:
        client = self._require_client()
        try:
            await client.subscribe(topic, qos=self.settings.qos)
            async for message in client.messages:
                payload = message.payload
                if isinstance(payload, str):
                    payload = payload.encode("utf-8")
                elif not isinstance(payload, (bytes, bytearray)):
                    payload = b"" if payload is None else str(payload).encode("utf-8")
                yield message.topic.value, bytes(payload)
        except aiomqtt.MqttError as exc:
            raise BusError(f"Subscription to {topic} failed: {exc}") from exc

    async def disconnect(self) -> None:
        stack, self._stack, self._client = self._stack, None, None
        if stack is None:
            return
        try:
            await stack.aclose()
        except aiomqtt.MqttError as exc:
            raise BusConnectError(f"MQTT disconnect for '{self.identifier}' failed: {exc}") from exc


def mqtt_bus_factory(settings: MQTTSettings) -> BusFactory:
    async def open_bus(device_id: str, will: LastWill | None) -> MQTTBus:
        bus = MQTTBus(
            settings,
            identifier=f"{settings.client_id_prefix}-{device_id}",
            will=will,
        )
        await bus.connect()
        return bus

    return open_bus
