"""Message bus interfaces."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class LastWill:
    topic: str
    payload: bytes
    qos: int = 1
    retain: bool = True


class Bus(Protocol):
    async def publish(self, topic: str, payload: bytes, *, qos: int, retain: bool) -> None:
        """Publish payload, returning once the broker has accepted it."""

    def subscribe(self, topic: str) -> AsyncIterator[tuple[str, bytes]]:
        """Yield (topic, payload) for every message matching the filter."""

    async def disconnect(self) -> None:
        """Close the connection cleanly so no last-will is sent."""


# Opens one connection per device; the last-will is registered at connect time.
BusFactory = Callable[[str, "LastWill | None"], Awaitable[Bus]]
