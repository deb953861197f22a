"""Shared/exclusive lock for asyncio tasks."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager


class SharedExclusiveLock:
    """Many shared holders or one exclusive holder.

    Waiting exclusive holders block new shared holders, so a stream of
    readers cannot starve a writer. Releasing never awaits, so a holder that
    is cancelled still gives the lock back.
    """

    def __init__(self) -> None:
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def locked_exclusive(self) -> bool:
        return self._writer

    @property
    def shared_holders(self) -> int:
        return self._readers

    def _wake(self) -> None:
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)

    async def _wait_until(self, predicate: Callable[[], bool]) -> None:
        loop = asyncio.get_running_loop()
        while not predicate():
            waiter: asyncio.Future[None] = loop.create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            finally:
                self._waiters.remove(waiter)

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        await self._wait_until(lambda: not self._writer and self._writers_waiting == 0)
        self._readers += 1
        try:
            yield
        finally:
            self._readers -= 1
            self._wake()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        self._writers_waiting += 1
        try:
            await self._wait_until(lambda: not self._writer and self._readers == 0)
        finally:
            self._writers_waiting -= 1
            self._wake()
        self._writer = True
        try:
            yield
        finally:
            self._writer = False
            self._wake()
