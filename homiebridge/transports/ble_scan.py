"""BLE advertisement scanning via bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from homiebridge.core.errors import ScannerError
from homiebridge.core.model import Advertisement

LOGGER = logging.getLogger(__name__)


def to_advertisement(device: Any, advertisement_data: Any) -> Advertisement:
    return Advertisement(
        address=device.address,
        name=advertisement_data.local_name or device.name,
        rssi=advertisement_data.rssi,
        service_data={
            uuid.lower(): bytes(data) for uuid, data in advertisement_data.service_data.items()
        },
    )


class BLEScanner:
    """Passive scan for service-data advertisements of one service UUID."""

    def __init__(
        self,
        service_uuid: str,
        *,
        adapter: str | None = None,
        queue_size: int = 256,
    ) -> None:
        self.service_uuid = service_uuid.lower()
        self.adapter = adapter
        self._queue: asyncio.Queue[Advertisement] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def _on_detection(self, device: Any, advertisement_data: Any) -> None:
        advertisement = to_advertisement(device, advertisement_data)
        if self.service_uuid not in advertisement.service_data:
            return
        try:
            self._queue.put_nowait(advertisement)
        except asyncio.QueueFull:
            # full queue: the newest advertisement is dropped
            self.dropped += 1
            LOGGER.debug("Scanner queue full, dropped advertisement from %s", advertisement.address)

    async def advertisements(self) -> AsyncIterator[Advertisement]:
        try:
            from bleak import BleakScanner
            from bleak.exc import BleakError
        except Exception as exc:  # pragma: no cover - import failure path
            raise ScannerError(
                "BLE scanning requires 'bleak'. Install dependency and retry."
            ) from exc

        kwargs: dict[str, Any] = {"detection_callback": self._on_detection}
        if self.adapter:
            kwargs["adapter"] = self.adapter

        try:
            scanner = BleakScanner(**kwargs)
            async with scanner:
                LOGGER.info("Scanning for service data %s", self.service_uuid)
                while True:
                    yield await self._queue.get()
        except BleakError as exc:
            raise ScannerError(f"BLE scan failed: {exc}") from exc
