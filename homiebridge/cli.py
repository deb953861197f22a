"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import replace
from pathlib import Path

import typer

from homiebridge.core.config import BridgeSettings, load_settings
from homiebridge.core.decoder import decode_advertisement
from homiebridge.core.errors import HomieBridgeError
from homiebridge.core.mapper import map_reading
from homiebridge.core.publisher import encode_unit, encode_value
from homiebridge.core.service import BridgeService
from homiebridge.core.topic_tree import TopicTree
from homiebridge.transports.ble_scan import BLEScanner
from homiebridge.transports.mqtt import MQTTBus

app = typer.Typer(help="Bridge BTHome sensor advertisements to MQTT as Homie devices")
LOGGER = logging.getLogger(__name__)

_CONFIG_OPTION = typer.Option(None, "--config", help="Path to a YAML config file")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config: Path | None) -> BridgeSettings:
    loaded = load_settings(config)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded.settings


async def _run_bridge(settings: BridgeSettings) -> None:
    service = BridgeService(settings)
    scanner = BLEScanner(
        settings.scan.service_uuid,
        adapter=settings.scan.adapter,
        queue_size=settings.scan.buffer_size,
    )
    try:
        await service.run(scanner.advertisements())
    finally:
        await service.close()


async def _collect_tree(settings: BridgeSettings, seconds: float) -> TopicTree:
    bus = MQTTBus(
        settings.mqtt,
        identifier=f"{settings.mqtt.client_id_prefix}-tree-{os.getpid()}",
    )
    await bus.connect()
    tree = TopicTree()

    async def consume() -> None:
        async for topic, payload in bus.subscribe(f"{settings.mqtt.base_topic}/#"):
            tree.insert(topic, payload)

    try:
        await asyncio.wait_for(consume(), timeout=seconds)
    except asyncio.TimeoutError:
        LOGGER.debug("Stopped collecting topics after %ss", seconds)
    finally:
        await bus.disconnect()
    return tree


@app.command("run")
def run_bridge(
    config: Path | None = _CONFIG_OPTION,
    host: str | None = typer.Option(None, "--host", help="Override MQTT broker host"),
    port: int | None = typer.Option(None, "--port", help="Override MQTT broker port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every publish"),
) -> None:
    """Scan for advertisements and publish them until interrupted."""
    _configure_logging(verbose)
    try:
        settings = _load(config)
        overrides = {}
        if host:
            overrides["host"] = host
        if port:
            overrides["port"] = port
        if overrides:
            settings = replace(settings, mqtt=replace(settings.mqtt, **overrides))
        typer.echo(
            f"Bridging to {settings.mqtt.host}:{settings.mqtt.port} "
            f"under '{settings.mqtt.base_topic}'",
            err=True,
        )
        asyncio.run(_run_bridge(settings))
    except KeyboardInterrupt:
        typer.echo("Stopped", err=True)
    except HomieBridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("decode")
def decode(payload: str = typer.Argument(..., help="Service data as hex")) -> None:
    """Decode one service-data payload and print its readings."""
    try:
        data = bytes.fromhex(payload.replace(":", "").replace(" ", ""))
    except ValueError:
        typer.echo(f"Error: '{payload}' is not valid hex", err=True)
        raise typer.Exit(code=1) from None

    try:
        readings = decode_advertisement(data)
    except HomieBridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if not readings:
        typer.echo("No readings")
        return
    for reading in readings:
        prop, value = map_reading(reading)
        line = f"{prop.id}: {encode_value(value).decode('utf-8')}"
        if prop.unit is not None:
            line += f" {encode_unit(prop.unit).decode('utf-8')}"
        typer.echo(line)


@app.command("devices")
def list_devices(config: Path | None = _CONFIG_OPTION) -> None:
    """List statically configured devices."""
    try:
        settings = _load(config)
    except HomieBridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if not settings.devices:
        typer.echo("No static devices configured")
        return
    for address, device in sorted(settings.devices.items()):
        name = device.name or "<advertised name>"
        typer.echo(f"{address} -> {device.id} ({name})")


@app.command("tree")
def show_tree(
    config: Path | None = _CONFIG_OPTION,
    seconds: float = typer.Option(3.0, "--seconds", min=0.1, help="How long to collect topics"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Print the retained Homie topic tree seen on the broker."""
    _configure_logging(verbose)
    try:
        settings = _load(config)
        tree = asyncio.run(_collect_tree(settings, seconds))
    except HomieBridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    lines = tree.render()
    if not lines:
        typer.echo(f"No topics under '{settings.mqtt.base_topic}'")
        return
    for line in lines:
        typer.echo(line)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
