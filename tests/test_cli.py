from __future__ import annotations

import pytest
from typer.testing import CliRunner

from homiebridge import cli
from homiebridge.core.config import BridgeSettings, LoadedSettings, ScanSettings, StaticDevice
from homiebridge.core.errors import BusConnectError, ConfigValidationError
from homiebridge.core.topic_tree import TopicTree


def _loaded(settings: BridgeSettings | None = None, warnings: tuple[str, ...] = ()) -> LoadedSettings:
    return LoadedSettings(settings=settings or BridgeSettings(), sources=("test",), warnings=warnings)


def test_decode_prints_readings() -> None:
    runner = CliRunner()
    result = runner.invoke(cli.app, ["decode", "4000000302c409"])
    assert result.exit_code == 0
    assert "temperature: 25 °C" in result.output


def test_decode_accepts_separators() -> None:
    runner = CliRunner()
    result = runner.invoke(cli.app, ["decode", "40:00:00:02:01:55"])
    assert result.exit_code == 0
    assert "battery: 85 %" in result.output


def test_decode_header_only() -> None:
    runner = CliRunner()
    result = runner.invoke(cli.app, ["decode", "400000"])
    assert result.exit_code == 0
    assert "No readings" in result.output


def test_decode_rejects_invalid_hex() -> None:
    runner = CliRunner()
    result = runner.invoke(cli.app, ["decode", "zz"])
    assert result.exit_code == 1
    assert "is not valid hex" in result.output


def test_decode_reports_decode_error() -> None:
    runner = CliRunner()
    result = runner.invoke(cli.app, ["decode", "4000000401000000"])
    assert result.exit_code == 1
    assert "Error: Unsupported encoding" in result.output


def test_devices_lists_static_entries(monkeypatch) -> None:
    settings = BridgeSettings(
        devices={
            "AA:BB:CC:DD:EE:FF": StaticDevice(address="AA:BB:CC:DD:EE:FF", id="porch", name="Porch"),
            "11:22:33:44:55:66": StaticDevice(address="11:22:33:44:55:66", id="garage"),
        }
    )
    monkeypatch.setattr(cli, "load_settings", lambda path=None: _loaded(settings, ("mqtt.qos is 0",)))

    runner = CliRunner()
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 0
    assert "11:22:33:44:55:66 -> garage (<advertised name>)" in result.output
    assert "AA:BB:CC:DD:EE:FF -> porch (Porch)" in result.output
    assert "Warning: mqtt.qos is 0" in result.output


def test_devices_empty(monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda path=None: _loaded())

    runner = CliRunner()
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 0
    assert "No static devices configured" in result.output


def test_config_error_exits_non_zero(monkeypatch) -> None:
    def fail(path=None):
        raise ConfigValidationError("Schema validation failed for test (mqtt.qos): 3 is not one of [0, 1, 2]")

    monkeypatch.setattr(cli, "load_settings", fail)

    runner = CliRunner()
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 1
    assert "Error: Schema validation failed" in result.output


def test_tree_renders_collected_topics(monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda path=None: _loaded())

    async def fake_collect(settings, seconds):
        tree = TopicTree()
        tree.insert("homie/porch/$state", b"ready")
        tree.insert("homie/porch/sensor/temperature", b"21.5")
        return tree

    monkeypatch.setattr(cli, "_collect_tree", fake_collect)

    runner = CliRunner()
    result = runner.invoke(cli.app, ["tree", "--seconds", "0.5"])
    assert result.exit_code == 0
    assert "homie" in result.output
    assert "    $state = ready" in result.output
    assert "      temperature = 21.5" in result.output


def test_tree_empty(monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda path=None: _loaded())

    async def fake_collect(settings, seconds):
        return TopicTree()

    monkeypatch.setattr(cli, "_collect_tree", fake_collect)

    runner = CliRunner()
    result = runner.invoke(cli.app, ["tree"])
    assert result.exit_code == 0
    assert "No topics under 'homie'" in result.output


def test_run_applies_broker_overrides(monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda path=None: _loaded())
    seen: list[BridgeSettings] = []

    async def fake_run(settings):
        seen.append(settings)

    monkeypatch.setattr(cli, "_run_bridge", fake_run)

    runner = CliRunner()
    result = runner.invoke(cli.app, ["run", "--host", "broker.lan", "--port", "8883"])
    assert result.exit_code == 0
    assert "Bridging to broker.lan:8883 under 'homie'" in result.output
    assert seen[0].mqtt.host == "broker.lan"
    assert seen[0].mqtt.port == 8883


def test_run_reports_bus_errors(monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda path=None: _loaded())

    async def fake_run(settings):
        raise BusConnectError("MQTT connect to localhost:1883 failed: refused")

    monkeypatch.setattr(cli, "_run_bridge", fake_run)

    runner = CliRunner()
    result = runner.invoke(cli.app, ["run"])
    assert result.exit_code == 1
    assert "Error: MQTT connect to localhost:1883 failed" in result.output


@pytest.mark.asyncio
async def test_run_bridge_sizes_scanner_from_config(monkeypatch) -> None:
    scanners: list[dict] = []
    events: list[str] = []

    class FakeScanner:
        def __init__(self, service_uuid, **kwargs) -> None:
            scanners.append({"service_uuid": service_uuid, **kwargs})

        def advertisements(self):
            return "advertisements"

    class FakeService:
        def __init__(self, settings) -> None:
            self.settings = settings

        async def run(self, advertisements) -> None:
            events.append(f"run {advertisements}")

        async def close(self) -> None:
            events.append("close")

    monkeypatch.setattr(cli, "BLEScanner", FakeScanner)
    monkeypatch.setattr(cli, "BridgeService", FakeService)
    settings = BridgeSettings(scan=ScanSettings(adapter="hci1", queue_size=4, buffer_size=64))

    await cli._run_bridge(settings)

    assert scanners == [
        {
            "service_uuid": "0000181c-0000-1000-8000-00805f9b34fb",
            "adapter": "hci1",
            "queue_size": 64,
        }
    ]
    assert events == ["run advertisements", "close"]
