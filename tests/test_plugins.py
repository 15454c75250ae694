"""Tests for the plugin dispatcher, registry, custom loader and scaffold."""

import io
import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from phantom.config import PluginConfig
from phantom.exceptions import AbiMismatch, ConfigError, ConnectFailed, PluginError, SendFailed
from phantom.fingerprint import FingerprintedCommand
from phantom.keystroke import BACKSPACE, KeyKind, KeystrokeEvent
from phantom.plugins import PluginDispatcher, TransportRegistry, build_payload
from phantom.plugins.adapters.cobaltstrike import CobaltStrikeTransport
from phantom.plugins.adapters.http_base import backoff_delay, with_retries
from phantom.plugins.adapters.null import NullTransport
from phantom.plugins.base import Ack, Transport, TransportHandle
from phantom.plugins.loader import CURRENT_ABI, load_custom_transport
from phantom.plugins.scaffold import render_plugin, write_plugin

COMMAND = FingerprintedCommand("ls", "ls")
EVENTS = [KeystrokeEvent("l", 10.0), KeystrokeEvent("s", 12.0)]


def make_transport(connect_error=None, send_error=None):
    """Transport whose coroutines are AsyncMocks."""
    transport = MagicMock(spec=Transport)
    transport.name = "mock"
    transport.connect = AsyncMock(
        side_effect=connect_error, return_value=TransportHandle("mock", PluginConfig())
    )
    transport.send = AsyncMock(side_effect=send_error, return_value=Ack())
    transport.shutdown = AsyncMock()
    return transport


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_send_after_start(self):
        transport = make_transport()
        dispatcher = PluginDispatcher(transport, PluginConfig())
        await dispatcher.start()

        ack = await dispatcher.send(COMMAND, EVENTS)

        assert ack.delivered
        transport.send.assert_awaited_once()
        handle, command, events = transport.send.await_args.args
        assert command is COMMAND
        assert events == EVENTS

    @pytest.mark.asyncio
    async def test_send_without_session(self):
        transport = make_transport()
        dispatcher = PluginDispatcher(transport, PluginConfig())
        with pytest.raises(SendFailed):
            await dispatcher.send(COMMAND, EVENTS)
        transport.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connect_failure_means_no_send(self):
        transport = make_transport(connect_error=ConnectFailed("refused"))
        dispatcher = PluginDispatcher(transport, PluginConfig())

        with pytest.raises(ConnectFailed):
            await dispatcher.start()
        assert not dispatcher.connected
        with pytest.raises(SendFailed):
            await dispatcher.send(COMMAND, EVENTS)
        transport.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_connect_error_wrapped(self):
        dispatcher = PluginDispatcher(make_transport(connect_error=OSError("no route")), PluginConfig())
        with pytest.raises(ConnectFailed, match="no route"):
            await dispatcher.start()

    @pytest.mark.asyncio
    async def test_double_start(self):
        dispatcher = PluginDispatcher(make_transport(), PluginConfig())
        await dispatcher.start()
        with pytest.raises(PluginError):
            await dispatcher.start()

    @pytest.mark.asyncio
    async def test_unexpected_send_error_wrapped(self):
        dispatcher = PluginDispatcher(make_transport(send_error=ValueError("bad")), PluginConfig())
        await dispatcher.start()
        with pytest.raises(SendFailed, match="bad"):
            await dispatcher.send(COMMAND, EVENTS)

    @pytest.mark.asyncio
    async def test_shutdown_once(self):
        transport = make_transport()
        dispatcher = PluginDispatcher(transport, PluginConfig())
        await dispatcher.start()
        await dispatcher.shutdown()
        await dispatcher.shutdown()
        transport.shutdown.assert_awaited_once()
        assert not dispatcher.connected

    @pytest.mark.asyncio
    async def test_shutdown_error_logged(self, caplog):
        transport = make_transport()
        transport.shutdown.side_effect = RuntimeError("already gone")
        dispatcher = PluginDispatcher(transport, PluginConfig())
        await dispatcher.start()
        await dispatcher.shutdown()
        assert "already gone" in caplog.text


class TestNullTransport:
    @pytest.mark.asyncio
    async def test_replays_to_stream(self):
        output = io.StringIO()
        transport = NullTransport(output=output, realtime=False)
        handle = await transport.connect(PluginConfig())
        events = [
            KeystrokeEvent("x", 10.0, KeyKind.TYPO),
            KeystrokeEvent(BACKSPACE, 10.0, KeyKind.BACKSPACE),
            KeystrokeEvent("a", 10.0),
        ]

        ack = await transport.send(handle, FingerprintedCommand("a", "a"), events)

        assert output.getvalue() == "x\b \ba\n"
        assert ack.detail == "replayed locally"

    @pytest.mark.asyncio
    async def test_shutdown(self):
        transport = NullTransport(output=io.StringIO())
        handle = await transport.connect(PluginConfig())
        await transport.shutdown(handle)
        assert not handle.connected


def test_payload_carries_no_persona_metadata():
    payload = build_payload(FingerprintedCommand("ls data", "ls shuju"), EVENTS)
    assert payload == {"text": "ls shuju", "keystrokes": [["l", 10.0, "key"], ["s", 12.0, "key"]]}


class TestRegistry:
    def test_builtin_names(self):
        assert TransportRegistry().names() == ["null", "cobaltstrike", "sliver", "mythic", "custom"]

    def test_create_null_with_output(self):
        output = io.StringIO()
        transport = TransportRegistry().create(PluginConfig(name="null"), output=output, realtime=False)
        assert isinstance(transport, NullTransport)
        assert transport.output is output
        assert not transport.realtime

    def test_create_network_transport(self):
        assert isinstance(TransportRegistry().create(PluginConfig(name="CobaltStrike")), CobaltStrikeTransport)

    def test_unknown_name(self):
        with pytest.raises(ConfigError):
            TransportRegistry().create(PluginConfig(name="telnet"))

    def test_custom_requires_path(self):
        with pytest.raises(ConfigError):
            TransportRegistry().create(PluginConfig(name="custom"))

    def test_register(self):
        registry = TransportRegistry()
        registry.register("Echo", NullTransport)
        assert "echo" in registry.names()
        assert isinstance(registry.create(PluginConfig(name="echo")), NullTransport)


class TestCustomLoader:
    def _write(self, tmp_path, body, name="plugin_under_test"):
        path = tmp_path / f"{name}.py"
        path.write_text(body, encoding="utf-8")
        return path

    def test_scaffolded_plugin_loads(self, tmp_path):
        path = write_plugin("relay", tmp_path)
        transport = load_custom_transport(path)
        assert isinstance(transport, Transport)
        assert transport.name == "relay"

    def test_wrong_abi(self, tmp_path):
        path = self._write(
            tmp_path,
            "PHANTOM_PLUGIN_ABI = 2\n"
            "def create_transport():\n"
            "    raise RuntimeError('must not run')\n",
        )
        with pytest.raises(AbiMismatch) as exc_info:
            load_custom_transport(path)
        assert exc_info.value.found == 2
        assert exc_info.value.expected == CURRENT_ABI

    def test_missing_abi(self, tmp_path):
        path = self._write(tmp_path, "def create_transport():\n    return None\n")
        with pytest.raises(AbiMismatch) as exc_info:
            load_custom_transport(path)
        assert exc_info.value.found is None

    def test_bool_abi_rejected(self, tmp_path):
        path = self._write(tmp_path, "PHANTOM_PLUGIN_ABI = True\n")
        with pytest.raises(AbiMismatch):
            load_custom_transport(path)

    def test_missing_factory(self, tmp_path):
        path = self._write(tmp_path, "PHANTOM_PLUGIN_ABI = 1\n")
        with pytest.raises(AbiMismatch):
            load_custom_transport(path)

    def test_factory_returns_wrong_type(self, tmp_path):
        path = self._write(tmp_path, "PHANTOM_PLUGIN_ABI = 1\ndef create_transport():\n    return object()\n")
        with pytest.raises(AbiMismatch):
            load_custom_transport(path)

    def test_factory_error_is_connect_failure(self, tmp_path):
        path = self._write(
            tmp_path,
            "PHANTOM_PLUGIN_ABI = 1\n"
            "def create_transport():\n"
            "    raise RuntimeError('boom')\n",
            name="exploding_plugin",
        )
        with pytest.raises(ConnectFailed, match="boom") as exc_info:
            load_custom_transport(path)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "phantom_plugins.exploding_plugin" not in sys.modules

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConnectFailed):
            load_custom_transport(tmp_path / "nope.py")

    def test_import_error(self, tmp_path):
        path = self._write(tmp_path, "def broken(:\n")
        with pytest.raises(ConnectFailed):
            load_custom_transport(path)

    @pytest.mark.asyncio
    async def test_scaffolded_plugin_round_trip(self, tmp_path):
        path = write_plugin("jsonl_sink", tmp_path)
        output = tmp_path / "out" / "sent.jsonl"
        config = PluginConfig(name="custom", parameters={"path": str(path), "output": str(output)})

        dispatcher = PluginDispatcher(TransportRegistry().create(config), config)
        await dispatcher.start()
        await dispatcher.send(COMMAND, EVENTS)
        await dispatcher.shutdown()

        lines = output.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line) for line in lines] == [build_payload(COMMAND, EVENTS)]


class TestScaffold:
    def test_render(self):
        source = render_plugin("my_relay")
        assert f"PHANTOM_PLUGIN_ABI = {CURRENT_ABI}" in source
        assert "class MyRelayTransport(Transport):" in source
        assert 'name = "my_relay"' in source

    @pytest.mark.parametrize("name", ["Bad-Name", "1relay", "", "relay.py"])
    def test_invalid_names(self, name):
        with pytest.raises(PluginError):
            render_plugin(name)

    def test_no_overwrite_without_force(self, tmp_path):
        write_plugin("relay", tmp_path)
        with pytest.raises(PluginError):
            write_plugin("relay", tmp_path)
        assert write_plugin("relay", tmp_path, force=True).exists()


class TestRetries:
    def test_backoff_delay(self):
        assert backoff_delay(0) == pytest.approx(0.1)
        assert backoff_delay(3) == pytest.approx(0.8)
        assert backoff_delay(10) == 5.0

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        operation = AsyncMock(
            side_effect=[aiohttp.ClientConnectionError("reset"), aiohttp.ClientConnectionError("reset"), {"ok": True}]
        )
        with patch("phantom.plugins.adapters.http_base.asyncio.sleep", new=AsyncMock()) as sleep:
            result, attempts = await with_retries(operation, max_retries=3, what="test send")
        assert result == {"ok": True}
        assert attempts == 3
        assert [c.args[0] for c in sleep.await_args_list] == [pytest.approx(0.1), pytest.approx(0.2)]

    @pytest.mark.asyncio
    async def test_exhausted(self):
        operation = AsyncMock(side_effect=TimeoutError())
        with patch("phantom.plugins.adapters.http_base.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(SendFailed, match="3 attempt"):
                await with_retries(operation, max_retries=2, what="test send")
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        error = aiohttp.ClientResponseError(request_info=MagicMock(), history=(), status=404)
        operation = AsyncMock(side_effect=error)
        with pytest.raises(ConnectFailed) as exc_info:
            await with_retries(operation, max_retries=3, what="register", error=ConnectFailed)
        assert operation.await_count == 1
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_non_transient_errors_propagate(self):
        operation = AsyncMock(side_effect=KeyError("state"))
        with pytest.raises(KeyError):
            await with_retries(operation, max_retries=3, what="test send")
        assert operation.await_count == 1


def test_shipped_example_plugin_loads():
    path = Path(__file__).resolve().parent.parent / "plugins" / "example_transport.py"
    transport = load_custom_transport(path)
    assert transport.name == "example_transport"
