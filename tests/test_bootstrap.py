"""Bridge application lifecycle and operational notifications."""

from __future__ import annotations

import asyncio
import io

import pytest
from click.testing import CliRunner
from PIL import Image

from HyperBridge.cli.main import cli
from HyperBridge.errors import BridgeError, ConnectionFatalError
from HyperBridge.kernel.bootstrap import BridgeApp
from HyperBridge.kernel.signal_hub import SignalKind
from HyperBridge.pipeline.notifier import Notifier, render_qr_png

from tests.conftest import OWN_JID, OWNER_CHAT, FakeGateway, FakeSocketFactory, build_config


class TestBridgeApp:
    async def test_start_wires_everything(self, app, gateway):
        assert gateway.launched
        assert app.config.get("bridge.owner_jid") == OWN_JID
        assert any(text.startswith("🚀 HyperBridge started") for _, text in gateway.private)
        assert all(chat == OWNER_CHAT for chat, _ in gateway.private)

    async def test_send_to_conversation(self, app, sockets):
        result = await app.send_to_conversation("+49 151 12345678", "hi")
        assert sockets.latest.sent[-1] == ("4915112345678@s.whatsapp.net", {"text": "hi"})
        assert result["key"]["id"]

    async def test_shutdown_order(self, app, gateway, sockets):
        seen = []
        app.hub.connect(SignalKind.SYSTEM_SHUTDOWN, lambda s: seen.append(sockets.latest.ended))
        await app.shutdown()
        assert seen == [False]
        assert sockets.latest.ended
        assert gateway.halted
        await app.shutdown()

    async def test_missing_socket_factory(self, tmp_path):
        bridge = BridgeApp(build_config(tmp_path), gateway=FakeGateway())
        with pytest.raises(BridgeError):
            await bridge.initialize()
        await bridge.storage.dispose()

    async def test_run_forever_raises_on_terminal_close(self, tmp_path):
        sockets = FakeSocketFactory()
        gateway = FakeGateway()
        bridge = BridgeApp(build_config(tmp_path), socket_factory=sockets, gateway=gateway)
        await bridge.start()
        await sockets.latest.open()

        runner = asyncio.create_task(bridge.run_forever())
        await asyncio.sleep(0.05)
        await sockets.latest.close(401)

        with pytest.raises(ConnectionFatalError):
            await asyncio.wait_for(runner, timeout=5)
        assert gateway.halted
        assert any("closed permanently" in text for _, text in gateway.private)

    async def test_run_forever_stops_on_request(self, tmp_path):
        sockets = FakeSocketFactory()
        bridge = BridgeApp(build_config(tmp_path), socket_factory=sockets, gateway=FakeGateway())
        await bridge.start()

        runner = asyncio.create_task(bridge.run_forever())
        await asyncio.sleep(0.05)
        bridge.request_shutdown()
        await asyncio.wait_for(runner, timeout=5)
        assert sockets.latest.ended


class TestNotifier:
    def test_qr_png_is_square(self):
        with Image.open(io.BytesIO(render_qr_png("2@abcdef", size=256))) as image:
            assert image.size == (256, 256)
            assert image.format == "PNG"

    async def test_qr_goes_to_owner_and_log_channel(self, tmp_path):
        config = build_config(tmp_path, telegram__owner_id=11, telegram__log_channel=-22)
        gateway = FakeGateway()
        notifier = Notifier(config, gateway, directory=None)

        await notifier.send_qr("2@abcdef")
        assert [chat for chat, _, _ in gateway.private_photos] == [11, -22]
        assert gateway.private_photos[0][1].startswith(b"\x89PNG")

        await notifier.log_event("Contact Sync", "Synced 3")
        assert gateway.private[-1][0] == -22
        assert "Synced 3" in gateway.private[-1][1]


def test_cli_init_and_show(tmp_path):
    runner = CliRunner()
    path = tmp_path / "bridge_config.json"

    result = runner.invoke(cli, ["init", "--config", str(path)])
    assert result.exit_code == 0
    assert path.exists()

    result = runner.invoke(cli, ["conf", "show", "whatsapp.backoff", "--config", str(path)])
    assert result.output.strip() == '"linear"'

    result = runner.invoke(cli, ["conf", "show", "nope.key", "--config", str(path)])
    assert "不存在" in result.output


def test_cli_version():
    result = CliRunner().invoke(cli, ["version"])
    assert result.output.startswith("HyperBridge v")
