"""Signal hub, configuration and logging setup."""

from __future__ import annotations

import json
import logging

from HyperBridge.config.defaults import build_default_config
from HyperBridge.config.manager import ConfigManager
from HyperBridge.kernel import SignalHub, SignalKind, setup_logging
from HyperBridge.kernel.signal_hub import SignalPriority


class TestSignalHub:
    async def test_priority_order_and_once(self):
        hub = SignalHub()
        order = []
        hub.connect(SignalKind.SYNC_SUMMARY, lambda s: order.append("low"), priority=SignalPriority.LOW)
        hub.connect(SignalKind.SYNC_SUMMARY, lambda s: order.append("high"), priority=SignalPriority.HIGH)
        hub.connect(SignalKind.SYNC_SUMMARY, lambda s: order.append("once"), once=True)

        await hub.emit_new(SignalKind.SYNC_SUMMARY, payload="x")
        await hub.emit_new(SignalKind.SYNC_SUMMARY, payload="y")
        assert order == ["high", "once", "low", "high", "low"]
        assert hub.slot_count(SignalKind.SYNC_SUMMARY) == 2

    async def test_failing_handler_does_not_stop_others(self):
        hub = SignalHub()
        seen = []

        async def broken(signal):
            raise RuntimeError("boom")

        hub.connect(SignalKind.CONNECTION_OPEN, broken, priority=SignalPriority.HIGHEST)
        hub.connect(SignalKind.CONNECTION_OPEN, seen.append)
        signal = await hub.emit_new(SignalKind.CONNECTION_OPEN, payload="me", source="test", code=1)
        assert seen == [signal]
        assert signal.metadata == {"code": 1}

    def test_disconnect_and_clear(self):
        hub = SignalHub()
        slot = hub.connect(SignalKind.SYSTEM_READY, print)
        hub.connect(SignalKind.SYSTEM_SHUTDOWN, print)
        assert hub.disconnect(slot) is True
        assert hub.disconnect(slot) is False
        assert hub.slot_count() == 1
        hub.clear()
        assert hub.slot_count() == 0


class TestConfig:
    def test_from_dict_fills_defaults(self):
        config = ConfigManager.from_dict({"telegram": {"chat_id": -100, "features": {"call_logs": False}}})
        assert config.get("telegram.chat_id") == -100
        assert config.feature("call_logs") is False
        assert config.feature("media_sync") is True
        assert config.get("whatsapp.backoff") == "linear"
        assert config.get("missing.key", "fallback") == "fallback"

    def test_set_creates_nested_keys(self):
        config = ConfigManager.from_dict({})
        config.set("packs.bridge_commands.limit", 5)
        assert config.get("packs.bridge_commands.limit") == 5

    async def test_load_writes_merged_file(self, tmp_path):
        path = tmp_path / "config" / "bridge_config.json"
        path.parent.mkdir()
        path.write_text(json.dumps({"bridge": {"name": "Mine"}}), encoding="utf-8")

        config = ConfigManager(defaults=build_default_config(), config_path=str(path))
        await config.load()

        assert config.get("bridge.name") == "Mine"
        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert on_disk["store"]["db_path"] == "data/bridge.db"

    async def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "bridge_config.json"
        path.write_text("{not json", encoding="utf-8")
        config = ConfigManager(defaults=build_default_config(), config_path=str(path))
        await config.load()
        assert config.get("bridge.name") == "HyperBridge"


def test_setup_logging_is_repeatable(tmp_path):
    log_file = tmp_path / "logs" / "bridge.log"
    root = setup_logging("DEBUG", str(log_file))
    root = setup_logging("INFO", str(log_file))
    try:
        assert len(root.handlers) == 2
        logging.getLogger("HyperBridge.tests").info("written")
        for handler in root.handlers:
            handler.flush()
        assert "written" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
