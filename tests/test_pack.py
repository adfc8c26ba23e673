"""Command packs: hook collection, dispatch and the bridge commands."""

from __future__ import annotations

import pytest

from HyperBridge.gateway.base import CommandMessage
from HyperBridge.pack import Pack, PackRegistry, command_hook, match_command

from tests.conftest import FakeGateway


def _cmd(text: str, sender_id: int = 1) -> CommandMessage:
    return CommandMessage(chat_id=42, text=text, sender_id=sender_id)


@pytest.mark.parametrize(
    "text,command,expected",
    [
        ("/send 123 hi there", "send", (True, "123 hi there")),
        ("/send@HyperBridgeBot 123 hi", "send", (True, "123 hi")),
        ("/SYNC", "sync", (True, "")),
        ("/sendx 1", "send", (False, "")),
        ("send 1", "send", (False, "")),
        ("/", "send", (False, "")),
    ],
)
def test_match_command(text, command, expected):
    assert match_command(text, command) == expected


class BrokenPack(Pack):
    name = "broken"

    @command_hook("explode", description="Always fails", permission="")
    async def cmd_explode(self, command, args):
        raise RuntimeError("kaboom")


class TestRegistry:
    async def test_handler_error_is_reported(self, config):
        gateway = FakeGateway()
        registry = PackRegistry(config, gateway)
        await registry.register(BrokenPack(app=None))

        assert await registry.dispatch(_cmd("/explode")) is True
        assert gateway.private == [(42, "❌ Command error: kaboom")]

    async def test_duplicate_names_rejected(self, config):
        registry = PackRegistry(config, FakeGateway())
        await registry.register(BrokenPack(app=None))
        with pytest.raises(ValueError):
            await registry.register(BrokenPack(app=None))
        assert await registry.unregister("broken") is True
        assert registry.get("broken") is None

    async def test_disabled_pack_is_skipped(self, config):
        gateway = FakeGateway()
        registry = PackRegistry(config, gateway)
        pack = BrokenPack(app=None)
        await registry.register(pack)
        pack.enabled = False
        assert await registry.dispatch(_cmd("/explode")) is False
        assert registry.command_menu() == []


class TestBridgeCommands:
    async def test_menu_registered_with_gateway(self, app, gateway):
        names = {name for name, _ in gateway.commands}
        assert names == {"start", "status", "send", "sync", "contacts", "searchcontact"}

    async def test_status(self, app, gateway):
        await app.packs.dispatch(_cmd("/status"))
        chat_id, text = gateway.private[-1]
        assert chat_id == 42
        assert "🔗 WhatsApp: ✅ Connected" in text
        assert "👤 User: Bridge Owner" in text

    async def test_status_reports_stored_session(self, app, gateway):
        await app.sessions.clear()
        await app.packs.dispatch(_cmd("/status"))
        assert "💾 Session: ❌ Not stored" in gateway.private[-1][1]

        app.sessions.auth_dir.mkdir(parents=True, exist_ok=True)
        (app.sessions.auth_dir / "creds.json").write_text('{"me": {}}')
        assert await app.sessions.save() is True
        await app.packs.dispatch(_cmd("/status"))
        assert "💾 Session: ✅ Stored" in gateway.private[-1][1]

    async def test_start(self, app, gateway):
        await app.packs.dispatch(_cmd("/start"))
        assert "Status: ✅ Ready" in gateway.private[-1][1]

    async def test_send(self, app, gateway, sockets):
        await app.packs.dispatch(_cmd("/send"))
        assert gateway.private[-1][1].startswith("❌ Usage: /send <number> <message>")

        await app.packs.dispatch(_cmd("/send 15550001111 hello world"))
        assert sockets.latest.sent[-1] == ("15550001111@s.whatsapp.net", {"text": "hello world"})
        assert gateway.private[-1][1] == "✅ Message sent to 15550001111"

    async def test_sync_and_contacts(self, app, gateway, sockets):
        sockets.latest.contacts = {
            "4915112345678@s.whatsapp.net": {"id": "4915112345678@s.whatsapp.net", "name": "Alice"},
        }
        await app.packs.dispatch(_cmd("/sync"))
        assert gateway.private[-2][1] == "🔄 Syncing contacts..."
        assert gateway.private[-1][1] == "✅ Synced 1 contacts from WhatsApp"

        await app.packs.dispatch(_cmd("/contacts"))
        assert gateway.private[-1][1] == "📞 Contacts\n\n📱 Alice (+4915112345678)"

    async def test_search_contact(self, app, gateway):
        await app.directory.upsert_contact("15550001111", "Zed")
        await app.packs.dispatch(_cmd("/searchcontact"))
        assert gateway.private[-1][1].startswith("❌ Usage: /searchcontact")

        await app.packs.dispatch(_cmd("/searchcontact zed"))
        assert gateway.private[-1][1] == "🔍 Search Results\n\n📱 Zed (+15550001111)"

        await app.packs.dispatch(_cmd("/searchcontact Nobody"))
        assert gateway.private[-1][1] == '❌ No contacts found for "nobody"'

    async def test_unknown_command_shows_menu(self, app, gateway):
        assert await app.packs.dispatch(_cmd("/whatever")) is True
        assert gateway.private[-1][1].startswith("ℹ️ Available Commands")
        assert await app.packs.dispatch(_cmd("just chatting")) is False

    async def test_admin_only(self, app, gateway):
        app.config.set("telegram.admin_ids", [7])
        sent_before = len(gateway.private)
        assert await app.packs.dispatch(_cmd("/status", sender_id=8)) is False
        assert len(gateway.private) == sent_before
        assert await app.packs.dispatch(_cmd("/status", sender_id=7)) is True
