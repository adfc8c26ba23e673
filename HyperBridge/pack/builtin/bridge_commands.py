"""
桥接命令包 - 在与机器人的私聊中管理桥接
Bridge commands pack - manage the bridge from a private chat with the bot.
"""

from __future__ import annotations

from HyperBridge.errors import ConnectionNotOpenError
from HyperBridge.gateway.base import CommandMessage
from HyperBridge.pack.base import Pack
from HyperBridge.pack.hooks import command_hook, fallback_hook


def _contact_lines(contacts: list[tuple[str, str]]) -> str:
    return "\n".join(f"📱 {name or 'Unknown'} (+{phone})" for phone, name in contacts)


class BridgeCommandsPack(Pack):
    """桥接命令扩展包 / Bridge commands extension pack."""

    name = "bridge_commands"
    description = "桥接管理命令 / Bridge management commands"

    @command_hook("start", description="Show bot info")
    async def cmd_start(self, command: CommandMessage, args: str) -> str:
        counts = self.app.counts()
        ready = "✅ Ready" if self.app.connection.is_open else "⏳ Initializing..."
        return (
            "🤖 WhatsApp-Telegram Bridge\n\n"
            f"Status: {ready}\n"
            f"Linked Chats: {counts['chats']}\n"
            f"Contacts: {counts['contacts']}\n"
            f"Users: {counts['users']}"
        )

    @command_hook("status", description="Show bridge status")
    async def cmd_status(self, command: CommandMessage, args: str) -> str:
        connection = self.app.connection
        counts = self.app.counts()
        user = "Unknown"
        if connection.is_open and connection.socket is not None and connection.socket.user:
            user = connection.socket.user.get("name") or "Unknown"
        stored = self.app.sessions is not None and await self.app.sessions.exists()
        return (
            "📊 Bridge Status\n\n"
            f"🔗 WhatsApp: {'✅ Connected' if connection.is_open else '❌ Disconnected'}\n"
            f"👤 User: {user}\n"
            f"💾 Session: {'✅ Stored' if stored else '❌ Not stored'}\n"
            f"💬 Chats: {counts['chats']}\n"
            f"👥 Users: {counts['users']}\n"
            f"📞 Contacts: {counts['contacts']}"
        )

    @command_hook("send", description="Send WhatsApp message")
    async def cmd_send(self, command: CommandMessage, args: str) -> str:
        parts = args.split(maxsplit=1)
        if len(parts) < 2:
            return "❌ Usage: /send <number> <message>\nExample: /send 1234567890 Hello!"

        number, text = parts
        try:
            result = await self.app.send_to_conversation(number, text)
        except ConnectionNotOpenError as exc:
            return f"❌ Error sending: {exc}"

        key = (result or {}).get("key") or {}
        if key.get("id"):
            return f"✅ Message sent to {number}"
        return "⚠️ Message sent but no confirmation"

    @command_hook("sync", description="Sync WhatsApp contacts")
    async def cmd_sync(self, command: CommandMessage, args: str) -> str:
        await self.app.gateway.send_private(command.chat_id, "🔄 Syncing contacts...")
        try:
            await self.app.sync_contacts()
        except ConnectionNotOpenError as exc:
            return f"❌ Failed to sync: {exc}"
        return f"✅ Synced {self.app.counts()['contacts']} contacts from WhatsApp"

    @command_hook("contacts", description="View WhatsApp contacts")
    async def cmd_contacts(self, command: CommandMessage, args: str) -> str:
        contacts = self.app.list_contacts()
        if not contacts:
            return "📞 No contacts found"
        return f"📞 Contacts\n\n{_contact_lines(contacts)}"

    @command_hook("searchcontact", description="Search WhatsApp contacts")
    async def cmd_search_contact(self, command: CommandMessage, args: str) -> str:
        query = args.strip()
        if not query:
            return "❌ Usage: /searchcontact <name or phone>\nExample: /searchcontact John"

        matches = self.app.search_contacts(query)
        if not matches:
            return f'❌ No contacts found for "{query.lower()}"'
        return f"🔍 Search Results\n\n{_contact_lines(matches)}"

    @fallback_hook(description="Show available commands")
    async def cmd_menu(self, command: CommandMessage, args: str) -> str:
        return (
            "ℹ️ Available Commands\n\n"
            "/start - Show bot info\n"
            "/status - Show bridge status\n"
            "/send <number> <msg> - Send WhatsApp message\n"
            "/sync - Sync WhatsApp contacts\n"
            "/contacts - View WhatsApp contacts\n"
            "/searchcontact <name/phone> - Search contacts"
        )
