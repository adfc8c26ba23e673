"""
Test Configuration and Fixtures

Shared fakes for both sides of the bridge plus a fully wired BridgeApp.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import pytest
import pytest_asyncio

from HyperBridge.config.manager import ConfigManager
from HyperBridge.connection.base import ConnectionUpdate, MessageKey, MessengerSocket, SocketEvent
from HyperBridge.gateway.base import ThreadGateway
from HyperBridge.kernel.bootstrap import BridgeApp
from HyperBridge.kernel.signal_hub import SignalHub
from HyperBridge.message.components import PayloadKind
from HyperBridge.store.engine import StorageEngine

OWNER_CHAT = -1001234567890
OWN_JID = "15550000000:3@s.whatsapp.net"


# =============================================================================
# FAKES
# =============================================================================


class FakeSocket(MessengerSocket):
    """In-memory WhatsApp socket recording every outbound call."""

    def __init__(self, auth_dir: str) -> None:
        super().__init__()
        self.auth_dir = auth_dir
        self.connect_calls = 0
        self.ended = False
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.receipts: list[list[MessageKey]] = []
        self.presence: list[tuple[str, str | None]] = []
        self.media = b"\x89PNG-fake-media"
        self.groups: dict[str, dict[str, Any]] = {}
        self.fail_send = False
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        self.connect_calls += 1

    async def end(self) -> None:
        self.ended = True

    async def send_message(self, jid: str, content: dict[str, Any]) -> dict[str, Any] | None:
        if self.fail_send:
            raise RuntimeError("socket write failed")
        self.sent.append((jid, content))
        return {"key": {"remoteJid": jid, "id": f"OUT{next(self._ids)}", "fromMe": True}}

    async def read_messages(self, keys: list[MessageKey]) -> None:
        self.receipts.append(list(keys))

    async def send_presence(self, presence: str, jid: str | None = None) -> None:
        self.presence.append((presence, jid))

    async def download_media(self, message: dict[str, Any]) -> bytes:
        return self.media

    async def group_metadata(self, jid: str) -> dict[str, Any]:
        return self.groups.get(jid, {"subject": "", "participants": []})

    # helpers for driving the connection manager

    async def open(self, user_id: str = OWN_JID) -> None:
        self.user = {"id": user_id, "name": "Bridge Owner"}
        await self.emit(SocketEvent.CONNECTION_UPDATE, ConnectionUpdate(connection="open"))

    async def close(self, status_code: int | None) -> None:
        await self.emit(
            SocketEvent.CONNECTION_UPDATE,
            ConnectionUpdate(connection="close", status_code=status_code),
        )


class FakeSocketFactory:
    """Socket factory keeping every socket it ever produced."""

    def __init__(self) -> None:
        self.sockets: list[FakeSocket] = []

    def __call__(self, auth_dir: str) -> FakeSocket:
        sock = FakeSocket(auth_dir)
        self.sockets.append(sock)
        return sock

    @property
    def latest(self) -> FakeSocket:
        return self.sockets[-1]


class FakeGateway(ThreadGateway):
    """In-memory forum gateway recording every delivery."""

    def __init__(self) -> None:
        super().__init__({"chat_id": OWNER_CHAT})
        self._thread_ids = itertools.count(100)
        self._message_ids = itertools.count(1000)
        self.threads: dict[int, str] = {}
        self.deleted: set[int] = set()
        self.create_calls = 0
        self.fail_create = False
        self.fail_exists = False
        self.fail_media_kinds: set[PayloadKind] = set()
        self.texts: list[tuple[int, str]] = []
        self.text_ids: dict[int, str] = {}
        self.media: list[dict[str, Any]] = []
        self.locations: list[tuple[int, float, float]] = []
        self.contacts: list[tuple[int, str, str]] = []
        self.renamed: list[tuple[int, str]] = []
        self.pins: list[int] = []
        self.reactions: list[tuple[int, int, str]] = []
        self.private: list[tuple[int | str, str]] = []
        self.private_photos: list[tuple[int | str, bytes, str]] = []
        self.commands: list[tuple[str, str]] = []
        self.files: dict[str, bytes] = {}
        self.launched = False
        self.halted = False

    async def launch(self) -> None:
        self.launched = True

    async def halt(self) -> None:
        self.halted = True

    async def register_commands(self, commands: list[tuple[str, str]]) -> None:
        self.commands = list(commands)

    async def create_thread(self, name: str, icon_color: int | None = None) -> int:
        await asyncio.sleep(0)
        self.create_calls += 1
        if self.fail_create:
            raise RuntimeError("forum topics disabled")
        thread_id = next(self._thread_ids)
        self.threads[thread_id] = name
        return thread_id

    async def thread_exists(self, thread_id: int) -> bool:
        if self.fail_exists:
            raise RuntimeError("network down")
        return thread_id in self.threads and thread_id not in self.deleted

    async def rename_thread(self, thread_id: int, name: str) -> None:
        self.threads[thread_id] = name
        self.renamed.append((thread_id, name))

    async def send_text(self, thread_id: int, text: str, parse_mode: str | None = None) -> int:
        self.texts.append((thread_id, text))
        message_id = next(self._message_ids)
        self.text_ids[message_id] = text
        return message_id

    async def send_media(
        self,
        thread_id: int,
        kind: PayloadKind,
        data: bytes | str,
        caption: str = "",
        file_name: str = "",
        title: str = "",
    ) -> int:
        if kind in self.fail_media_kinds:
            raise RuntimeError(f"{kind.value} rejected")
        self.media.append(
            {"thread_id": thread_id, "kind": kind, "data": data, "caption": caption, "file_name": file_name}
        )
        return next(self._message_ids)

    async def send_location(self, thread_id: int, latitude: float, longitude: float) -> int:
        self.locations.append((thread_id, latitude, longitude))
        return next(self._message_ids)

    async def send_contact(self, thread_id: int, phone: str, first_name: str, last_name: str = "") -> int:
        self.contacts.append((thread_id, phone, first_name))
        return next(self._message_ids)

    async def pin_message(self, message_id: int) -> None:
        self.pins.append(message_id)

    async def set_reaction(self, chat_id: int, message_id: int, emoji: str) -> None:
        self.reactions.append((chat_id, message_id, emoji))

    async def download_file(self, file_id: str) -> bytes:
        return self.files.get(file_id, b"telegram-file")

    async def send_private(self, chat_id: int | str, text: str, parse_mode: str | None = None) -> int:
        self.private.append((chat_id, text))
        return next(self._message_ids)

    async def send_private_photo(self, chat_id: int | str, data: bytes, caption: str = "") -> int:
        self.private_photos.append((chat_id, data, caption))
        return next(self._message_ids)

    def texts_in(self, thread_id: int) -> list[str]:
        return [text for tid, text in self.texts if tid == thread_id]


def wa_message(
    remote_jid: str,
    message: dict[str, Any],
    msg_id: str = "MSG1",
    participant: str | None = None,
    from_me: bool = False,
    push_name: str | None = None,
) -> dict[str, Any]:
    """Build a Baileys-shaped raw message."""
    key: dict[str, Any] = {"remoteJid": remote_jid, "id": msg_id, "fromMe": from_me}
    if participant:
        key["participant"] = participant
    raw: dict[str, Any] = {"key": key, "message": message}
    if push_name:
        raw["pushName"] = push_name
    return raw


# =============================================================================
# FIXTURES
# =============================================================================


def build_config(tmp_path, **overrides: Any) -> ConfigManager:
    data: dict[str, Any] = {
        "whatsapp": {
            "auth_dir": str(tmp_path / "auth"),
            "reconnect_delay": 0,
            "connect_timeout": 30.0,
            "qr_timeout": 30.0,
            "max_reconnect_attempts": 2,
        },
        "telegram": {"chat_id": OWNER_CHAT},
        "pipeline": {
            "temp_dir": str(tmp_path / "temp"),
            "read_receipt_delay": 30.0,
            "shutdown_grace": 1.0,
            "thread_verify_ttl": 300.0,
        },
        "store": {"db_path": str(tmp_path / "bridge.db")},
    }
    for dotted, value in overrides.items():
        section, key = dotted.split("__", 1)
        data.setdefault(section, {})[key] = value
    return ConfigManager.from_dict(data)


@pytest.fixture
def config(tmp_path) -> ConfigManager:
    return build_config(tmp_path)


@pytest_asyncio.fixture
async def storage(tmp_path):
    engine = StorageEngine(str(tmp_path / "bridge.db"))
    await engine.initialize()
    yield engine
    await engine.dispose()


@pytest.fixture
def hub() -> SignalHub:
    return SignalHub()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sockets() -> FakeSocketFactory:
    return FakeSocketFactory()


@pytest_asyncio.fixture
async def app(config, gateway, sockets):
    """A started bridge whose WhatsApp connection is open."""
    bridge = BridgeApp(config, socket_factory=sockets, gateway=gateway)
    await bridge.start()
    await sockets.latest.open()
    # let the post-open sync finish
    for _ in range(20):
        if not bridge._tasks:
            break
        await asyncio.sleep(0.05)
    yield bridge
    await bridge.shutdown()


def message_id_of(gateway: FakeGateway, fragment: str) -> int:
    """Telegram id of the first text containing fragment."""
    return next(mid for mid, text in gateway.text_ids.items() if fragment in text)
