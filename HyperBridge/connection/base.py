"""
WhatsApp 套接字抽象
WhatsApp socket abstraction.

具体的协议客户端不在本项目中实现：它通过配置项 whatsapp.socket_factory
("package.module:callable") 注入，工厂接收凭据目录并返回 MessengerSocket。
The concrete protocol client is not part of this project: it is injected via
the whatsapp.socket_factory setting ("package.module:callable"); the factory
receives the credential directory and returns a MessengerSocket.

原始消息保持 Baileys 的字典形状（key / message / pushName / messageTimestamp）。
Raw messages keep the Baileys dict shape (key / message / pushName / messageTimestamp).
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SocketEvent(str, Enum):
    """套接字事件 / Socket events."""

    CONNECTION_UPDATE = "connection.update"
    CREDS_UPDATE = "creds.update"
    MESSAGES_UPSERT = "messages.upsert"
    CALL = "call"
    CONTACTS_UPDATE = "contacts.update"
    CONTACTS_UPSERT = "contacts.upsert"


@dataclass
class ConnectionUpdate:
    """
    connection.update 事件载荷
    Payload of a connection.update event.

    connection 为 "connecting" / "open" / "close"；qr 为登录二维码内容；
    关闭时 status_code 携带断开原因码。
    connection is "connecting" / "open" / "close"; qr carries the login code;
    status_code carries the disconnect code on close.
    """

    connection: str | None = None
    qr: str | None = None
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class MessageKey:
    """消息键 / Message key."""

    remote_jid: str
    id: str
    from_me: bool = False
    participant: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageKey:
        return cls(
            remote_jid=data.get("remoteJid", ""),
            id=data.get("id", ""),
            from_me=bool(data.get("fromMe", False)),
            participant=data.get("participant"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "remoteJid": self.remote_jid,
            "id": self.id,
            "fromMe": self.from_me,
        }
        if self.participant:
            data["participant"] = self.participant
        return data


EventHandler = Callable[[Any], Any]


class MessengerSocket(ABC):
    """
    WhatsApp 套接字基类
    WhatsApp socket base class.

    子类负责协议细节，并通过 emit() 派发事件。
    Subclasses implement the protocol and dispatch events through emit().
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventHandler]] = {}
        # 已登录账号，例如 {"id": "123:4@s.whatsapp.net", "name": "..."}
        self.user: dict[str, Any] | None = None
        # 联系人快照 jid -> {"id", "name", "notify", "verifiedName"}
        self.contacts: dict[str, dict[str, Any]] = {}

    def on(self, event: SocketEvent | str, handler: EventHandler) -> None:
        """注册事件监听器 / Register an event listener."""
        key = event.value if isinstance(event, SocketEvent) else event
        self._listeners.setdefault(key, []).append(handler)

    def remove_all_listeners(self) -> None:
        """移除全部监听器 / Remove every listener."""
        self._listeners.clear()

    def listener_count(self, event: SocketEvent | str) -> int:
        key = event.value if isinstance(event, SocketEvent) else event
        return len(self._listeners.get(key, []))

    async def emit(self, event: SocketEvent | str, payload: Any = None) -> None:
        """
        派发事件；监听器异常只记录日志
        Dispatch an event; listener exceptions are only logged.
        """
        key = event.value if isinstance(event, SocketEvent) else event
        for handler in list(self._listeners.get(key, [])):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("套接字事件 %s 的监听器出错", key)

    @abstractmethod
    async def connect(self) -> None:
        """开始握手 / Start the handshake."""
        ...

    @abstractmethod
    async def end(self) -> None:
        """关闭传输 / Close the transport."""
        ...

    @abstractmethod
    async def send_message(self, jid: str, content: dict[str, Any]) -> dict[str, Any] | None:
        """
        发送消息，content 为 Baileys 风格的内容字典（text / image / sticker ...）
        Send a message; content is a Baileys-style content dict.
        """
        ...

    @abstractmethod
    async def read_messages(self, keys: list[MessageKey]) -> None:
        """发送已读回执 / Send read receipts."""
        ...

    @abstractmethod
    async def send_presence(self, presence: str, jid: str | None = None) -> None:
        """更新在线状态（available / composing / recording） / Update presence."""
        ...

    @abstractmethod
    async def download_media(self, message: dict[str, Any]) -> bytes:
        """下载消息中的媒体 / Download the media of a message."""
        ...

    @abstractmethod
    async def group_metadata(self, jid: str) -> dict[str, Any]:
        """群组元数据（至少包含 subject） / Group metadata (at least subject)."""
        ...

    async def fetch_status(self, jid: str) -> str | None:
        """联系人签名 / Contact about text."""
        return None

    async def profile_picture_url(self, jid: str) -> str | None:
        """头像地址 / Profile picture URL."""
        return None


SocketFactory = Callable[[str], MessengerSocket]


def load_socket_factory(path: str) -> SocketFactory:
    """
    从 "package.module:callable" 加载套接字工厂
    Load a socket factory from "package.module:callable".
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"套接字工厂格式应为 'module:callable': {path!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{path!r} 不是可调用对象")
    return factory
