"""
网关基类 - 论坛话题平台的抽象
Gateway base - abstraction of the forum-topic platform.

网关负责话题的创建/校验/改名、向话题投递内容、下载文件，
并把话题中的新消息和私聊命令回调给系统。
The gateway creates, verifies and renames threads, delivers content into
threads, downloads files, and calls back into the system for new thread
messages and private-chat commands.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from HyperBridge.message.components import Payload, PayloadKind

logger = logging.getLogger(__name__)


class GatewayStatus(Enum):
    """网关状态枚举 / Gateway status enum."""

    INITIALIZING = auto()
    RUNNING = auto()
    ERROR = auto()
    STOPPED = auto()


@dataclass
class GatewayMetadata:
    """
    网关元数据 - 描述一个网关实例的基本信息
    Gateway metadata - describes basic info about a gateway instance.
    """

    adapter_type: str = ""
    instance_name: str = ""
    description: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ThreadMessage:
    """
    话题内收到的一条消息
    A message received inside a forum thread.
    """

    message_id: int
    chat_id: int
    thread_id: int | None
    payload: Payload
    sender_id: int | None = None
    sender_name: str = ""
    reply_to_message_id: int | None = None
    raw: Any = None


@dataclass
class CommandMessage:
    """
    机器人私聊中收到的一条文本
    A text received in the bot's private chat.
    """

    chat_id: int
    text: str
    sender_id: int | None = None
    message_id: int | None = None

    @property
    def command(self) -> str:
        """"/send@bot 123 hi" -> "send"."""
        if not self.text.startswith("/"):
            return ""
        head = self.text.split(maxsplit=1)[0][1:]
        return head.split("@", 1)[0].lower()

    @property
    def args(self) -> list[str]:
        return self.text.split()[1:]


MessageHandler = Callable[[ThreadMessage], Awaitable[None]]
CommandHandler = Callable[[CommandMessage], Awaitable[None]]


class ThreadGateway(ABC):
    """
    话题网关抽象基类
    Thread gateway abstract base.

    所有 send_* 方法返回平台上新消息的 ID。
    Every send_* method returns the platform id of the new message.
    """

    def __init__(self, config: dict[str, Any]) -> None:
        self._config = config
        self._status = GatewayStatus.INITIALIZING
        self._on_message: MessageHandler | None = None
        self._on_command: CommandHandler | None = None
        self._metadata = GatewayMetadata()

    @property
    def status(self) -> GatewayStatus:
        """获取当前状态 / Get current status."""
        return self._status

    @property
    def metadata(self) -> GatewayMetadata:
        """获取网关元数据 / Get gateway metadata."""
        return self._metadata

    def set_message_handler(self, handler: MessageHandler) -> None:
        """设置话题消息回调 / Set the thread message callback."""
        self._on_message = handler

    def set_command_handler(self, handler: CommandHandler) -> None:
        """设置私聊命令回调 / Set the private command callback."""
        self._on_command = handler

    async def submit_message(self, message: ThreadMessage) -> None:
        """
        提交话题消息到系统
        Submit a thread message to the system.
        """
        if self._on_message is not None:
            await self._on_message(message)
        else:
            logger.warning("网关 %s 未设置消息处理器", self._metadata.instance_name)

    async def submit_command(self, command: CommandMessage) -> None:
        """提交私聊命令到系统 / Submit a private command to the system."""
        if self._on_command is not None:
            await self._on_command(command)

    # ==================== 生命周期 / Lifecycle ====================

    @abstractmethod
    async def launch(self) -> None:
        """启动网关并开始接收更新 / Launch the gateway and start receiving updates."""
        ...

    @abstractmethod
    async def halt(self) -> None:
        """安全停止网关 / Safely halt the gateway."""
        ...

    # ==================== 话题 / Threads ====================

    @abstractmethod
    async def create_thread(self, name: str, icon_color: int | None = None) -> int:
        """创建话题并返回话题 ID / Create a thread and return its id."""
        ...

    @abstractmethod
    async def thread_exists(self, thread_id: int) -> bool:
        """话题是否仍然存在 / Whether the thread still exists."""
        ...

    @abstractmethod
    async def rename_thread(self, thread_id: int, name: str) -> None:
        """重命名话题 / Rename a thread."""
        ...

    # ==================== 投递 / Delivery ====================

    @abstractmethod
    async def send_text(self, thread_id: int, text: str, parse_mode: str | None = None) -> int:
        """向话题发送文本 / Send text into a thread."""
        ...

    @abstractmethod
    async def send_media(
        self,
        thread_id: int,
        kind: PayloadKind,
        data: bytes | str,
        caption: str = "",
        file_name: str = "",
        title: str = "",
    ) -> int:
        """
        向话题发送媒体；data 为字节或 URL
        Send media into a thread; data is bytes or a URL.
        """
        ...

    @abstractmethod
    async def send_location(self, thread_id: int, latitude: float, longitude: float) -> int:
        """向话题发送位置 / Send a location into a thread."""
        ...

    @abstractmethod
    async def send_contact(
        self, thread_id: int, phone: str, first_name: str, last_name: str = ""
    ) -> int:
        """向话题发送联系人 / Send a contact into a thread."""
        ...

    @abstractmethod
    async def pin_message(self, message_id: int) -> None:
        """置顶群组中的消息 / Pin a message in the group."""
        ...

    @abstractmethod
    async def set_reaction(self, chat_id: int, message_id: int, emoji: str) -> None:
        """给消息加表情回应 / React to a message."""
        ...

    @abstractmethod
    async def download_file(self, file_id: str) -> bytes:
        """下载文件内容 / Download a file's content."""
        ...

    # ==================== 私聊 / Private chats ====================

    @abstractmethod
    async def send_private(self, chat_id: int | str, text: str, parse_mode: str | None = None) -> int:
        """向私聊或频道发送文本 / Send text to a private chat or channel."""
        ...

    @abstractmethod
    async def send_private_photo(self, chat_id: int | str, data: bytes, caption: str = "") -> int:
        """向私聊或频道发送图片 / Send a photo to a private chat or channel."""
        ...

    async def register_commands(self, commands: list[tuple[str, str]]) -> None:
        """注册命令菜单（可选） / Register the command menu (optional)."""
        return None
