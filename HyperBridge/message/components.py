"""
消息载荷 - 桥接两端都能表达的消息内容
Message payloads - the content both sides of the bridge can express.

每条消息恰好对应一种 PayloadKind。
Every message maps to exactly one PayloadKind.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator


class PayloadKind(str, Enum):
    """载荷类型枚举 / Payload kind enum."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    # 以 GIF 方式循环播放的视频
    ANIMATION = "animation"
    # 圆形视频消息
    VIDEO_NOTE = "video_note"
    AUDIO = "audio"
    # 语音消息
    VOICE = "voice"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT = "contact"


MEDIA_KINDS = frozenset(
    {
        PayloadKind.IMAGE,
        PayloadKind.VIDEO,
        PayloadKind.ANIMATION,
        PayloadKind.VIDEO_NOTE,
        PayloadKind.AUDIO,
        PayloadKind.VOICE,
        PayloadKind.DOCUMENT,
        PayloadKind.STICKER,
    }
)


class BasePayload(BaseModel):
    """
    载荷基类
    Base payload.
    """

    kind: PayloadKind
    caption: str = ""

    def to_plain_text(self) -> str:
        """转为纯文本表示 / Convert to plain text representation."""
        return self.caption

    def to_dict(self) -> dict[str, Any]:
        """转为字典 / Convert to dictionary."""
        return self.model_dump()


class TextPayload(BasePayload):
    """纯文本 / Plain text."""

    kind: PayloadKind = PayloadKind.TEXT
    text: str = ""
    # Telegram 剧透实体
    spoiler: bool = False

    def to_plain_text(self) -> str:
        return self.text


class MediaPayload(BasePayload):
    """
    媒体载荷（图片、视频、语音、文件、贴纸等）
    Media payload (image, video, voice, file, sticker, ...).
    """

    mimetype: str = ""
    file_name: str = ""
    # Telegram 端的文件 ID；WhatsApp 端为空
    file_id: str = ""
    seconds: int = 0
    title: str = ""
    # 动态贴纸
    animated: bool = False
    # 剧透媒体，发往 WhatsApp 时为一次性查看
    view_once: bool = False

    @field_validator("kind")
    @classmethod
    def _media_kind(cls, value: PayloadKind) -> PayloadKind:
        if value not in MEDIA_KINDS:
            raise ValueError(f"{value.value} is not a media kind")
        return value

    def to_plain_text(self) -> str:
        label = f"[{self.kind.value}]"
        return f"{label} {self.caption}" if self.caption else label


class LocationPayload(BasePayload):
    """位置 / Location."""

    kind: PayloadKind = PayloadKind.LOCATION
    latitude: float = 0.0
    longitude: float = 0.0
    name: str = ""
    address: str = ""

    def to_plain_text(self) -> str:
        return f"[location] {self.latitude},{self.longitude}"


class ContactPayload(BasePayload):
    """联系人名片 / Contact card."""

    kind: PayloadKind = PayloadKind.CONTACT
    display_name: str = ""
    phone: str = ""
    first_name: str = ""
    last_name: str = ""
    vcard: str = ""

    def to_plain_text(self) -> str:
        return f"[contact] {self.display_name}"


Payload = TextPayload | MediaPayload | LocationPayload | ContactPayload
