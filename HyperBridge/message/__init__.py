"""
消息模型模块 - 两端共用的载荷类型与 WhatsApp 消息分类
Message model module - payload types shared by both sides plus WhatsApp classification.

采用 Pydantic v2 描述载荷。
Payloads are described with Pydantic v2.
"""

from HyperBridge.message.components import (
    MEDIA_KINDS,
    BasePayload,
    ContactPayload,
    LocationPayload,
    MediaPayload,
    Payload,
    PayloadKind,
    TextPayload,
)

__all__ = [
    "MEDIA_KINDS",
    "BasePayload",
    "ContactPayload",
    "LocationPayload",
    "MediaPayload",
    "Payload",
    "PayloadKind",
    "TextPayload",
]
