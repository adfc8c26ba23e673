"""
WhatsApp 消息分类 - 把 Baileys 形状的原始消息映射为载荷
WhatsApp classification - maps raw Baileys-shaped messages onto payloads.
"""

from __future__ import annotations

import re
from typing import Any

from HyperBridge.errors import UnsupportedPayloadError
from HyperBridge.message.components import (
    ContactPayload,
    LocationPayload,
    MediaPayload,
    Payload,
    PayloadKind,
    TextPayload,
)

STATUS_JID = "status@broadcast"
# 通话记录使用的伪会话
CALL_LOG_JID = "call@broadcast"
GROUP_SUFFIX = "@g.us"
USER_SUFFIX = "@s.whatsapp.net"

# 包装层，内部还有一层 {"message": {...}}
_WRAPPERS = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "documentWithCaptionMessage",
)

# 不承载内容的附加字段
_METADATA_KEYS = frozenset({"messageContextInfo", "senderKeyDistributionMessage"})

_VCARD_TEL = re.compile(r"^TEL[^:]*:(.*)$", re.MULTILINE)
_VCARD_FN = re.compile(r"^FN:(.*)$", re.MULTILINE)


def is_group(jid: str) -> bool:
    return jid.endswith(GROUP_SUFFIX)


def is_status(jid: str) -> bool:
    return jid == STATUS_JID


def is_call_log(jid: str) -> bool:
    return jid == CALL_LOG_JID


def phone_of(jid: str) -> str:
    """"123:4@s.whatsapp.net" -> "123"."""
    return jid.split("@", 1)[0].split(":", 1)[0]


def to_jid(number: str) -> str:
    """
    把号码转换为个人会话 JID，已是 JID 时原样返回
    Turn a phone number into a personal JID; JIDs pass through unchanged.
    """
    number = number.strip()
    if "@" in number:
        return number
    digits = re.sub(r"\D", "", number)
    return f"{digits}{USER_SUFFIX}"


def unwrap(message: dict[str, Any] | None) -> dict[str, Any]:
    """
    去掉临时消息、一次性查看等包装层
    Strip the ephemeral / view-once / document-with-caption wrappers.
    """
    content = message or {}
    while True:
        for wrapper in _WRAPPERS:
            inner = content.get(wrapper)
            if isinstance(inner, dict) and isinstance(inner.get("message"), dict):
                content = inner["message"]
                break
        else:
            return content


def is_view_once(message: dict[str, Any] | None) -> bool:
    content = message or {}
    return any(key.startswith("viewOnceMessage") for key in content)


def extract_text(message: dict[str, Any] | None) -> str:
    """
    取出正文或媒体说明
    Extract the body text or the media caption.
    """
    content = unwrap(message)
    if content.get("conversation"):
        return content["conversation"]
    extended = content.get("extendedTextMessage") or {}
    if extended.get("text"):
        return extended["text"]
    for key in ("imageMessage", "videoMessage", "documentMessage", "audioMessage"):
        caption = (content.get(key) or {}).get("caption")
        if caption:
            return caption
    return ""


def parse_vcard(vcard: str) -> tuple[str, str]:
    """
    从 vCard 中解析 (显示名, 电话)
    Parse (display name, phone) out of a vCard.
    """
    name_match = _VCARD_FN.search(vcard or "")
    tel_match = _VCARD_TEL.search(vcard or "")
    name = name_match.group(1).strip() if name_match else ""
    phone = tel_match.group(1).strip() if tel_match else ""
    return name, phone


def build_vcard(display_name: str, phone: str, first_name: str = "", last_name: str = "") -> str:
    """构造 3.0 版 vCard / Build a version 3.0 vCard."""
    return (
        "BEGIN:VCARD\n"
        "VERSION:3.0\n"
        f"N:{last_name};{first_name};;;\n"
        f"FN:{display_name}\n"
        f"TEL;TYPE=CELL:{phone}\n"
        "END:VCARD"
    )


def _media(kind: PayloadKind, node: dict[str, Any], view_once: bool, **extra: Any) -> MediaPayload:
    return MediaPayload(
        kind=kind,
        caption=node.get("caption") or "",
        mimetype=node.get("mimetype") or "",
        seconds=int(node.get("seconds") or 0),
        view_once=view_once,
        **extra,
    )


def classify(raw: dict[str, Any]) -> Payload:
    """
    把一条原始 WhatsApp 消息分类为唯一的载荷
    Classify one raw WhatsApp message into exactly one payload.

    Raises:
        UnsupportedPayloadError: 没有对应转换规则的消息类型。
            A message kind with no translation rule.
    """
    message = raw.get("message") or {}
    view_once = is_view_once(message)
    content = unwrap(message)

    ptv = content.get("ptvMessage")
    video = content.get("videoMessage")
    if ptv is not None or (video and video.get("ptv")):
        return _media(PayloadKind.VIDEO_NOTE, ptv or video, view_once)

    image = content.get("imageMessage")
    if image:
        return _media(PayloadKind.IMAGE, image, view_once)

    if video:
        kind = PayloadKind.ANIMATION if video.get("gifPlayback") else PayloadKind.VIDEO
        return _media(kind, video, view_once)

    audio = content.get("audioMessage")
    if audio:
        kind = PayloadKind.VOICE if audio.get("ptt") else PayloadKind.AUDIO
        return _media(kind, audio, view_once)

    document = content.get("documentMessage")
    if document:
        return _media(
            PayloadKind.DOCUMENT,
            document,
            view_once,
            file_name=document.get("fileName") or "",
            title=document.get("title") or "",
        )

    sticker = content.get("stickerMessage")
    if sticker:
        return _media(
            PayloadKind.STICKER,
            sticker,
            view_once,
            animated=bool(sticker.get("isAnimated")),
        )

    location = content.get("locationMessage") or content.get("liveLocationMessage")
    if location:
        return LocationPayload(
            latitude=float(location.get("degreesLatitude") or 0.0),
            longitude=float(location.get("degreesLongitude") or 0.0),
            name=location.get("name") or "",
            address=location.get("address") or "",
        )

    contact = content.get("contactMessage")
    if contact is None and content.get("contactsArrayMessage"):
        contacts = content["contactsArrayMessage"].get("contacts") or []
        contact = contacts[0] if contacts else None
    if contact:
        vcard = contact.get("vcard") or ""
        vcard_name, phone = parse_vcard(vcard)
        return ContactPayload(
            display_name=contact.get("displayName") or vcard_name or "Unknown Contact",
            phone=phone,
            vcard=vcard,
        )

    text = extract_text(content)
    if text:
        return TextPayload(text=text)

    kinds = [key for key in content if key not in _METADATA_KEYS]
    raise UnsupportedPayloadError(kinds[0] if kinds else "empty")
