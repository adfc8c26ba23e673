"""
Telegram 网关适配器 - 对接 Telegram Bot API 的论坛话题
Telegram gateway adapter - forum topics through the Telegram Bot API.
"""

from __future__ import annotations

import logging
from typing import Any

from telegram import BotCommand, Message, MessageEntity, Update
from telegram.constants import ChatAction
from telegram.error import BadRequest
from telegram.ext import Application, ApplicationBuilder, ContextTypes, MessageHandler, filters

from HyperBridge.gateway.base import (
    CommandMessage,
    GatewayMetadata,
    GatewayStatus,
    ThreadGateway,
    ThreadMessage,
)
from HyperBridge.message.components import (
    ContactPayload,
    LocationPayload,
    MediaPayload,
    Payload,
    PayloadKind,
    TextPayload,
)

logger = logging.getLogger(__name__)


def _has_spoiler(entities: Any) -> bool:
    return any(entity.type == MessageEntity.SPOILER for entity in entities or ())


def message_to_payload(message: Message) -> Payload | None:
    """
    把 Telegram 消息分类为载荷，无法识别时返回 None
    Classify a Telegram message into a payload; None when unrecognised.
    """
    caption = message.caption or ""
    spoiler = bool(message.has_media_spoiler) or _has_spoiler(message.caption_entities)

    if message.photo:
        return MediaPayload(
            kind=PayloadKind.IMAGE,
            caption=caption,
            file_id=message.photo[-1].file_id,
            file_name="photo.jpg",
            mimetype="image/jpeg",
            view_once=spoiler,
        )
    if message.video:
        return MediaPayload(
            kind=PayloadKind.VIDEO,
            caption=caption,
            file_id=message.video.file_id,
            file_name=message.video.file_name or "video.mp4",
            mimetype=message.video.mime_type or "video/mp4",
            seconds=message.video.duration or 0,
            view_once=spoiler,
        )
    if message.animation:
        return MediaPayload(
            kind=PayloadKind.ANIMATION,
            caption=caption,
            file_id=message.animation.file_id,
            file_name=message.animation.file_name or "animation.mp4",
            mimetype=message.animation.mime_type or "video/mp4",
            view_once=spoiler,
        )
    if message.video_note:
        return MediaPayload(
            kind=PayloadKind.VIDEO_NOTE,
            file_id=message.video_note.file_id,
            file_name="video_note.mp4",
            mimetype="video/mp4",
            seconds=message.video_note.duration or 0,
            view_once=spoiler,
        )
    if message.voice:
        return MediaPayload(
            kind=PayloadKind.VOICE,
            caption=caption,
            file_id=message.voice.file_id,
            file_name="voice.ogg",
            mimetype="audio/ogg; codecs=opus",
            seconds=message.voice.duration or 0,
        )
    if message.audio:
        return MediaPayload(
            kind=PayloadKind.AUDIO,
            caption=caption,
            file_id=message.audio.file_id,
            file_name=message.audio.file_name or "audio.mp3",
            mimetype=message.audio.mime_type or "",
            title=message.audio.title or "",
            seconds=message.audio.duration or 0,
        )
    if message.document:
        return MediaPayload(
            kind=PayloadKind.DOCUMENT,
            caption=caption,
            file_id=message.document.file_id,
            file_name=message.document.file_name or "document",
            mimetype=message.document.mime_type or "",
        )
    if message.sticker:
        sticker = message.sticker
        if sticker.is_video:
            file_name = "sticker.webm"
        elif sticker.is_animated:
            file_name = "sticker.tgs"
        else:
            file_name = "sticker.webp"
        return MediaPayload(
            kind=PayloadKind.STICKER,
            file_id=sticker.file_id,
            file_name=file_name,
            animated=bool(sticker.is_animated or sticker.is_video),
        )
    if message.location:
        return LocationPayload(
            latitude=message.location.latitude,
            longitude=message.location.longitude,
        )
    if message.contact:
        contact = message.contact
        first = contact.first_name or ""
        last = contact.last_name or ""
        return ContactPayload(
            display_name=f"{first} {last}".strip() or contact.phone_number,
            phone=contact.phone_number or "",
            first_name=first,
            last_name=last,
            vcard=contact.vcard or "",
        )
    if message.text:
        return TextPayload(text=message.text, spoiler=_has_spoiler(message.entities))
    return None


class TelegramGateway(ThreadGateway):
    """
    Telegram 网关 - 通过 python-telegram-bot 库连接
    Telegram gateway - connects via the python-telegram-bot library.

    目标群组必须是开启了话题功能的超级群组，机器人需要管理话题的权限。
    The target group must be a forum-enabled supergroup and the bot needs the
    manage-topics right.
    """

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        self._token = config.get("bot_token", "")
        self._chat_id = int(config.get("chat_id") or 0)
        self._proxy = config.get("proxy", "")
        self._application: Application | None = None
        self._metadata = GatewayMetadata(
            adapter_type="telegram",
            instance_name=config.get("name", "telegram"),
            description="Telegram forum-topic gateway",
        )

    @property
    def chat_id(self) -> int:
        return self._chat_id

    @property
    def bot(self) -> Any:
        if self._application is None:
            raise RuntimeError("Telegram 网关尚未启动")
        return self._application.bot

    async def launch(self) -> None:
        """
        启动 Telegram Bot 轮询（开始轮询后立即返回）
        Start Telegram Bot polling (returns once polling has started).
        """
        builder = ApplicationBuilder().token(self._token)
        if self._proxy:
            builder = builder.proxy(self._proxy).get_updates_proxy(self._proxy)

        self._application = builder.build()

        self._application.add_handler(
            MessageHandler(
                filters.Chat(chat_id=self._chat_id) & filters.IS_TOPIC_MESSAGE,
                self._handle_thread_update,
            )
        )
        self._application.add_handler(
            MessageHandler(filters.ChatType.PRIVATE & filters.TEXT, self._handle_private_update)
        )

        await self._application.initialize()
        await self._application.start()
        await self._application.updater.start_polling()

        self._status = GatewayStatus.RUNNING
        logger.info("Telegram 机器人开始轮询 (群组=%s)", self._chat_id)

    async def halt(self) -> None:
        """停止 Bot / Stop the bot."""
        if self._application is None:
            return
        self._status = GatewayStatus.STOPPED
        try:
            if self._application.updater and self._application.updater.running:
                await self._application.updater.stop()
            if self._application.running:
                await self._application.stop()
            await self._application.shutdown()
        finally:
            self._application = None
        logger.info("Telegram 机器人已停止")

    async def register_commands(self, commands: list[tuple[str, str]]) -> None:
        await self.bot.set_my_commands([BotCommand(name, desc) for name, desc in commands])
        logger.info("已注册 %d 个 Telegram 命令", len(commands))

    # ==================== 话题 / Threads ====================

    async def create_thread(self, name: str, icon_color: int | None = None) -> int:
        topic = await self.bot.create_forum_topic(
            chat_id=self._chat_id, name=name[:128], icon_color=icon_color
        )
        return topic.message_thread_id

    async def thread_exists(self, thread_id: int) -> bool:
        try:
            await self.bot.send_chat_action(
                chat_id=self._chat_id,
                action=ChatAction.TYPING,
                message_thread_id=thread_id,
            )
        except BadRequest as exc:
            text = str(exc).lower()
            if "thread" in text or "topic" in text:
                return False
            raise
        return True

    async def rename_thread(self, thread_id: int, name: str) -> None:
        await self.bot.edit_forum_topic(
            chat_id=self._chat_id, message_thread_id=thread_id, name=name[:128]
        )

    # ==================== 投递 / Delivery ====================

    async def send_text(self, thread_id: int, text: str, parse_mode: str | None = None) -> int:
        sent = await self.bot.send_message(
            chat_id=self._chat_id,
            text=text,
            message_thread_id=thread_id,
            parse_mode=parse_mode,
        )
        return sent.message_id

    async def send_media(
        self,
        thread_id: int,
        kind: PayloadKind,
        data: bytes | str,
        caption: str = "",
        file_name: str = "",
        title: str = "",
    ) -> int:
        common: dict[str, Any] = {"chat_id": self._chat_id, "message_thread_id": thread_id}
        caption = caption or None

        if kind == PayloadKind.IMAGE:
            sent = await self.bot.send_photo(photo=data, caption=caption, **common)
        elif kind == PayloadKind.VIDEO:
            sent = await self.bot.send_video(video=data, caption=caption, **common)
        elif kind == PayloadKind.ANIMATION:
            sent = await self.bot.send_animation(animation=data, caption=caption, **common)
        elif kind == PayloadKind.VIDEO_NOTE:
            sent = await self.bot.send_video_note(video_note=data, **common)
        elif kind == PayloadKind.VOICE:
            sent = await self.bot.send_voice(voice=data, caption=caption, **common)
        elif kind == PayloadKind.AUDIO:
            sent = await self.bot.send_audio(
                audio=data, caption=caption, title=title or None, filename=file_name or None, **common
            )
        elif kind == PayloadKind.DOCUMENT:
            sent = await self.bot.send_document(
                document=data, caption=caption, filename=file_name or None, **common
            )
        elif kind == PayloadKind.STICKER:
            sent = await self.bot.send_sticker(sticker=data, **common)
        else:
            raise ValueError(f"不是媒体类型: {kind.value}")
        return sent.message_id

    async def send_location(self, thread_id: int, latitude: float, longitude: float) -> int:
        sent = await self.bot.send_location(
            chat_id=self._chat_id,
            latitude=latitude,
            longitude=longitude,
            message_thread_id=thread_id,
        )
        return sent.message_id

    async def send_contact(
        self, thread_id: int, phone: str, first_name: str, last_name: str = ""
    ) -> int:
        sent = await self.bot.send_contact(
            chat_id=self._chat_id,
            phone_number=phone,
            first_name=first_name,
            last_name=last_name or None,
            message_thread_id=thread_id,
        )
        return sent.message_id

    async def pin_message(self, message_id: int) -> None:
        await self.bot.pin_chat_message(
            chat_id=self._chat_id, message_id=message_id, disable_notification=True
        )

    async def set_reaction(self, chat_id: int, message_id: int, emoji: str) -> None:
        await self.bot.set_message_reaction(chat_id=chat_id, message_id=message_id, reaction=emoji)

    async def download_file(self, file_id: str) -> bytes:
        tg_file = await self.bot.get_file(file_id)
        data = await tg_file.download_as_bytearray()
        return bytes(data)

    # ==================== 私聊 / Private chats ====================

    async def send_private(self, chat_id: int | str, text: str, parse_mode: str | None = None) -> int:
        sent = await self.bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode)
        return sent.message_id

    async def send_private_photo(self, chat_id: int | str, data: bytes, caption: str = "") -> int:
        sent = await self.bot.send_photo(chat_id=chat_id, photo=data, caption=caption or None)
        return sent.message_id

    # ==================== 更新处理 / Update handling ====================

    async def _handle_thread_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理话题内的消息
        Handle a message posted inside a topic.
        """
        message = update.message
        if message is None or message.from_user is None or message.from_user.is_bot:
            return

        payload = message_to_payload(message)
        if payload is None:
            logger.info("忽略无法识别的 Telegram 消息 %s", message.message_id)
            return

        # 话题中的"回复"默认指向话题创建消息，这种情况不算真正的回复
        reply_to = message.reply_to_message
        reply_to_id = None
        if reply_to is not None and reply_to.message_id != message.message_thread_id:
            reply_to_id = reply_to.message_id

        await self.submit_message(
            ThreadMessage(
                message_id=message.message_id,
                chat_id=message.chat_id,
                thread_id=message.message_thread_id,
                payload=payload,
                sender_id=message.from_user.id,
                sender_name=message.from_user.full_name,
                reply_to_message_id=reply_to_id,
                raw=message,
            )
        )

    async def _handle_private_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理私聊文本 / Handle a private-chat text."""
        message = update.message
        if message is None or not message.text:
            return
        await self.submit_command(
            CommandMessage(
                chat_id=message.chat_id,
                text=message.text,
                sender_id=message.from_user.id if message.from_user else None,
                message_id=message.message_id,
            )
        )
