"""
消息同步管线 - WhatsApp 与 Telegram 话题之间的双向转发
Message synchronization pipeline - the bidirectional relay between WhatsApp
and Telegram threads.

每条消息在独立的任务中处理，单条消息的失败不会影响其他消息。
Every message is handled in its own task; one message failing never affects
another.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from datetime import datetime
from typing import Any

from HyperBridge.config.manager import ConfigManager
from HyperBridge.connection.base import MessageKey, SocketEvent
from HyperBridge.connection.manager import ConnectionManager
from HyperBridge.directory.service import BridgeDirectory, is_meaningful_name
from HyperBridge.errors import BridgeError, TransferError, UnsupportedPayloadError
from HyperBridge.gateway.base import ThreadGateway, ThreadMessage
from HyperBridge.kernel.signal_hub import Signal, SignalHub, SignalKind
from HyperBridge.message.components import (
    MEDIA_KINDS,
    ContactPayload,
    LocationPayload,
    MediaPayload,
    Payload,
    PayloadKind,
    TextPayload,
)
from HyperBridge.message.whatsapp import (
    CALL_LOG_JID,
    build_vcard,
    classify,
    is_call_log,
    is_group,
    is_status,
    phone_of,
)
from HyperBridge.pipeline.media import MediaTranscoder
from HyperBridge.pipeline.receipts import ReadReceiptQueue
from HyperBridge.pipeline.status_index import StatusIndex

logger = logging.getLogger(__name__)

REACT_OK = "👍"
REACT_FAILED = "❌"
REACT_STATUS_OK = "✅"
SPOILER_MARK = "🫥"
STATUS_MISS_NOTICE = "❌ Cannot find original status message to reply to"
STICKER_PLACEHOLDER = "[Sticker]"
CAPTION_LIMIT = 1024
PRESENCE_INTERVAL = 1.0

_DEFAULT_FILE_NAMES = {
    PayloadKind.IMAGE: "image.jpg",
    PayloadKind.VIDEO: "video.mp4",
    PayloadKind.ANIMATION: "animation.mp4",
    PayloadKind.VIDEO_NOTE: "video_note.mp4",
    PayloadKind.AUDIO: "audio.ogg",
    PayloadKind.VOICE: "voice.ogg",
    PayloadKind.DOCUMENT: "document",
    PayloadKind.STICKER: "sticker.webp",
}


class MessagePipeline:
    """
    消息同步管线
    Message synchronization pipeline.
    """

    def __init__(
        self,
        config: ConfigManager,
        connection: ConnectionManager,
        directory: BridgeDirectory,
        gateway: ThreadGateway,
        hub: SignalHub,
        transcoder: MediaTranscoder,
    ) -> None:
        self._config = config
        self._connection = connection
        self._directory = directory
        self._gateway = gateway
        self._hub = hub
        self._transcoder = transcoder

        self._receipts = ReadReceiptQueue(
            self._send_receipts, delay=float(config.get("pipeline.read_receipt_delay", 2.0))
        )
        self._status_index = StatusIndex()
        self._tasks: set[asyncio.Task] = set()
        self._accepting = True
        self._call_seen: dict[str, float] = {}
        self._presence_at: dict[str, float] = {}

    @property
    def status_index(self) -> StatusIndex:
        return self._status_index

    @property
    def receipts(self) -> ReadReceiptQueue:
        return self._receipts

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def attach(self) -> None:
        """
        挂载到套接字、网关和信号中枢
        Wire into the socket, the gateway and the signal hub.
        """
        self._connection.subscribe(SocketEvent.MESSAGES_UPSERT, self._on_messages_upsert)
        self._connection.subscribe(SocketEvent.CALL, self._on_calls)
        self._connection.subscribe(SocketEvent.CONTACTS_UPDATE, self._on_contacts_update)
        self._connection.subscribe(SocketEvent.CONTACTS_UPSERT, self._on_contacts_upsert)
        self._gateway.set_message_handler(self._on_thread_message)
        self._hub.connect(SignalKind.THREAD_CREATED, self._on_thread_created)
        self._directory.set_group_namer(self._group_subject)

    def _feature(self, name: str) -> bool:
        return self._config.feature(name)

    def _spawn(self, coro: Any) -> asyncio.Task | None:
        if not self._accepting:
            coro.close()
            return None
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self, grace: float) -> None:
        """
        停止接收事件，等待进行中的任务，超时后取消，然后发送剩余回执
        Stop accepting events, wait for in-flight tasks, cancel the rest after
        the grace period, then flush pending receipts.
        """
        self._accepting = False
        pending = [task for task in self._tasks if task is not asyncio.current_task()]
        if pending:
            logger.info("等待 %d 个进行中的任务 (最多 %.0f 秒)", len(pending), grace)
            _, still_running = await asyncio.wait(pending, timeout=grace)
            for task in still_running:
                task.cancel()
            if still_running:
                logger.warning("已取消 %d 个未完成的任务", len(still_running))
                await asyncio.gather(*still_running, return_exceptions=True)
        await self._receipts.flush_all()
        self._transcoder.cleanup()

    # ==================== WhatsApp -> Telegram ====================

    async def _on_messages_upsert(self, upsert: dict[str, Any]) -> None:
        # "append" 是历史同步，不转发
        if upsert.get("type", "notify") != "notify":
            return
        self._spawn(self.handle_whatsapp_messages(upsert.get("messages") or []))

    async def handle_whatsapp_messages(self, messages: list[dict[str, Any]]) -> None:
        """
        转发一批 WhatsApp 消息，每条消息一个任务
        Relay a batch of WhatsApp messages, one task per message.
        """
        tasks = [self._spawn(self.handle_whatsapp_message(raw)) for raw in messages]
        running = [task for task in tasks if task is not None]
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    async def handle_whatsapp_message(self, raw: dict[str, Any]) -> None:
        try:
            await self._relay_whatsapp(raw)
        except Exception:
            key = raw.get("key") or {}
            logger.exception("转发 WhatsApp 消息 %s 失败", key.get("id"))

    async def _relay_whatsapp(self, raw: dict[str, Any]) -> None:
        key = raw.get("key") or {}
        conversation_id = key.get("remoteJid")
        if not conversation_id or not raw.get("message"):
            return
        participant = key.get("participant") or conversation_id

        try:
            payload = classify(raw)
        except UnsupportedPayloadError as exc:
            logger.info("忽略不支持的消息类型 %s (%s)", exc.kind, conversation_id)
            return

        if key.get("fromMe"):
            if not self._config.get("bridge.mirror_outgoing", True):
                return
            thread_id = self._directory.thread_for(conversation_id)
            if thread_id is None:
                return
            await self._deliver_to_thread(raw, payload, thread_id, conversation_id, participant, outgoing=True)
            return

        if is_status(conversation_id) and not self._feature("status_sync"):
            return

        await self._directory.record_participant(participant, raw.get("pushName"))
        thread_id = await self._directory.get_or_create_thread(conversation_id, seed=raw)
        if thread_id is None:
            logger.error("无法为 %s 获取话题，消息已丢弃", conversation_id)
            return

        delivered = await self._deliver_to_thread(
            raw, payload, thread_id, conversation_id, participant, outgoing=False
        )
        if delivered and key.get("id") and self._feature("read_receipts"):
            self._receipts.queue(conversation_id, MessageKey.from_dict(key))

    def _sender_prefix(self, conversation_id: str, participant: str, outgoing: bool) -> str:
        if outgoing:
            return "📤 You"
        if is_status(conversation_id):
            return f"📱 Status from {self._directory.display_name(participant)}"
        if is_group(conversation_id) and participant != conversation_id:
            name = self._directory.contact_name(phone_of(participant)) or phone_of(participant)
            return f"👤 {name}"
        return ""

    def _format_text(self, text: str, conversation_id: str, participant: str, outgoing: bool) -> str:
        prefix = self._sender_prefix(conversation_id, participant, outgoing)
        if not prefix:
            return text
        if outgoing:
            return f"{prefix}: {text}"
        if is_status(conversation_id):
            return f"{prefix}\n\n{text}"
        return f"{prefix}:\n{text}"

    async def _deliver_to_thread(
        self,
        raw: dict[str, Any],
        payload: Payload,
        thread_id: int,
        conversation_id: str,
        participant: str,
        outgoing: bool,
    ) -> bool:
        upload = self._transcoder.upload

        if isinstance(payload, TextPayload):
            text = self._format_text(payload.text, conversation_id, participant, outgoing)
            sent_id = await upload(lambda: self._gateway.send_text(thread_id, text), label="text")
        elif isinstance(payload, MediaPayload):
            if not self._feature("media_sync"):
                logger.info("媒体同步已关闭，忽略 %s", payload.kind.value)
                return False
            sent_id = await self._media_to_thread(raw, payload, thread_id, conversation_id, participant, outgoing)
        elif isinstance(payload, LocationPayload):
            sent_id = await upload(
                lambda: self._gateway.send_location(thread_id, payload.latitude, payload.longitude),
                label="location",
            )
            prefix = self._sender_prefix(conversation_id, participant, outgoing)
            if prefix:
                await upload(
                    lambda: self._gateway.send_text(thread_id, f"{prefix} shared location"), label="text"
                )
        else:
            sent_id = await self._contact_to_thread(payload, thread_id, conversation_id, participant, outgoing)

        if is_status(conversation_id) and not outgoing:
            self._status_index.put(sent_id, MessageKey.from_dict(raw.get("key") or {}))
        await self._directory.touch(conversation_id)
        return True

    async def _contact_to_thread(
        self,
        payload: ContactPayload,
        thread_id: int,
        conversation_id: str,
        participant: str,
        outgoing: bool,
    ) -> int:
        upload = self._transcoder.upload
        if payload.phone:
            sent_id = await upload(
                lambda: self._gateway.send_contact(thread_id, payload.phone, payload.display_name),
                label="contact",
            )
        else:
            sent_id = await upload(
                lambda: self._gateway.send_text(thread_id, f"📇 Contact: {payload.display_name}"),
                label="text",
            )
        prefix = self._sender_prefix(conversation_id, participant, outgoing)
        if prefix:
            await upload(
                lambda: self._gateway.send_text(thread_id, f"{prefix} shared contact: {payload.display_name}"),
                label="text",
            )
        return sent_id

    async def _media_to_thread(
        self,
        raw: dict[str, Any],
        payload: MediaPayload,
        thread_id: int,
        conversation_id: str,
        participant: str,
        outgoing: bool,
    ) -> int:
        upload = self._transcoder.upload
        socket = self._connection.require_socket()
        data = await self._transcoder.transfer(
            lambda: socket.download_media(raw), label=payload.kind.value
        )

        caption = payload.caption
        prefix = self._sender_prefix(conversation_id, participant, outgoing)
        if outgoing:
            caption = f"{prefix}: {caption}" if caption else "📤 You sent media"
        elif prefix:
            caption = self._format_text(caption, conversation_id, participant, outgoing)
        caption = caption[:CAPTION_LIMIT]
        file_name = payload.file_name or _DEFAULT_FILE_NAMES[payload.kind]

        if payload.kind == PayloadKind.VIDEO_NOTE:
            note = await self._transcoder.to_video_note(data)
            sent_id = await upload(
                lambda: self._gateway.send_media(thread_id, PayloadKind.VIDEO_NOTE, note),
                label="video_note",
            )
            if caption:
                await upload(lambda: self._gateway.send_text(thread_id, caption), label="text")
            return sent_id

        if payload.kind == PayloadKind.STICKER:
            try:
                return await upload(
                    lambda: self._gateway.send_media(thread_id, PayloadKind.STICKER, data),
                    label="sticker",
                )
            except TransferError as exc:
                logger.debug("贴纸发送被拒绝，改为 PNG 图片: %s", exc)
            png = await self._transcoder.sticker_to_png(data)
            return await upload(
                lambda: self._gateway.send_media(
                    thread_id, PayloadKind.IMAGE, png, caption=caption or "Sticker"
                ),
                label="image",
            )

        return await upload(
            lambda: self._gateway.send_media(
                thread_id,
                payload.kind,
                data,
                caption=caption,
                file_name=file_name,
                title=payload.title,
            ),
            label=payload.kind.value,
        )

    # ==================== Telegram -> WhatsApp ====================

    async def _on_thread_message(self, message: ThreadMessage) -> None:
        self._spawn(self.handle_thread_message(message))

    async def handle_thread_message(self, message: ThreadMessage) -> None:
        """
        把话题中的消息转发回对应的 WhatsApp 会话
        Relay a thread message back to its WhatsApp conversation.

        成功加 👍，动态回复成功加 ✅，失败加 ❌；异常不会逃出本方法。
        Success reacts 👍 (✅ for status replies), failure reacts ❌; no
        exception escapes this method.
        """
        conversation_id = self._directory.find_conversation_by_thread(message.thread_id)
        if conversation_id is None:
            logger.warning("找不到话题 %s 对应的 WhatsApp 会话，消息已丢弃", message.thread_id)
            return
        if is_call_log(conversation_id):
            logger.debug("通话记录话题中的消息不转发")
            return

        try:
            if is_status(conversation_id):
                await self._reply_to_status(message)
                return

            await self._presence(conversation_id, "composing")
            content = await self._to_whatsapp_content(message.payload)
            await self._transcoder.upload(
                lambda: self._connection.send_message(conversation_id, content), label="whatsapp"
            )
            await self._react(message, REACT_OK)
            await self._presence(conversation_id, "available")
            await self._directory.touch(conversation_id)
        except Exception:
            logger.exception("转发 Telegram 消息 %s 失败", message.message_id)
            await self._react(message, REACT_FAILED)

    async def _reply_to_status(self, message: ThreadMessage) -> None:
        key = self._status_index.get(message.reply_to_message_id)
        if key is None:
            await self._gateway.send_text(message.thread_id, STATUS_MISS_NOTICE)
            return

        target = key.participant or key.remote_jid
        content = await self._to_whatsapp_content(message.payload)
        await self._transcoder.upload(
            lambda: self._connection.send_message(target, content), label="status reply"
        )
        await self._react(message, REACT_STATUS_OK)

    async def _to_whatsapp_content(self, payload: Payload) -> dict[str, Any]:
        """
        载荷 -> WhatsApp 发送内容
        Payload to WhatsApp send content.
        """
        if isinstance(payload, TextPayload):
            text = f"{SPOILER_MARK} {payload.text}" if payload.spoiler else payload.text
            return {"text": text}

        if isinstance(payload, LocationPayload):
            return {
                "location": {
                    "degreesLatitude": payload.latitude,
                    "degreesLongitude": payload.longitude,
                }
            }

        if isinstance(payload, ContactPayload):
            vcard = payload.vcard or build_vcard(
                payload.display_name, payload.phone, payload.first_name, payload.last_name
            )
            return {
                "contacts": {
                    "displayName": payload.display_name,
                    "contacts": [{"vcard": vcard}],
                }
            }

        if payload.kind not in MEDIA_KINDS:
            raise UnsupportedPayloadError(payload.kind.value)
        if not self._feature("media_sync"):
            raise BridgeError("media sync is disabled")

        data = await self._transcoder.transfer(
            lambda: self._gateway.download_file(payload.file_id), label=payload.kind.value
        )
        return await self._media_content(payload, data)

    async def _media_content(self, payload: MediaPayload, data: bytes) -> dict[str, Any]:
        kind = payload.kind
        caption = payload.caption
        view_once = payload.view_once

        if kind == PayloadKind.IMAGE:
            return {"image": data, "caption": caption, "viewOnce": view_once}
        if kind == PayloadKind.VIDEO:
            return {"video": data, "caption": caption, "viewOnce": view_once}
        if kind == PayloadKind.VIDEO_NOTE:
            return {"video": data, "ptv": True, "viewOnce": view_once}
        if kind == PayloadKind.ANIMATION:
            return {"video": data, "caption": caption, "gifPlayback": True, "viewOnce": view_once}
        if kind == PayloadKind.VOICE:
            return {"audio": data, "ptt": True, "mimetype": "audio/ogg; codecs=opus"}
        if kind == PayloadKind.AUDIO:
            file_name = payload.file_name or _DEFAULT_FILE_NAMES[kind]
            mimetype = payload.mimetype or mimetypes.guess_type(file_name)[0] or "audio/mpeg"
            return {"audio": data, "mimetype": mimetype, "fileName": file_name, "caption": caption}
        if kind == PayloadKind.DOCUMENT:
            file_name = payload.file_name or _DEFAULT_FILE_NAMES[kind]
            mimetype = (
                payload.mimetype
                or mimetypes.guess_type(file_name)[0]
                or "application/octet-stream"
            )
            return {"document": data, "fileName": file_name, "mimetype": mimetype, "caption": caption}

        sticker = await self._transcoder.sticker_for_whatsapp(
            data, animated=payload.animated, allow_animated=self._feature("animated_stickers")
        )
        if sticker is not None:
            return {"sticker": sticker}
        if await self._transcoder.is_image(data):
            logger.warning("贴纸转换失败，改为图片发送")
            return {"image": data, "caption": "Sticker"}
        logger.warning("贴纸无法解码，改为文字发送")
        return {"text": STICKER_PLACEHOLDER}

    async def _react(self, message: ThreadMessage, emoji: str) -> None:
        try:
            await self._gateway.set_reaction(message.chat_id, message.message_id, emoji)
        except Exception as exc:
            logger.debug("设置表情回应失败: %s", exc)

    async def _presence(self, conversation_id: str, presence: str) -> None:
        if not self._feature("presence_updates"):
            return
        now = time.monotonic()
        if presence == "composing":
            last = self._presence_at.get(conversation_id)
            if last is not None and now - last < PRESENCE_INTERVAL:
                return
            self._presence_at[conversation_id] = now
        try:
            await self._connection.require_socket().send_presence(presence, conversation_id)
        except Exception as exc:
            logger.debug("发送在线状态失败: %s", exc)

    async def _send_receipts(self, keys: list[MessageKey]) -> None:
        await self._connection.require_socket().read_messages(keys)

    # ==================== 通话与联系人 / Calls and contacts ====================

    async def _on_calls(self, calls: list[dict[str, Any]]) -> None:
        for call in calls or []:
            self._spawn(self.handle_call(call))

    async def handle_call(self, call: dict[str, Any]) -> None:
        """
        把来电通知发到通话记录话题（同一通话 30 秒内只通知一次）
        Post a call notification to the call-log thread, once per call per window.
        """
        if not self._feature("call_logs"):
            return
        caller = call.get("from") or ""
        if not caller:
            return

        window = float(self._config.get("pipeline.call_dedupe_window", 30.0))
        now = time.monotonic()
        self._call_seen = {k: t for k, t in self._call_seen.items() if now - t < window}
        call_key = f"{caller}_{call.get('id', '')}"
        if call_key in self._call_seen:
            return
        self._call_seen[call_key] = now

        try:
            thread_id = await self._directory.get_or_create_thread(
                CALL_LOG_JID, seed={"key": {"remoteJid": CALL_LOG_JID, "participant": caller}}
            )
            if thread_id is None:
                logger.error("无法创建通话记录话题")
                return
            phone = phone_of(caller)
            text = (
                "📞 Incoming Call\n\n"
                f"👤 From: {self._directory.display_name(caller)}\n"
                f"📱 Number: +{phone}\n"
                f"⏰ Time: {datetime.now():%Y-%m-%d %H:%M:%S}\n"
                f"📋 Status: {call.get('status') or 'offer'}"
            )
            await self._gateway.send_text(thread_id, text)
            logger.info("已发送来电通知: %s", phone)
        except Exception:
            logger.exception("处理来电通知失败")

    async def _on_contacts_update(self, contacts: list[dict[str, Any]]) -> None:
        self._spawn(self.handle_contact_updates(contacts or [], only_new=False))

    async def _on_contacts_upsert(self, contacts: list[dict[str, Any]]) -> None:
        self._spawn(self.handle_contact_updates(contacts or [], only_new=True))

    async def handle_contact_updates(self, contacts: list[dict[str, Any]], only_new: bool = False) -> int:
        """
        处理联系人变更：写入目录，并重命名对应话题
        Handle contact changes: write them to the directory and rename threads.

        only_new=True 时只接受目录中还没有的号码。
        With only_new=True only numbers unknown to the directory are accepted.
        """
        changed = 0
        for contact in contacts:
            jid = contact.get("id") or ""
            name = contact.get("name")
            if not jid or is_group(jid) or is_status(jid):
                continue
            phone = phone_of(jid)
            if not is_meaningful_name(phone, name):
                continue
            existing = self._directory.contact_name(phone)
            if existing == name or (only_new and existing is not None):
                continue
            if not await self._directory.upsert_contact(phone, name):
                continue
            changed += 1
            logger.info("联系人已更新: %s -> %s", phone, name)

            thread_id = self._directory.thread_for(jid)
            if thread_id is not None:
                try:
                    await self._gateway.rename_thread(thread_id, name)
                except Exception as exc:
                    logger.debug("重命名话题 %s 失败: %s", thread_id, exc)

        if changed:
            title = "✅ New Contacts Added" if only_new else "✅ Contact Updates Processed"
            await self._hub.emit_new(
                SignalKind.SYNC_SUMMARY,
                payload=f"{'Added' if only_new else 'Updated'} {changed} contacts.",
                source="pipeline",
                title=title,
            )
        return changed

    async def sync_contacts(self) -> int:
        """
        从套接字的联系人快照同步目录
        Sync the directory from the socket's contact snapshot.
        """
        socket = self._connection.require_socket()
        synced = await self._directory.sync_contacts(dict(socket.contacts))
        total = self._directory.counts()["contacts"]
        await self._hub.emit_new(
            SignalKind.SYNC_SUMMARY,
            payload=f"Synced {synced} new/updated contacts. Total: {total}",
            source="pipeline",
            title="✅ Contact Sync Complete",
        )
        return synced

    async def update_thread_names(self) -> int:
        """
        按当前联系人名称重命名所有个人会话话题
        Rename every personal thread after its current contact name.
        """
        updated = 0
        for conversation_id, thread_id in self._directory.mapped_conversations().items():
            if is_group(conversation_id) or is_status(conversation_id) or is_call_log(conversation_id):
                continue
            try:
                await self._gateway.rename_thread(thread_id, self._directory.display_name(conversation_id))
                updated += 1
            except Exception as exc:
                logger.debug("重命名话题 %s 失败: %s", thread_id, exc)
            await asyncio.sleep(0.1)

        logger.info("已更新 %d 个话题名称", updated)
        await self._hub.emit_new(
            SignalKind.SYNC_SUMMARY,
            payload=f"Updated {updated} topic names.",
            source="pipeline",
            title="✅ Topic Names Updated",
        )
        return updated

    # ==================== 欢迎卡片 / Welcome card ====================

    async def _group_subject(self, conversation_id: str) -> str | None:
        meta = await self._connection.require_socket().group_metadata(conversation_id)
        return meta.get("subject")

    async def _on_thread_created(self, signal: Signal) -> None:
        payload = signal.payload or {}
        conversation_id = payload.get("conversation_id", "")
        if is_status(conversation_id) or is_call_log(conversation_id):
            return
        await self.send_welcome_card(conversation_id, payload.get("thread_id"), payload.get("seed"))

    async def send_welcome_card(
        self, conversation_id: str, thread_id: int, seed: dict[str, Any] | None = None
    ) -> None:
        """
        新话题的置顶信息卡片（以及头像）
        Pinned info card for a new thread, plus the profile picture.
        """
        try:
            if is_group(conversation_id):
                text = await self._group_card(conversation_id)
            else:
                text = await self._contact_card(conversation_id, seed or {})
            message_id = await self._gateway.send_text(thread_id, text)
            await self._gateway.pin_message(message_id)
        except Exception:
            logger.exception("发送欢迎卡片失败: %s", conversation_id)
            return

        if self._feature("profile_pic_sync"):
            await self.send_profile_picture(conversation_id, thread_id)

    async def _group_card(self, conversation_id: str) -> str:
        try:
            meta = await self._connection.require_socket().group_metadata(conversation_id)
        except Exception as exc:
            logger.debug("获取群组 %s 信息失败: %s", conversation_id, exc)
            return "🏷️ Group Chat\n\n💬 Messages from this group will appear here"

        lines = [
            "🏷️ Group Information",
            "",
            f"📝 Name: {meta.get('subject') or 'Group Chat'}",
            f"👥 Participants: {len(meta.get('participants') or [])}",
            f"🆔 Group ID: {conversation_id}",
        ]
        if meta.get("creation"):
            created = datetime.fromtimestamp(int(meta["creation"]))
            lines.append(f"📅 Created: {created:%Y-%m-%d}")
        lines += ["", "💬 Messages from this group will appear here"]
        return "\n".join(lines)

    async def _contact_card(self, conversation_id: str, seed: dict[str, Any]) -> str:
        phone = phone_of(conversation_id)
        participant = (seed.get("key") or {}).get("participant") or conversation_id
        profile = self._directory.profile(participant)
        handle = seed.get("pushName") or (profile.display_name if profile else None) or "Unknown"

        about = None
        try:
            about = await self._connection.require_socket().fetch_status(conversation_id)
        except Exception as exc:
            logger.debug("获取 %s 签名失败: %s", conversation_id, exc)

        lines = [
            "👤 Contact Information",
            "",
            f"📝 Name: {self._directory.display_name(conversation_id)}",
            f"📱 Phone: +{phone}",
            f"🖐️ Handle: {handle}",
        ]
        if about:
            lines.append(f"📝 Status: {about}")
        lines += [
            f"🆔 WhatsApp ID: {conversation_id}",
            f"📅 First Contact: {datetime.now():%Y-%m-%d}",
            "",
            "💬 Messages with this contact will appear here",
        ]
        return "\n".join(lines)

    async def send_profile_picture(self, conversation_id: str, thread_id: int) -> None:
        try:
            url = await self._connection.require_socket().profile_picture_url(conversation_id)
            if url:
                await self._gateway.send_media(
                    thread_id, PayloadKind.IMAGE, url, caption="📸 Profile Picture"
                )
        except Exception as exc:
            logger.debug("发送头像失败 (%s): %s", conversation_id, exc)
