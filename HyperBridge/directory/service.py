"""
桥接目录服务
Bridge directory service.

启动时从数据库加载到内存缓存，之后的修改先写库、成功后再更新缓存。
Hydrated from the database at startup; every mutation is persisted first and
only then applied to the in-memory cache.

读取缓存不加锁；话题创建按会话加锁，保证一个会话最多只有一个话题。
Cache reads are lock-free; thread creation is serialised per conversation so
a conversation never ends up with two threads.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from HyperBridge.gateway.base import ThreadGateway
from HyperBridge.kernel.signal_hub import SignalHub, SignalKind
from HyperBridge.message.whatsapp import is_call_log, is_group, is_status, phone_of
from HyperBridge.store.engine import StorageEngine
from HyperBridge.store.models import ChatMapping, ContactEntry, UserProfile

logger = logging.getLogger(__name__)

STATUS_THREAD_NAME = "📊 Status Updates"
CALL_THREAD_NAME = "📞 Call Logs"
GROUP_FALLBACK_NAME = "Group Chat"

# Telegram 只接受固定的几种话题颜色
ICON_STATUS = 0xFFD67E
ICON_CALLS = 0xFB6F5F
ICON_GROUP = 0x6FB9F0
ICON_CONTACT = 0x8EEE98

GroupNamer = Callable[[str], Awaitable[str | None]]


def is_meaningful_name(phone: str, name: str | None) -> bool:
    """
    联系人名称是否值得保存（不是号码本身）
    Whether a contact name is worth storing (not just the number).
    """
    if not name:
        return False
    return name != phone and not name.startswith("+") and len(name) > 2


@dataclass
class ParticipantProfile:
    """参与者资料缓存项 / Cached participant profile."""

    participant_id: str
    phone: str
    display_name: str | None = None
    message_count: int = 0


class BridgeDirectory:
    """
    桥接目录
    Bridge directory.
    """

    def __init__(
        self,
        storage: StorageEngine,
        gateway: ThreadGateway,
        hub: SignalHub,
        verify_ttl: float = 300.0,
    ) -> None:
        self._storage = storage
        self._gateway = gateway
        self._hub = hub
        self._verify_ttl = verify_ttl
        self._group_namer: GroupNamer | None = None

        self._threads: dict[str, int] = {}
        self._conversations: dict[int, str] = {}
        self._contacts: dict[str, str] = {}
        self._profiles: dict[str, ParticipantProfile] = {}

        # 已创建话题但映射尚未写入数据库
        self._unsaved: dict[str, int] = {}

        self._locks: dict[str, asyncio.Lock] = {}
        self._profile_locks: dict[str, asyncio.Lock] = {}
        self._verified_at: dict[str, float] = {}

    def set_group_namer(self, namer: GroupNamer) -> None:
        """设置群组名称查询函数 / Set the group subject lookup."""
        self._group_namer = namer

    async def load(self) -> None:
        """
        从数据库加载全部映射
        Load every mapping from the database.
        """
        async with self._storage.session() as db:
            mappings = (await db.execute(select(ChatMapping))).scalars().all()
            contacts = (await db.execute(select(ContactEntry))).scalars().all()
            profiles = (await db.execute(select(UserProfile))).scalars().all()

        self._threads = {m.conversation_id: m.thread_id for m in mappings}
        self._conversations = {m.thread_id: m.conversation_id for m in mappings}
        self._contacts = {c.phone: c.display_name for c in contacts}
        self._profiles = {
            p.participant_id: ParticipantProfile(
                participant_id=p.participant_id,
                phone=p.phone,
                display_name=p.display_name,
                message_count=p.message_count,
            )
            for p in profiles
        }
        logger.info(
            "目录已加载: %d 个会话, %d 个联系人, %d 个用户",
            len(self._threads),
            len(self._contacts),
            len(self._profiles),
        )

    # ==================== 话题 / Threads ====================

    def thread_for(self, conversation_id: str) -> int | None:
        """只读缓存，不创建 / Cache read without creation."""
        return self._threads.get(conversation_id)

    def find_conversation_by_thread(self, thread_id: int | None) -> str | None:
        """话题 -> 会话 / Thread to conversation."""
        if thread_id is None:
            return None
        conversation_id = self._conversations.get(thread_id)
        if conversation_id is not None:
            return conversation_id
        for pending_id, pending_thread in self._unsaved.items():
            if pending_thread == thread_id:
                return pending_id
        return None

    def mapped_conversations(self) -> dict[str, int]:
        return dict(self._threads)

    async def get_or_create_thread(
        self, conversation_id: str, seed: dict[str, Any] | None = None
    ) -> int | None:
        """
        获取会话对应的话题，不存在或已被删除时新建
        Get the conversation's thread, creating it when missing or deleted.

        新建话题后（锁释放之后）发出 directory.thread_created 信号。
        映射写库失败时话题 ID 暂存在内存中，下次调用时重试写入同一个话题，
        不会再新建话题。
        After creating a thread (and releasing the lock) a
        directory.thread_created signal is emitted. When the mapping cannot be
        written, the thread id is held in memory and the next call retries
        persisting that same thread instead of creating another one.
        """
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        created: int | None = None

        async with lock:
            thread_id = self._threads.get(conversation_id)
            if thread_id is None:
                thread_id = self._unsaved.get(conversation_id)
            if thread_id is not None:
                if await self._verify(conversation_id, thread_id):
                    if conversation_id in self._unsaved:
                        await self._persist_mapping(conversation_id, thread_id)
                    return thread_id
                logger.warning("话题 %s (%s) 已被删除，重新创建", thread_id, conversation_id)
                await self._delete_mapping(conversation_id, thread_id)

            name, icon_color = await self.thread_name(conversation_id)
            try:
                created = await self._gateway.create_thread(name, icon_color)
            except Exception:
                logger.exception("为 %s 创建话题失败", conversation_id)
                return None

            logger.info("已创建话题: %s (ID: %s) -> %s", name, created, conversation_id)
            await self._persist_mapping(conversation_id, created)

        await self._hub.emit_new(
            SignalKind.THREAD_CREATED,
            payload={"conversation_id": conversation_id, "thread_id": created, "seed": seed},
            source="directory",
        )
        return created

    async def thread_name(self, conversation_id: str) -> tuple[str, int]:
        """
        话题命名规则，返回 (名称, 图标颜色)
        Thread naming policy, returns (name, icon color).
        """
        if is_status(conversation_id):
            return STATUS_THREAD_NAME, ICON_STATUS
        if is_call_log(conversation_id):
            return CALL_THREAD_NAME, ICON_CALLS
        if is_group(conversation_id):
            subject = None
            if self._group_namer is not None:
                try:
                    subject = await self._group_namer(conversation_id)
                except Exception as exc:
                    logger.debug("获取群组 %s 名称失败: %s", conversation_id, exc)
            return subject or GROUP_FALLBACK_NAME, ICON_GROUP
        return self.display_name(conversation_id), ICON_CONTACT

    async def touch(self, conversation_id: str) -> None:
        """更新会话最后活动时间 / Bump the conversation's last activity."""
        if conversation_id not in self._threads:
            return
        try:
            async with self._storage.session() as db:
                await db.execute(
                    update(ChatMapping)
                    .where(ChatMapping.conversation_id == conversation_id)
                    .values(last_activity=datetime.now())
                )
                await db.commit()
        except SQLAlchemyError as exc:
            logger.debug("更新 %s 活动时间失败: %s", conversation_id, exc)

    async def _verify(self, conversation_id: str, thread_id: int) -> bool:
        checked = self._verified_at.get(conversation_id)
        now = time.monotonic()
        if checked is not None and now - checked < self._verify_ttl:
            return True

        try:
            exists = await self._gateway.thread_exists(thread_id)
        except Exception as exc:
            # 无法确认时按存在处理
            logger.debug("校验话题 %s 失败: %s", thread_id, exc)
            return True

        if exists:
            self._verified_at[conversation_id] = now
        return exists

    async def _persist_mapping(self, conversation_id: str, thread_id: int) -> None:
        if await self._save_mapping(conversation_id, thread_id):
            self._unsaved.pop(conversation_id, None)
            return
        self._unsaved[conversation_id] = thread_id
        logger.warning("会话映射 %s -> %s 暂存内存，下次消息时重试保存", conversation_id, thread_id)

    async def _save_mapping(self, conversation_id: str, thread_id: int) -> bool:
        try:
            async with self._storage.session() as db:
                await db.merge(
                    ChatMapping(
                        conversation_id=conversation_id,
                        thread_id=thread_id,
                        created_at=datetime.now(),
                        last_activity=datetime.now(),
                    )
                )
                await db.commit()
        except SQLAlchemyError:
            logger.exception("保存会话映射失败: %s -> %s", conversation_id, thread_id)
            return False

        self._threads[conversation_id] = thread_id
        self._conversations[thread_id] = conversation_id
        self._verified_at[conversation_id] = time.monotonic()
        return True

    async def _delete_mapping(self, conversation_id: str, thread_id: int) -> None:
        try:
            async with self._storage.session() as db:
                await db.execute(
                    delete(ChatMapping).where(ChatMapping.conversation_id == conversation_id)
                )
                await db.commit()
        except SQLAlchemyError:
            logger.exception("删除会话映射失败: %s", conversation_id)

        self._threads.pop(conversation_id, None)
        self._unsaved.pop(conversation_id, None)
        self._conversations.pop(thread_id, None)
        self._verified_at.pop(conversation_id, None)

    # ==================== 联系人 / Contacts ====================

    def contact_name(self, phone: str) -> str | None:
        return self._contacts.get(phone)

    def display_name(self, jid: str) -> str:
        """
        联系人名称，没有时为 "+号码"
        Contact name, or "+<phone>" when unknown.
        """
        phone = phone_of(jid)
        return self._contacts.get(phone) or f"+{phone}"

    def list_contacts(self) -> list[tuple[str, str]]:
        """按名称排序的 (号码, 名称) 列表 / (phone, name) pairs sorted by name."""
        return sorted(self._contacts.items(), key=lambda item: item[1].lower())

    def search_contacts(self, query: str) -> list[tuple[str, str]]:
        """按名称或号码模糊搜索 / Search by name or phone substring."""
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            (phone, name)
            for phone, name in self.list_contacts()
            if needle in name.lower() or needle in phone
        ]

    def counts(self) -> dict[str, int]:
        return {
            "chats": len(self._threads),
            "contacts": len(self._contacts),
            "users": len(self._profiles),
        }

    async def upsert_contact(self, phone: str, name: str) -> bool:
        """
        写入联系人（后写覆盖）；失败时缓存保持不变
        Write a contact (last write wins); the cache is unchanged on failure.
        """
        try:
            async with self._storage.session() as db:
                await db.merge(ContactEntry(phone=phone, display_name=name, updated_at=datetime.now()))
                await db.commit()
        except SQLAlchemyError:
            logger.exception("保存联系人失败: %s", phone)
            return False

        self._contacts[phone] = name
        return True

    async def sync_contacts(self, snapshot: dict[str, dict[str, Any]]) -> int:
        """
        合并套接字的联系人快照，返回新增或变化的数量
        Merge a socket contact snapshot; returns how many entries were new or changed.
        """
        synced = 0
        for jid, contact in snapshot.items():
            if not jid or not contact or is_status(jid) or is_group(jid):
                continue
            phone = phone_of(jid)
            name = contact.get("name") or contact.get("notify") or contact.get("verifiedName")
            if not name or name == phone or self._contacts.get(phone) == name:
                continue
            if await self.upsert_contact(phone, name):
                synced += 1
                logger.debug("已同步联系人: %s -> %s", phone, name)

        logger.info("已同步 %d 个新增/变更联系人 (共 %d)", synced, len(self._contacts))
        return synced

    # ==================== 参与者 / Participants ====================

    def profile(self, participant_id: str) -> ParticipantProfile | None:
        return self._profiles.get(participant_id)

    async def upsert_user_profile(
        self,
        participant_id: str,
        display_name: str | None = None,
        phone: str | None = None,
    ) -> bool:
        """
        创建或更新参与者资料（不改变消息计数）
        Create or update a participant profile without touching its counter.
        """
        phone = phone or phone_of(participant_id)
        now = datetime.now()
        try:
            async with self._storage.session() as db:
                row = await db.get(UserProfile, participant_id)
                if row is None:
                    row = UserProfile(
                        participant_id=participant_id,
                        display_name=display_name,
                        phone=phone,
                        first_seen=now,
                        last_seen=now,
                        message_count=0,
                    )
                    db.add(row)
                else:
                    if display_name:
                        row.display_name = display_name
                    row.phone = phone
                await db.commit()
                snapshot = ParticipantProfile(
                    participant_id=participant_id,
                    phone=row.phone,
                    display_name=row.display_name,
                    message_count=row.message_count,
                )
        except SQLAlchemyError:
            logger.exception("保存用户资料失败: %s", participant_id)
            return False

        self._profiles[participant_id] = snapshot
        return True

    async def record_participant(self, participant_id: str, push_name: str | None = None) -> bool:
        """
        记录参与者发来一条消息：首次出现时创建，否则计数加一
        Record a message from a participant: create on first sight, else count it.
        """
        lock = self._profile_locks.setdefault(participant_id, asyncio.Lock())
        async with lock:
            return await self._write_participant(participant_id, push_name)

    async def _write_participant(self, participant_id: str, push_name: str | None) -> bool:
        phone = phone_of(participant_id)
        now = datetime.now()
        try:
            async with self._storage.session() as db:
                row = await db.get(UserProfile, participant_id)
                if row is None:
                    row = UserProfile(
                        participant_id=participant_id,
                        display_name=self._contacts.get(phone) or push_name,
                        phone=phone,
                        first_seen=now,
                        last_seen=now,
                        message_count=1,
                    )
                    db.add(row)
                    logger.debug("新用户: %s (%s)", row.display_name or phone, phone)
                else:
                    row.message_count = (row.message_count or 0) + 1
                    row.last_seen = now
                    if not row.display_name and push_name:
                        row.display_name = push_name
                await db.commit()
                snapshot = ParticipantProfile(
                    participant_id=participant_id,
                    phone=row.phone,
                    display_name=row.display_name,
                    message_count=row.message_count,
                )
        except SQLAlchemyError:
            logger.exception("记录参与者失败: %s", participant_id)
            return False

        self._profiles[participant_id] = snapshot
        return True
