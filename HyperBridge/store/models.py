"""
数据模型 - 定义桥接持久化的所有表结构
Data models - defines all tables the bridge persists.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from HyperBridge.store.engine import Base

SESSION_RECORD_ID = "session"


class SessionRecord(Base):
    """WhatsApp 凭据归档表（单行） / Credential archive table (single row)."""

    __tablename__ = "session_records"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=SESSION_RECORD_ID)
    archive: Mapped[bytes] = mapped_column(LargeBinary)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now
    )


class ChatMapping(Base):
    """会话 ↔ 话题映射表 / Conversation to thread mapping table."""

    __tablename__ = "chat_mappings"

    conversation_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    thread_id: Mapped[int] = mapped_column(Integer, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    last_activity: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class UserProfile(Base):
    """参与者资料表 / Participant profile table."""

    __tablename__ = "user_profiles"

    participant_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str] = mapped_column(String(64), default="")
    first_seen: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    last_seen: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    message_count: Mapped[int] = mapped_column(Integer, default=0)


class ContactEntry(Base):
    """联系人表 / Contact table."""

    __tablename__ = "contact_entries"

    phone: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now
    )
