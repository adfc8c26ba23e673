"""
存储层模块 - 数据持久化
Store module - data persistence.

使用 SQLAlchemy + aiosqlite 提供异步数据库访问。
Uses SQLAlchemy + aiosqlite for async database access.
"""

from HyperBridge.store.engine import Base, StorageEngine
from HyperBridge.store.models import (
    ChatMapping,
    ContactEntry,
    SessionRecord,
    UserProfile,
)

__all__ = [
    "Base",
    "StorageEngine",
    "SessionRecord",
    "ChatMapping",
    "UserProfile",
    "ContactEntry",
]
