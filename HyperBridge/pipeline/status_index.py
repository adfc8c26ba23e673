"""
动态消息索引 - Telegram 消息 ID -> WhatsApp 动态消息键
Status message index - Telegram message id to WhatsApp status key.

仅保存在内存中，重启后丢失。
Kept in memory only; lost on restart.
"""

from __future__ import annotations

from collections import OrderedDict

from HyperBridge.connection.base import MessageKey

DEFAULT_CAPACITY = 2000


class StatusIndex:
    """容量有限的动态消息索引 / Bounded status message index."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._capacity = capacity
        self._entries: OrderedDict[int, MessageKey] = OrderedDict()

    def put(self, thread_message_id: int, key: MessageKey) -> None:
        self._entries[thread_message_id] = key
        self._entries.move_to_end(thread_message_id)
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def get(self, thread_message_id: int | None) -> MessageKey | None:
        if thread_message_id is None:
            return None
        return self._entries.get(thread_message_id)

    def __len__(self) -> int:
        return len(self._entries)
