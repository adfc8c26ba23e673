"""
已读回执队列 - 按会话合并，延迟批量发送
Read receipt queue - coalesced per conversation and sent in batches after a delay.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from HyperBridge.connection.base import MessageKey

logger = logging.getLogger(__name__)

ReceiptSender = Callable[[list[MessageKey]], Awaitable[None]]


class ReadReceiptQueue:
    """
    已读回执队列
    Read receipt queue.

    同一会话在延迟窗口内收到的所有消息只触发一次 read_messages 调用。
    Every message a conversation receives inside the delay window is marked
    read by a single read_messages call.
    """

    def __init__(self, sender: ReceiptSender, delay: float = 2.0) -> None:
        self._sender = sender
        self._delay = delay
        self._pending: dict[str, list[MessageKey]] = {}
        self._timers: dict[str, asyncio.Task] = {}

    def queue(self, conversation_id: str, key: MessageKey) -> None:
        """加入队列 / Queue a message key."""
        self._pending.setdefault(conversation_id, []).append(key)
        if conversation_id not in self._timers:
            self._timers[conversation_id] = asyncio.create_task(self._flush_later(conversation_id))

    def pending(self, conversation_id: str) -> int:
        return len(self._pending.get(conversation_id, []))

    async def _flush_later(self, conversation_id: str) -> None:
        try:
            await asyncio.sleep(self._delay)
        finally:
            self._timers.pop(conversation_id, None)
        await self.flush(conversation_id)

    async def flush(self, conversation_id: str) -> None:
        """立即发送某会话的回执 / Send one conversation's receipts now."""
        keys = self._pending.pop(conversation_id, [])
        if not keys:
            return
        try:
            await self._sender(keys)
            logger.debug("已将 %s 中的 %d 条消息标记为已读", conversation_id, len(keys))
        except Exception as exc:
            logger.debug("发送已读回执失败 (%s): %s", conversation_id, exc)

    async def flush_all(self) -> None:
        """
        关闭时发送全部待处理回执
        Send every pending receipt, used on shutdown.
        """
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        for conversation_id in list(self._pending):
            await self.flush(conversation_id)
