"""
信号中枢 - 桥接核心对外的运行事件流
Signal Hub - the operational event stream the bridge core exposes.

连接管理器、目录和管线通过类型化信号通知外部协作者（通知器、命令包），
彼此之间不直接引用。
The connection manager, directory and pipeline notify external collaborators
(notifier, command packs) through typed signals without referencing them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SignalPriority(Enum):
    """信号处理器优先级 / Signal handler priority."""

    HIGHEST = 0
    HIGH = 25
    NORMAL = 50
    LOW = 75
    LOWEST = 100


class SignalKind(str, Enum):
    """
    预定义的信号类型 / Predefined signal kinds.
    """

    # WhatsApp 连接生命周期
    CONNECTION_QR = "connection.qr"
    CONNECTION_OPEN = "connection.open"
    CONNECTION_CLOSED = "connection.closed"
    CONNECTION_FATAL = "connection.fatal"

    # 目录
    THREAD_CREATED = "directory.thread_created"

    # 同步摘要（联系人同步、话题改名等）
    SYNC_SUMMARY = "sync.summary"

    # 进程
    SYSTEM_READY = "system.ready"
    SYSTEM_SHUTDOWN = "system.shutdown"


@dataclass
class Signal:
    """
    信号对象 - 在系统中传递的消息载体
    Signal object - the message carrier in the system.
    """

    kind: SignalKind | str
    payload: Any = None
    source: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SlotBinding:
    """
    槽绑定 - 将处理器绑定到信号上
    Slot binding - binds a handler to a signal.
    """

    signal_kind: str
    handler: Callable[..., Any]
    priority: SignalPriority = SignalPriority.NORMAL
    slot_id: str = ""
    once: bool = False


def _kind_key(kind: SignalKind | str) -> str:
    return kind.value if isinstance(kind, SignalKind) else kind


class SignalHub:
    """
    信号中枢 - 管理订阅和分发
    Signal hub - manages subscriptions and dispatching.

    处理器按优先级顺序执行；单个处理器抛出的异常只记录日志，
    不会影响其他处理器，也不会传回发射方。
    Handlers run in priority order; a handler's exception is logged and never
    reaches other handlers or the emitter.
    """

    def __init__(self) -> None:
        self._slots: dict[str, list[SlotBinding]] = {}
        self._counter = 0

    def connect(
        self,
        signal_kind: SignalKind | str,
        handler: Callable[..., Any],
        priority: SignalPriority = SignalPriority.NORMAL,
        once: bool = False,
    ) -> str:
        """
        连接处理器到信号，返回 slot_id
        Connect a handler to a signal kind; returns the slot_id.
        """
        kind_key = _kind_key(signal_kind)
        self._counter += 1
        slot_id = f"slot_{self._counter}"

        bindings = self._slots.setdefault(kind_key, [])
        bindings.append(
            SlotBinding(
                signal_kind=kind_key,
                handler=handler,
                priority=priority,
                slot_id=slot_id,
                once=once,
            )
        )
        bindings.sort(key=lambda b: b.priority.value)

        logger.debug("已连接槽 %s 到信号 %s", slot_id, kind_key)
        return slot_id

    def disconnect(self, slot_id: str) -> bool:
        """断开指定槽 / Disconnect a specific slot."""
        for bindings in self._slots.values():
            for binding in bindings:
                if binding.slot_id == slot_id:
                    bindings.remove(binding)
                    return True
        return False

    async def emit(self, signal: Signal) -> Signal:
        """
        发射信号，按优先级触发所有处理器
        Emit a signal, triggering all handlers in priority order.
        """
        kind_key = _kind_key(signal.kind)
        bindings = list(self._slots.get(kind_key, []))

        for binding in bindings:
            if binding.once:
                self.disconnect(binding.slot_id)
            try:
                result = binding.handler(signal)
                if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                    await result
            except Exception:
                logger.exception(
                    "信号处理器 %s 处理 %s 时出错", binding.slot_id, kind_key
                )

        return signal

    async def emit_new(
        self,
        kind: SignalKind | str,
        payload: Any = None,
        source: str = "",
        **metadata: Any,
    ) -> Signal:
        """
        便捷方法：创建并发射一个新信号
        Convenience: create and emit a new signal.
        """
        return await self.emit(
            Signal(kind=kind, payload=payload, source=source, metadata=metadata)
        )

    def slot_count(self, signal_kind: SignalKind | str | None = None) -> int:
        """获取槽绑定数量 / Get the number of slot bindings."""
        if signal_kind is None:
            return sum(len(b) for b in self._slots.values())
        return len(self._slots.get(_kind_key(signal_kind), []))

    def clear(self) -> None:
        """清除所有槽绑定 / Clear all slot bindings."""
        self._slots.clear()
