"""
钩子系统 - 扩展包通过钩子声明命令处理器
Hook system - packs declare command handlers through hooks.

装饰器只把描述符挂到函数上，由注册表在注册扩展包时收集。
Decorators only attach descriptors to functions; the registry collects them
when a pack is registered.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class HookKind(str, Enum):
    """钩子类型 / Hook kind."""

    COMMAND = "command"
    # 没有命令匹配时调用
    FALLBACK = "fallback"


@dataclass
class HookDescriptor:
    """
    钩子描述符 - 描述一个注册的处理器
    Hook descriptor - describes a registered handler.
    """

    kind: HookKind
    handler: Callable[..., Any]
    # 命令名
    pattern: str = ""
    description: str = ""
    # 优先级（越小越先执行）
    priority: int = 50
    pack_name: str = ""
    # "admin" 或 ""
    permission: str = ""
    enabled: bool = True


def hook(
    kind: HookKind = HookKind.COMMAND,
    pattern: str = "",
    description: str = "",
    priority: int = 50,
    permission: str = "",
) -> Callable:
    """
    通用钩子装饰器
    Generic hook decorator.
    """

    def decorator(func: Callable) -> Callable:
        descriptor = HookDescriptor(
            kind=kind,
            handler=func,
            pattern=pattern,
            description=description or (func.__doc__ or "").strip(),
            priority=priority,
            permission=permission,
        )
        if not hasattr(func, "_hook_descriptors"):
            func._hook_descriptors = []
        func._hook_descriptors.append(descriptor)
        return func

    return decorator


def command_hook(
    command: str,
    description: str = "",
    priority: int = 50,
    permission: str = "admin",
) -> Callable:
    """
    命令钩子装饰器 - 匹配特定命令
    Command hook decorator - matches a specific command.
    """
    return hook(
        kind=HookKind.COMMAND,
        pattern=command,
        description=description,
        priority=priority,
        permission=permission,
    )


def fallback_hook(description: str = "", permission: str = "admin") -> Callable:
    """
    兜底钩子装饰器 - 没有命令匹配时调用
    Fallback hook decorator - called when no command matches.
    """
    return hook(kind=HookKind.FALLBACK, description=description, priority=100, permission=permission)


def collect_hooks(owner: Any, pack_name: str = "") -> list[HookDescriptor]:
    """
    收集对象上所有带钩子的方法，并绑定到该对象
    Collect every hooked method of an object, bound to that object.
    """
    hooks: list[HookDescriptor] = []
    for _, member in inspect.getmembers(owner, predicate=inspect.ismethod):
        for descriptor in getattr(member.__func__, "_hook_descriptors", []):
            hooks.append(replace(descriptor, handler=member, pack_name=pack_name))
    hooks.sort(key=lambda h: h.priority)
    return hooks


def match_command(text: str, command: str) -> tuple[bool, str]:
    """
    检查文本是否匹配命令（忽略 @机器人名 后缀）
    Check if text matches a command, ignoring an @botname suffix.

    返回 (是否匹配, 剩余参数文本)
    Returns (matched, remaining argument text).
    """
    text = text.strip()
    if not text.startswith("/"):
        return False, ""

    parts = text[1:].split(maxsplit=1)
    if not parts:
        return False, ""

    name = parts[0].split("@", 1)[0]
    if name.lower() == command.lower():
        return True, parts[1] if len(parts) > 1 else ""

    return False, ""
