"""
扩展包系统 - 私聊命令的注册和分发
Pack system - registration and dispatch of private-chat commands.
"""

from HyperBridge.pack.base import Pack
from HyperBridge.pack.hooks import HookDescriptor, HookKind, command_hook, fallback_hook, match_command
from HyperBridge.pack.registry import PackRegistry

__all__ = [
    "HookDescriptor",
    "HookKind",
    "Pack",
    "PackRegistry",
    "command_hook",
    "fallback_hook",
    "match_command",
]
