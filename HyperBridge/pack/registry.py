"""
扩展包注册表 - 按名称注册扩展包并分发私聊命令
Pack registry - registers packs by name and dispatches private-chat commands.
"""

from __future__ import annotations

import logging

from HyperBridge.config.manager import ConfigManager
from HyperBridge.gateway.base import CommandMessage, ThreadGateway
from HyperBridge.pack.base import Pack
from HyperBridge.pack.hooks import HookDescriptor, HookKind, match_command

logger = logging.getLogger(__name__)


class PackRegistry:
    """
    扩展包注册表
    Pack registry.
    """

    def __init__(self, config: ConfigManager, gateway: ThreadGateway) -> None:
        self._config = config
        self._gateway = gateway
        self._packs: dict[str, Pack] = {}
        self._pack_hooks: dict[str, list[HookDescriptor]] = {}

    async def register(self, pack: Pack) -> None:
        """
        注册扩展包
        Register a pack.

        Raises:
            ValueError: 名称为空或已被占用。
        """
        if not pack.name:
            raise ValueError("扩展包必须有名称")
        if pack.name in self._packs:
            raise ValueError(f"扩展包已注册: {pack.name}")

        await pack.on_load()
        self._packs[pack.name] = pack
        self._pack_hooks[pack.name] = pack.hooks()
        logger.info("已加载扩展包: %s (%d 个钩子)", pack.name, len(self._pack_hooks[pack.name]))

    async def unregister(self, name: str) -> bool:
        pack = self._packs.pop(name, None)
        if pack is None:
            return False
        self._pack_hooks.pop(name, None)
        try:
            await pack.on_unload()
        except Exception:
            logger.exception("卸载扩展包 %s 出错", name)
        logger.info("已卸载扩展包: %s", name)
        return True

    async def unregister_all(self) -> None:
        for name in list(self._packs):
            await self.unregister(name)

    def command_menu(self) -> list[tuple[str, str]]:
        """命令菜单 (命令, 描述) / Command menu as (command, description)."""
        return [
            (h.pattern, h.description)
            for h in self._active_hooks()
            if h.kind == HookKind.COMMAND
        ]

    def _active_hooks(self) -> list[HookDescriptor]:
        hooks: list[HookDescriptor] = []
        for name, pack_hooks in self._pack_hooks.items():
            pack = self._packs.get(name)
            if pack is None or not pack.enabled:
                continue
            hooks.extend(h for h in pack_hooks if h.enabled)
        hooks.sort(key=lambda h: h.priority)
        return hooks

    def is_admin(self, sender_id: int | None) -> bool:
        """
        未配置管理员时所有人都有权限
        Everyone is allowed when no admins are configured.
        """
        admins = {str(a) for a in self._config.get("telegram.admin_ids", []) or []}
        owner = self._config.get("telegram.owner_id")
        if owner:
            admins.add(str(owner))
        if not admins:
            return True
        return sender_id is not None and str(sender_id) in admins

    async def dispatch(self, command: CommandMessage) -> bool:
        """
        把私聊命令分发给匹配的钩子，返回是否有钩子处理
        Dispatch a private command to the matching hook; returns whether one handled it.
        """
        hooks = self._active_hooks()
        target: HookDescriptor | None = None
        args = ""
        for h in hooks:
            if h.kind != HookKind.COMMAND:
                continue
            matched, args = match_command(command.text, h.pattern)
            if matched:
                target = h
                break
        if target is None and command.text.startswith("/"):
            target = next((h for h in hooks if h.kind == HookKind.FALLBACK), None)
        if target is None:
            return False

        if target.permission == "admin" and not self.is_admin(command.sender_id):
            logger.warning("拒绝非管理员 %s 的命令: %s", command.sender_id, command.text)
            return False

        try:
            reply = await target.handler(command, args)
        except Exception as exc:
            logger.exception("扩展包 %s 的钩子 %s 执行出错", target.pack_name, target.pattern or target.kind.value)
            reply = f"❌ Command error: {exc}"

        if reply:
            try:
                await self._gateway.send_private(command.chat_id, reply)
            except Exception as exc:
                logger.error("发送命令回复失败: %s", exc)
        return True
