"""
扩展包基类 - 所有扩展包的父类
Pack base - parent of all extension packs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from HyperBridge.pack.hooks import HookDescriptor, collect_hooks

if TYPE_CHECKING:
    from HyperBridge.kernel.bootstrap import BridgeApp

logger = logging.getLogger(__name__)


class Pack:
    """
    扩展包基类
    Pack base.

    生命周期：
    1. __init__(app) - 构造
    2. on_load() - 注册到 PackRegistry 时调用
    3. on_unload() - 注销或关闭时调用

    扩展包只通过 BridgeApp 的公开接口访问桥接核心。
    Packs reach the bridge core only through BridgeApp's public interface.
    """

    name: str = ""
    description: str = ""
    version: str = "0.1.0"

    def __init__(self, app: BridgeApp) -> None:
        self._app = app
        self._enabled = True

    @property
    def app(self) -> BridgeApp:
        return self._app

    @property
    def enabled(self) -> bool:
        """是否启用 / Whether enabled."""
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def hooks(self) -> list[HookDescriptor]:
        """本包声明的钩子 / Hooks declared by this pack."""
        return collect_hooks(self, self.name)

    async def on_load(self) -> None:
        """
        加载时调用 - 可在此处进行初始化
        Called on load - perform initialization here.
        """
        pass

    async def on_unload(self) -> None:
        """
        卸载时调用 - 可在此处进行清理
        Called on unload - perform cleanup here.
        """
        pass

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        获取包配置（packs.<name>.<key>）
        Get pack configuration (packs.<name>.<key>).
        """
        return self._app.config.get(f"packs.{self.name}.{key}", default)
