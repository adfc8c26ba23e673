"""
配置管理器 - 读写和合并桥接配置
Config manager - reads, writes, and merges the bridge configuration.

使用 JSON 文件存储，启动时补齐缺失的默认值，支持 "a.b.c" 形式的嵌套键。
Stored as JSON; missing defaults are filled in at startup; nested "a.b.c" keys.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from typing import Any

from HyperBridge.utils.paths import data_file

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "bridge_config.json"


class ConfigManager:
    """
    配置管理器 - 桥接程序的配置中心
    Config manager - the configuration center of the bridge.
    """

    def __init__(
        self,
        defaults: dict[str, Any] | None = None,
        config_path: str | None = None,
    ) -> None:
        self._defaults = defaults or {}
        self._config: dict[str, Any] = {}
        self._config_path = config_path or data_file("config", CONFIG_FILENAME)

    @property
    def path(self) -> str:
        return self._config_path

    async def load(self) -> None:
        """
        加载配置文件，并把默认值合并进去
        Load the configuration file and merge defaults into it.
        """
        os.makedirs(os.path.dirname(self._config_path) or ".", exist_ok=True)

        if os.path.exists(self._config_path):
            try:
                with open(self._config_path, encoding="utf-8") as f:
                    self._config = json.load(f)
                logger.info("配置已从 %s 加载", self._config_path)
            except (json.JSONDecodeError, OSError):
                logger.warning("加载配置失败，使用默认值: %s", self._config_path)
                self._config = {}
        else:
            self._config = {}
            logger.info("未找到配置文件，将创建默认配置: %s", self._config_path)

        self._merge_defaults(self._config, copy.deepcopy(self._defaults))
        await self.save()

    async def save(self) -> None:
        """
        保存配置到文件
        Save configuration to file.
        """
        try:
            with open(self._config_path, "w", encoding="utf-8") as f:
                json.dump(self._config, f, ensure_ascii=False, indent=2)
        except OSError:
            logger.exception("保存配置失败")

    def get(self, key: str, default: Any = None) -> Any:
        """
        获取配置值（支持嵌套键，如 "telegram.chat_id"）
        Get a config value (supports nested keys like "telegram.chat_id").
        """
        current: Any = self._config
        for k in key.split("."):
            if not isinstance(current, dict):
                return default
            current = current.get(k)
            if current is None:
                return default
        return current

    def set(self, key: str, value: Any) -> None:
        """
        设置配置值（仅内存，需调用 save 持久化）
        Set a config value (in memory; call save to persist).
        """
        keys = key.split(".")
        current = self._config
        for k in keys[:-1]:
            if k not in current or not isinstance(current[k], dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value

    def feature(self, name: str) -> bool:
        """Telegram 功能开关 / Telegram feature toggle."""
        return bool(self.get(f"telegram.features.{name}", False))

    def as_dict(self) -> dict[str, Any]:
        """获取完整配置字典 / Get the full config dictionary."""
        return copy.deepcopy(self._config)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigManager:
        """
        从字典直接构建（不读写文件，用于测试和嵌入）
        Build directly from a dict without touching disk.
        """
        from HyperBridge.config.defaults import build_default_config

        mgr = cls(defaults=build_default_config(), config_path=os.devnull)
        mgr._config = copy.deepcopy(data)
        mgr._merge_defaults(mgr._config, build_default_config())
        return mgr

    def _merge_defaults(self, config: dict[str, Any], defaults: dict[str, Any]) -> None:
        """
        递归合并默认值到配置中（不覆盖已有值）
        Recursively merge defaults into config (does not overwrite existing).
        """
        for key, default_value in defaults.items():
            if key not in config:
                config[key] = default_value
            elif isinstance(default_value, dict) and isinstance(config[key], dict):
                self._merge_defaults(config[key], default_value)
