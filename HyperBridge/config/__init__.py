"""
配置模块 - 默认值与 JSON 配置管理
Config module - defaults and JSON configuration management.
"""

from HyperBridge.config.defaults import VERSION, build_default_config
from HyperBridge.config.manager import ConfigManager

__all__ = ["ConfigManager", "build_default_config", "VERSION"]
