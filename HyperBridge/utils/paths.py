"""
路径工具 - 管理桥接程序的数据目录
Path utility - manages the bridge's data directories.

所有目录都位于数据根目录之下，可通过 HYPERBRIDGE_DATA_PATH 重定位。
Every directory lives under the data root, relocatable via HYPERBRIDGE_DATA_PATH.
"""

from __future__ import annotations

import os


def get_data_path() -> str:
    """获取数据根目录 / Get the data root directory."""
    path = os.environ.get("HYPERBRIDGE_DATA_PATH", "data")
    os.makedirs(path, exist_ok=True)
    return path


def data_file(*parts: str) -> str:
    """拼接数据目录下的路径（不创建） / Join a path under the data root."""
    return os.path.join(get_data_path(), *parts)


def get_config_path() -> str:
    """获取配置目录路径 / Get config directory path."""
    path = data_file("config")
    os.makedirs(path, exist_ok=True)
    return path


def get_temp_path() -> str:
    """获取媒体临时目录路径 / Get the media scratch directory path."""
    path = data_file("temp")
    os.makedirs(path, exist_ok=True)
    return path


def get_logs_path() -> str:
    """获取日志目录路径 / Get logs directory path."""
    path = data_file("logs")
    os.makedirs(path, exist_ok=True)
    return path
