"""
默认配置 - 桥接程序的所有默认配置值
Default configuration - all default configuration values of the bridge.
"""

from __future__ import annotations

from typing import Any

from HyperBridge import __version__

VERSION = __version__


def build_default_config() -> dict[str, Any]:
    """
    构建默认配置
    Build the default configuration.
    """
    return {
        # 桥接本身
        "bridge": {
            "name": "HyperBridge",
            # 桥接账号所有者的 WhatsApp JID，连接后自动填充
            "owner_jid": "",
            # 是否镜像自己发出的消息到话题
            "mirror_outgoing": True,
        },
        # WhatsApp（A 侧）连接配置
        "whatsapp": {
            "auth_dir": "data/auth_info",
            # "package.module:callable"，返回 MessengerSocket
            "socket_factory": "",
            "clear_auth_on_start": False,
            "connect_timeout": 60.0,
            "qr_timeout": 30.0,
            "max_reconnect_attempts": 5,
            "reconnect_delay": 5.0,
            # linear / exponential
            "backoff": "linear",
        },
        # Telegram（B 侧）配置
        "telegram": {
            "enabled": True,
            "bot_token": "",
            # 启用了话题的超级群 ID
            "chat_id": "",
            "owner_id": "",
            "log_channel": "",
            "proxy": "",
            "admin_ids": [],
            "features": {
                "media_sync": True,
                "profile_pic_sync": True,
                "call_logs": True,
                "status_sync": True,
                "presence_updates": True,
                "read_receipts": True,
                "animated_stickers": True,
            },
        },
        # 同步管线
        "pipeline": {
            "temp_dir": "data/temp",
            "read_receipt_delay": 2.0,
            "transfer_timeout": 60.0,
            "transfer_retries": 1,
            "max_transcodes": 2,
            "shutdown_grace": 10.0,
            "thread_verify_ttl": 300.0,
            "call_dedupe_window": 30.0,
        },
        # 存储配置
        "store": {
            "db_path": "data/bridge.db",
        },
        # 日志配置
        "logging": {
            "level": "INFO",
            "file": "data/logs/bridge.log",
        },
    }
