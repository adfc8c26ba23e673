"""
网关模块 - Telegram 论坛话题一侧的适配层
Gateway module - the adapter layer for the Telegram forum-topic side.
"""

from HyperBridge.gateway.base import (
    CommandMessage,
    GatewayMetadata,
    GatewayStatus,
    ThreadGateway,
    ThreadMessage,
)

__all__ = [
    "CommandMessage",
    "GatewayMetadata",
    "GatewayStatus",
    "ThreadGateway",
    "ThreadMessage",
]
