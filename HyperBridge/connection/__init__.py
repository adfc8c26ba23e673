"""
连接生命周期模块 - 管理 WhatsApp 套接字
Connection lifecycle module - owns the WhatsApp socket.
"""

from HyperBridge.connection.base import (
    ConnectionUpdate,
    MessageKey,
    MessengerSocket,
    SocketEvent,
    SocketFactory,
    load_socket_factory,
)
from HyperBridge.connection.manager import ConnectionManager, ConnectionState
from HyperBridge.connection.policy import DisconnectReason, backoff_delay, classify_disconnect

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "ConnectionUpdate",
    "DisconnectReason",
    "MessageKey",
    "MessengerSocket",
    "SocketEvent",
    "SocketFactory",
    "backoff_delay",
    "classify_disconnect",
    "load_socket_factory",
]
