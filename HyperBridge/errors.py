"""
异常定义 - 桥接核心使用的异常层级
Exceptions - the exception hierarchy used by the bridge core.
"""

from __future__ import annotations


class BridgeError(Exception):
    """所有桥接异常的基类 / Base of all bridge errors."""

    pass


class ConnectionFatalError(BridgeError):
    """
    连接致命错误 - 超出重连次数或被登出
    Fatal connection error - reconnect budget exhausted or logged out.

    这是唯一允许终止进程的异常类型。
    This is the only error class allowed to terminate the process.
    """

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class ConnectionNotOpenError(BridgeError):
    """WhatsApp 连接尚未建立 / The WhatsApp socket is not open."""

    pass


class CorruptSessionError(BridgeError):
    """凭据归档损坏或缺少 creds.json / Credential archive is corrupt."""

    pass


class UnsupportedPayloadError(BridgeError):
    """没有转换规则的消息类型 / A payload kind with no translation rule."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"unsupported payload: {kind}")
        self.kind = kind


class TransferError(BridgeError):
    """媒体下载/上传在重试后仍失败 / Media transfer failed after retries."""

    pass
