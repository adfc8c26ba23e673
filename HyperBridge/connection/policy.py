"""
断开策略 - 断开原因分类与重连退避
Disconnect policy - disconnect classification and reconnect backoff.
"""

from __future__ import annotations

from enum import Enum


class DisconnectReason(Enum):
    """断开原因及其状态码 / Disconnect reasons and their status codes."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503
    UNKNOWN = 0

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_REASONS


TERMINAL_REASONS = frozenset(
    {
        DisconnectReason.LOGGED_OUT,
        DisconnectReason.BAD_SESSION,
        DisconnectReason.FORBIDDEN,
        DisconnectReason.MULTIDEVICE_MISMATCH,
    }
)

MAX_BACKOFF = 300.0


def classify_disconnect(status_code: int | None) -> DisconnectReason:
    """
    把状态码映射为断开原因；未知码视为可重试
    Map a status code to a reason; unknown codes are retryable.
    """
    if status_code is None:
        return DisconnectReason.UNKNOWN
    try:
        return DisconnectReason(status_code)
    except ValueError:
        return DisconnectReason.UNKNOWN


def backoff_delay(attempt: int, base: float, mode: str = "linear") -> float:
    """
    第 attempt 次重连前的等待秒数
    Seconds to wait before reconnect number `attempt`.

    linear: base * attempt; exponential: base * 2^(attempt-1)，上限 MAX_BACKOFF。
    """
    attempt = max(1, attempt)
    if mode == "exponential":
        delay = base * (2 ** (attempt - 1))
    else:
        delay = base * attempt
    return min(delay, MAX_BACKOFF)
