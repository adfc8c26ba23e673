"""
内核 - 日志、信号中枢和启动引导
Kernel - logging, signal hub and bootstrap.
"""

from HyperBridge.kernel.logging import setup_logging
from HyperBridge.kernel.signal_hub import Signal, SignalHub, SignalKind

__all__ = ["Signal", "SignalHub", "SignalKind", "setup_logging"]
