"""网关适配器 / Gateway adapters."""

from HyperBridge.gateway.adapters.telegram_adapter import TelegramGateway

__all__ = ["TelegramGateway"]
