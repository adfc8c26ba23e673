"""
HyperBridge - WhatsApp 与 Telegram 论坛话题之间的双向消息桥
HyperBridge - bidirectional bridge between WhatsApp and Telegram forum topics.
"""

__app_name__ = "HyperBridge"
__version__ = "2.0.0"
