"""
内置扩展包
Built-in packs.
"""

from HyperBridge.pack.builtin.bridge_commands import BridgeCommandsPack

__all__ = ["BridgeCommandsPack"]
