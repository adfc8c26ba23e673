"""工具模块 / Utility helpers."""
