"""
Logging System - Centralized logging setup for the bridge.

Colored console output through colorlog plus a rotating log file.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

import colorlog

ROOT_LOGGER = "HyperBridge"

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Handlers installed by setup_logging, so a second call replaces them
_installed: list[logging.Handler] = []


def _console_handler(level: int) -> logging.Handler:
    formatter = colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s | %(levelname)-8s | %(name)s%(reset)s | %(message)s",
        datefmt=_DATE_FORMAT,
        log_colors={
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "red,bg_white",
        },
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def _file_handler(log_file: str) -> logging.Handler:
    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging(level: str | int = "INFO", log_file: str | None = None) -> logging.Logger:
    """
    Configure the HyperBridge logger tree.

    Safe to call more than once: handlers from an earlier call are removed first.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger(ROOT_LOGGER)
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(logging.DEBUG)
    root.propagate = False

    _installed.append(_console_handler(level))
    if log_file:
        _installed.append(_file_handler(log_file))

    for handler in _installed:
        root.addHandler(handler)

    # Transport libraries are chatty at DEBUG
    for noisy in ("httpx", "telegram", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root.info("日志系统已初始化 (级别=%s)", logging.getLevelName(level))
    return root

