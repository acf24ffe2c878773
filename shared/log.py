#!/usr/bin/env python3
"""
Helper Bridge Logging

Every module gets its logger from get_logger(); each one writes to stdout
(coloured on a capable terminal) and to logs/bridge.log.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.warning("Send failed", extra={"cmd": "Test.Cmd", "echo": 42})

Environment:
    BRIDGE_LOG_LEVEL  default level when none is passed (INFO)
    BRIDGE_LOG_DIR    directory of bridge.log (logs)
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Dict, Any
import os

if TYPE_CHECKING:
    from shared.envelope import Packet


CONSOLE_FORMAT = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
FILE_FORMAT = '%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s'

# Context keys accepted through `extra`, in display order
CONTEXT_FIELDS = (('endpoint', 'ep'), ('state', 'state'), ('cmd', 'cmd'), ('echo', 'echo'))


# ========================================
#           LOGGING FORMATTERS
# ========================================

class GenericFormatter(logging.Formatter):
    """Prefixes the message with any bridge context found on the record"""

    def format(self, record: logging.LogRecord) -> str:
        context = [f"{label}={getattr(record, key)}"
                   for key, label in CONTEXT_FIELDS if hasattr(record, key)]
        if not context:
            return super().format(record)

        # Records are shared between handlers, restore the message afterwards
        original = record.msg
        record.msg = f"[{' '.join(context)}] {original}"
        try:
            return super().format(record)
        finally:
            record.msg = original


class ColoredFormatter(GenericFormatter):
    """GenericFormatter with ANSI coloured level names"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        levelname = record.levelname
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Examples:
        logger = get_logger(__name__)
        logger.critical("Connection lost", extra={"endpoint": "ws://127.0.0.1:13000/ws"})
    """
    logger = logging.getLogger(name)

    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    logger.setLevel(_get_log_level(level))
    logger.handlers.clear()
    _add_console_handler(logger)
    _add_file_handler(logger)
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    name = level or os.getenv('BRIDGE_LOG_LEVEL') or 'INFO'
    return getattr(logging, name.upper(), logging.INFO)


def _add_console_handler(logger: logging.Logger) -> None:
    handler = logging.StreamHandler(sys.stdout)
    if _supports_color():
        handler.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    else:
        handler.setFormatter(GenericFormatter(fmt=CONSOLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger) -> None:
    log_dir = Path(os.getenv('BRIDGE_LOG_DIR', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_dir / "bridge.log")
    handler.setFormatter(GenericFormatter(fmt=FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)


def _supports_color() -> bool:
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False
    return os.getenv("TERM", "") != "dumb"


# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """Configure the root logger once at application startup"""
    _configure_logger(logging.getLogger(), level)


def log_packet(logger: logging.Logger, level: str, message: str,
               packet: Optional["Packet"] = None,
               **context: Any) -> None:
    """
    Log a bridge packet event with cmd/echo context taken from the packet.

    Example:
        log_packet(logger, "debug", "Dispatching packet", packet=packet)
    """
    extra_context: Dict[str, Any] = {}
    if packet is not None:
        extra_context.update({'cmd': packet.command, 'echo': packet.sequence})
    extra_context.update(context)

    getattr(logger, level.lower())(message, extra=extra_context)
