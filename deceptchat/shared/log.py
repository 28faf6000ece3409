#!/usr/bin/env python3
"""
DeceptChat Logging Configuration

Centralized logging setup for consistent formatting across the client.
Supports both development (console) and production (file) modes.

Usage:
    from deceptchat.shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.warning("Frame dropped", extra={"user_id": "Player42", "frame_tag": "MATCH_SUCCESS"})
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"

        return super().format(record)


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        # Prefix chat context pulled from `extra`
        chat_context = []

        if hasattr(record, 'user_id'):
            chat_context.append(f"user={record.user_id}")
        if hasattr(record, 'frame_tag'):
            chat_context.append(f"frame={record.frame_tag}")
        if hasattr(record, 'connection_state'):
            chat_context.append(f"conn={record.connection_state}")

        if chat_context:
            context_str = f"[{' '.join(chat_context)}] "
            record.msg = f"{context_str}{record.msg}"

        return super().format(record)


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()
# Level set by configure_root_logging; applies to loggers configured later too
_level_override: Optional[str] = None

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if _is_development():
        _add_console_handler(logger, colored=True)
    else:
        _add_console_handler(logger, colored=False)

    if _file_logging_enabled():
        _add_file_handler(logger)

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    if level:
        return getattr(logging, level.upper(), logging.INFO)

    if _level_override:
        return getattr(logging, _level_override.upper(), logging.INFO)

    env_level = os.getenv('DECEPTCHAT_LOG_LEVEL')
    if env_level:
        return getattr(logging, env_level.upper(), logging.INFO)

    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _file_logging_enabled() -> bool:
    return os.getenv('DECEPTCHAT_LOG_FILE', '1').lower() not in ['0', 'false', 'no']


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    # stderr keeps log lines out of the chat transcript on stdout
    handler = logging.StreamHandler(sys.stderr)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredFormatter(fmt=fmt, datefmt='%H:%M:%S')
    else:
        formatter = GenericFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger) -> None:
    """Add file handler for production logging"""

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    handler = logging.FileHandler(log_dir / "deceptchat.log")

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        return (
            os.getenv("ANSICON") is not None
            or os.getenv("WT_SESSION") is not None
            or os.getenv("TERM_PROGRAM") == "vscode"
        )

    return True


# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Module loggers do not propagate, so the level is also pushed to every
    logger get_logger() has already configured.
    """
    global _level_override
    _level_override = level

    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)

    resolved = _get_log_level(level)
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(resolved)


def log_frame(logger: logging.Logger, level: str, message: str,
              frame: Any = None, **context: Any) -> None:
    """
    Log a protocol frame with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        frame: decoded frame; its tag (or variant name) is attached as `frame_tag`
        **context: Additional context fields

    Example:
        log_frame(logger, "warning", "Received simple message", frame=raw_frame)
    """
    extra_context = {}

    if frame is not None:
        tag = getattr(frame, 'tag', None)
        extra_context['frame_tag'] = getattr(tag, 'value', None) or type(frame).__name__

    extra_context.update(context)

    log_func = getattr(logger, level.lower())
    log_func(message, extra=extra_context)
