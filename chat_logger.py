"""
chat_logger.py - Centralized logging configuration for the ECODATA chat API

Sets up Python logging with:
- File handler: logs/YYYY-MM-DD/chat.txt (one folder per day)
- Console handler: stderr
- Level from the LOG_LEVEL env variable, root folder from LOG_DIR
- Helpers that keep user text and provider credentials out of log lines
"""

import os
import re
import logging
from datetime import datetime
from pathlib import Path

LOGGER_NAME = "ecodata_chat"
LOG_PREVIEW_CHARS = 100
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Control characters (newlines included) would let a visitor forge log lines
_CONTROL_CHARS = {code: " " for code in range(32)}

_SECRET_PATTERNS = [
    (re.compile(r"Bearer\s+[A-Za-z0-9._\-]+"), "Bearer ***"),
    (re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"), "sk-***"),
    (re.compile(r"(api[-_]?key[\"'=:\s]+)[^\s\"'&,]+", re.IGNORECASE), r"\1***"),
]


def sanitize_log_string(text: str) -> str:
    """Replace control characters with spaces so one call writes one log line."""
    if not text:
        return text
    return text.translate(_CONTROL_CHARS)


def preview_for_log(text: str, limit: int = LOG_PREVIEW_CHARS) -> str:
    """Truncate and sanitize user text so full messages never land in the logs."""
    if not text:
        return ""
    if len(text) > limit:
        text = text[:limit] + "..."
    return sanitize_log_string(text)


def redact_secrets(text: str) -> str:
    """
    Mask provider credentials (bearer tokens, sk- keys, api-key values).

    Provider error bodies sometimes echo the request headers back.
    """
    if not text:
        return text
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class MillisecondFormatter(logging.Formatter):
    """Formatter whose timestamps carry milliseconds: 2024-05-01 09:30:12.045"""

    def formatTime(self, record, datefmt=None):
        if not datefmt:
            return super().formatTime(record, datefmt)
        stamp = datetime.fromtimestamp(record.created).strftime(datefmt)
        return f"{stamp}.{int(record.msecs):03d}"


def _level(log_level: str) -> int:
    return getattr(logging, log_level.upper(), logging.INFO)


def _daily_file_handler(log_dir: str, formatter: logging.Formatter) -> logging.Handler:
    dated_dir = Path(log_dir) / datetime.now().strftime("%Y-%m-%d")
    dated_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(dated_dir / "chat.txt", encoding="utf-8")
    handler.setLevel(logging.DEBUG)  # file keeps everything
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str = LOGGER_NAME, log_level: str = "INFO", log_dir: str = "logs") -> logging.Logger:
    """
    Configure and return a logger with file and console handlers.

    Args:
        name: Logger name
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Root directory for the dated log folders

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level(log_level))

    # Calling setup twice must not double every line
    if logger.handlers:
        return logger

    formatter = MillisecondFormatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logger.addHandler(_daily_file_handler(log_dir, formatter))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(_level(log_level))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return the shared logger, configuring it from the environment on first use."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        setup_logger(name, os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_DIR", "logs"))
    return logger
