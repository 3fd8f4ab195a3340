"""
Logging configuration for the order assistant.

Usage:
    from order_assistant.logging_config import setup_logging
    setup_logging()  # Call once at application startup

Environment variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    LOG_FORMAT: "standard" (timestamped) or "compact" (default: standard).
        Compact suits hosts that timestamp stdout themselves.
    LOG_LEVELS: per-logger overrides applied last, e.g.
        "order_assistant.services.cart=DEBUG,sqlalchemy.engine=INFO"
"""
import logging
import os
import sys
from typing import Dict, Optional, TextIO

VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

FORMATS = {
    "standard": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "compact": "%(levelname)s %(name)s: %(message)s",
}

# Quieted to WARNING unless debugging
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "sqlalchemy.engine")


def resolve_format(fmt: Optional[str] = None) -> str:
    """Format string for a format name, falling back to LOG_FORMAT and then "standard"."""
    name = (fmt or os.getenv("LOG_FORMAT") or "standard").strip().lower()
    return FORMATS.get(name, FORMATS["standard"])


def parse_level_overrides(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse "logger=LEVEL,logger=LEVEL". Entries without "=" or with an
    unknown level are dropped.
    """
    overrides: Dict[str, str] = {}
    for entry in (raw or "").split(","):
        name, sep, level = entry.partition("=")
        name, level = name.strip(), level.strip().upper()
        if sep and name and level in VALID_LEVELS:
            overrides[name] = level
    return overrides


def setup_logging(
    level: str = None,
    fmt: str = None,
    stream: Optional[TextIO] = None,
) -> str:
    """
    Configure logging for the application.

    Args:
        level: Log level string. Defaults to LOG_LEVEL, then INFO; unknown
               values fall back to INFO.
        fmt: "standard" or "compact". Defaults to LOG_FORMAT, then standard.
        stream: Where the root handler writes (default: sys.stdout).

    Returns:
        The level name applied to the order_assistant logger.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.strip().upper()
    if level not in VALID_LEVELS:
        level = "INFO"
    numeric_level = getattr(logging, level)

    logging.basicConfig(
        level=numeric_level,
        format=resolve_format(fmt),
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=stream or sys.stdout,
    )
    logging.getLogger("order_assistant").setLevel(numeric_level)

    if level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    overrides = parse_level_overrides(os.getenv("LOG_LEVELS"))
    for name, override in overrides.items():
        logging.getLogger(name).setLevel(getattr(logging, override))

    logging.getLogger(__name__).debug(
        "Logging configured at %s level with %d override(s)", level, len(overrides),
    )
    return level
