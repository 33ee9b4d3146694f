"""
Common utilities and helper functions for the flash arbitrage engine.

This module provides centralized helpers for logging setup, timestamp
formatting and basis point validation.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


# Timestamp utilities
def timestamp_to_iso(timestamp: float) -> str:
    """Convert Unix timestamp to ISO 8601 string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


# Math utilities
def is_valid_basis_points(value: Any) -> bool:
    """Check if value is valid basis points (0-10000)."""
    try:
        return 0 <= float(value) <= 10000
    except (ValueError, TypeError):
        return False


# Logging utilities
def get_logger(
    name: str,
    level: Union[str, int] = logging.INFO,
    extra: Optional[Dict[str, Any]] = None,
    minimal: bool = False,
) -> logging.Logger:
    """
    Get a structured logger with consistent formatting and extra context.

    Handlers are only attached when the root logger has none, so that
    ``logging_config.setup()`` owns formatting when the CLI is running.

    Args:
        name: Logger name (typically __name__)
        level: Logging level
        extra: Additional context fields to include in all log messages
        minimal: If True, use simplified format (time + message only)

    Returns:
        Configured logger with structured output
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()

        if minimal:
            format_str = "%(asctime)s | %(message)s"
        else:
            format_str = (
                "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | " "%(message)s"
            )

        if extra:
            extra_fields = " | ".join([f"{k}=%(extra_{k})s" for k in extra.keys()])
            format_str = format_str.replace(
                " | %(message)s", f" | {extra_fields} | %(message)s"
            )

        formatter = logging.Formatter(format_str, datefmt="%H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if extra:
            logger = logging.LoggerAdapter(
                logger, {"extra_" + k: v for k, v in extra.items()}
            )

    return logger


def format_profit(profit_pct: float) -> str:
    """Format a profit percentage with a sign prefix.

    Examples:
        >>> format_profit(0.6)
        '+0.6000%'
        >>> format_profit(-0.0456)
        '-0.0456%'
    """
    if profit_pct >= 0:
        return f"+{profit_pct:.4f}%"
    return f"{profit_pct:.4f}%"
