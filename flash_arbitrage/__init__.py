"""
Flash Arbitrage Engine.

Monitors round-trip swap paths across DEX venues, decides profitability
with exact integer math and settles profitable opportunities atomically
through a flash-loan contract (or a paper target).

Shared plumbing lives here (exceptions, constants, clock, logging helpers,
metrics); the engine itself lives in the ``dex`` package.
"""

from flash_arbitrage.version import __version__

PROJECT_NAME = "flash-arbitrage"
VERSION = __version__

from flash_arbitrage.exceptions import (
    ArbitrageError,
    ConfigurationError,
    ExecutionTargetError,
    QuoteError,
    QuoteUnavailable,
    SettlementTimeout,
    VenueUnreachable,
)
from flash_arbitrage.interfaces import Clock, DeterministicClock, SystemClock

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "__version__",
    "ArbitrageError",
    "ConfigurationError",
    "QuoteError",
    "QuoteUnavailable",
    "VenueUnreachable",
    "ExecutionTargetError",
    "SettlementTimeout",
    "Clock",
    "SystemClock",
    "DeterministicClock",
]
