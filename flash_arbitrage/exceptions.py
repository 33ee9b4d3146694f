"""
Exception hierarchy for the flash arbitrage engine.

Quote errors abort a single path evaluation, execution target errors abort a
single attempt, and configuration errors abort startup. Nothing here is
meant to escape the scheduler loop except ConfigurationError.
"""

from typing import Any, Dict, Optional


class ArbitrageError(Exception):
    """Base exception for all flash arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class QuoteError(ArbitrageError):
    """Raised when a venue cannot produce a quote for a hop."""

    def __init__(
        self,
        message: str,
        venue_id: Optional[str] = None,
        input_symbol: Optional[str] = None,
        output_symbol: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.venue_id = venue_id
        self.input_symbol = input_symbol
        self.output_symbol = output_symbol


class QuoteUnavailable(QuoteError):
    """The venue answered but has no liquidity or route for the hop."""

    pass


class VenueUnreachable(QuoteError):
    """The venue could not be reached (transient I/O failure)."""

    pass


class ExecutionTargetError(ArbitrageError):
    """Raised by an execution target when estimation or submission fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation


class SettlementTimeout(ArbitrageError):
    """Settlement was not observed before the deadline; outcome is unknown."""

    def __init__(
        self,
        message: str,
        handle: Optional[str] = None,
        timeout: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.handle = handle
        self.timeout = timeout
