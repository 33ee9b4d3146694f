"""
Unit tests for flash_arbitrage.utils module.
"""

import logging

from flash_arbitrage.utils import (
    format_duration,
    format_profit,
    get_logger,
    is_valid_basis_points,
    timestamp_to_iso,
)


class TestTimestampUtils:
    """Test timestamp utilities."""

    def test_timestamp_to_iso(self):
        assert timestamp_to_iso(1640995200.0) == "2022-01-01T00:00:00+00:00"

    def test_format_duration(self):
        assert format_duration(1.234) == "1.23s"
        assert format_duration(90) == "1.5m"
        assert format_duration(5400) == "1.5h"


class TestMathUtils:
    """Test basis point helpers."""

    def test_is_valid_basis_points(self):
        assert is_valid_basis_points(0)
        assert is_valid_basis_points("30")
        assert not is_valid_basis_points(-1)
        assert not is_valid_basis_points(10001)
        assert not is_valid_basis_points("abc")
        assert not is_valid_basis_points(None)


class TestFormatProfit:
    """Test profit formatting."""

    def test_positive(self):
        assert format_profit(0.6) == "+0.6000%"

    def test_negative(self):
        assert format_profit(-0.0456) == "-0.0456%"

    def test_zero(self):
        assert format_profit(0) == "+0.0000%"


class TestGetLogger:
    """Test logger factory."""

    def test_returns_named_logger(self):
        logger = get_logger("flash_arbitrage.tests.named")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "flash_arbitrage.tests.named"

    def test_level_only_set_once(self):
        logger = get_logger("flash_arbitrage.tests.level", level=logging.DEBUG)
        again = get_logger("flash_arbitrage.tests.level", level=logging.ERROR)
        assert again is logger
        assert logger.level == logging.DEBUG

    def test_no_duplicate_handlers(self):
        logger = get_logger("flash_arbitrage.tests.handlers")
        count = len(logger.handlers)
        get_logger("flash_arbitrage.tests.handlers")
        assert len(logger.handlers) == count

    def test_extra_fields_use_adapter(self):
        root = logging.getLogger()
        saved = root.handlers[:]
        root.handlers.clear()
        try:
            logger = get_logger("flash_arbitrage.tests.extra", extra={"venue": "jupiter"})
        finally:
            root.handlers[:] = saved
        assert isinstance(logger, logging.LoggerAdapter)
        assert logger.extra == {"extra_venue": "jupiter"}
