"""
Unit tests for Prometheus metrics
"""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from prometheus_client import CollectorRegistry, generate_latest

from dex.types import (
    AttemptState,
    CycleReport,
    ExecutionResult,
    PathResult,
    PathStatus,
)
from flash_arbitrage.metrics import ArbitrageMetrics


@pytest.fixture
def test_registry():
    """Create a test-specific registry"""
    return CollectorRegistry()


@pytest.fixture
def metrics(test_registry):
    """Create ArbitrageMetrics instance with test registry"""
    return ArbitrageMetrics(test_registry)


def sample_report():
    return CycleReport(
        cycle=1,
        started_at=100.0,
        finished_at=101.5,
        results=(
            PathResult("weth-dai", PathStatus.NO_OPPORTUNITY, profit_percent=0.25),
            PathResult("weth-usdc", PathStatus.ERROR, error_kind="QuoteUnavailable", error="no pool"),
            PathResult(
                "weth-wbtc",
                PathStatus.OPPORTUNITY,
                profit_percent=0.8,
                execution=ExecutionResult(
                    path_name="weth-wbtc",
                    state=AttemptState.TIMED_OUT,
                    succeeded=False,
                    requires_reconciliation=True,
                ),
            ),
            PathResult(
                "weth-usdt",
                PathStatus.OPPORTUNITY,
                profit_percent=0.7,
                execution_skipped="detection only",
            ),
        ),
    )


class TestArbitrageMetrics:
    """Test ArbitrageMetrics functionality"""

    def test_initialization(self, metrics):
        assert metrics.registry is not None
        assert hasattr(metrics, "cycles_total")
        assert hasattr(metrics, "executions_total")

    def test_record_cycle_report(self, metrics, test_registry):
        metrics.record_cycle_report(sample_report())

        assert test_registry.get_sample_value("flash_arbitrage_cycles_total") == 1
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_path_evaluations_total",
                {"path": "weth-usdc", "status": "error"},
            )
            == 1
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_path_errors_total",
                {"path": "weth-usdc", "error_kind": "QuoteUnavailable"},
            )
            == 1
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_last_profit_percent", {"path": "weth-dai"}
            )
            == 0.25
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_executions_total",
                {"path": "weth-wbtc", "state": "timed_out"},
            )
            == 1
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_reconciliation_required_total", {"path": "weth-wbtc"}
            )
            == 1
        )
        assert (
            test_registry.get_sample_value(
                "flash_arbitrage_executions_skipped_total", {"path": "weth-usdt"}
            )
            == 1
        )
        assert test_registry.get_sample_value("flash_arbitrage_last_cycle_timestamp") == 101.5
        assert test_registry.get_sample_value("flash_arbitrage_cycle_duration_seconds_count") == 1

    def test_usable_as_sink(self, metrics, test_registry):
        metrics(sample_report())
        metrics(sample_report())
        assert test_registry.get_sample_value("flash_arbitrage_cycles_total") == 2

    def test_exposition(self, metrics):
        metrics.record_cycle_report(sample_report())
        output = generate_latest(metrics.registry).decode("utf-8")
        assert "flash_arbitrage_cycles_total" in output
        assert "flash_arbitrage_opportunities_total" in output


class TestMetricsServer:
    """Test the aiohttp metrics endpoint"""

    @pytest.mark.asyncio
    async def test_server_lifecycle(self, metrics, unused_tcp_port):
        metrics.record_cycle_report(sample_report())
        assert await metrics.start_server(port=unused_tcp_port, host="127.0.0.1")
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(f"http://127.0.0.1:{unused_tcp_port}/metrics") as resp:
                    assert resp.status == 200
                    assert "flash_arbitrage_cycles_total" in await resp.text()
                async with session.get(f"http://127.0.0.1:{unused_tcp_port}/health") as resp:
                    assert resp.status == 200
                    assert (await resp.json())["status"] == "healthy"
        finally:
            await metrics.stop_server()

    @pytest.mark.asyncio
    async def test_failed_bind_releases_runner(self, metrics):
        runner = MagicMock()
        runner.setup = AsyncMock()
        runner.cleanup = AsyncMock()
        site = MagicMock()
        site.start = AsyncMock(side_effect=OSError("Address already in use"))

        with patch("flash_arbitrage.metrics.web.AppRunner", return_value=runner), patch(
            "flash_arbitrage.metrics.web.TCPSite", return_value=site
        ):
            assert await metrics.start_server(port=8000) is False

        runner.cleanup.assert_awaited_once()
        assert metrics._runner is None
        assert metrics._site is None
