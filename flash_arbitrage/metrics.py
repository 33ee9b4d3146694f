"""
Prometheus metrics for the flash arbitrage engine.

ArbitrageMetrics is registered as a cycle-report sink and optionally serves
/metrics and /health over aiohttp.
"""

import logging
import threading
from typing import Optional

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from dex.types import CycleReport, PathStatus

logger = logging.getLogger(__name__)


class ArbitrageMetrics:
    """
    Engine metrics collection and exposure

    Provides Prometheus-compatible metrics for:
    - Cycles and their duration
    - Path evaluation outcomes and last profit per path
    - Execution attempts by terminal state
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()

        # Server components
        self._runner = None
        self._site = None

        # Thread-safe access
        self._lock = threading.RLock()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === CYCLE METRICS ===
        self.cycles_total = Counter(
            "flash_arbitrage_cycles_total",
            "Total number of evaluation cycles completed",
            registry=self.registry,
        )

        self.cycle_duration_seconds = Histogram(
            "flash_arbitrage_cycle_duration_seconds",
            "Wall time of one evaluation cycle",
            buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=self.registry,
        )

        # === PATH METRICS ===
        self.path_evaluations_total = Counter(
            "flash_arbitrage_path_evaluations_total",
            "Path evaluations by outcome",
            ["path", "status"],
            registry=self.registry,
        )

        self.path_errors_total = Counter(
            "flash_arbitrage_path_errors_total",
            "Path evaluation errors by exception kind",
            ["path", "error_kind"],
            registry=self.registry,
        )

        self.last_profit_percent = Gauge(
            "flash_arbitrage_last_profit_percent",
            "Net profit percent of the last successful evaluation",
            ["path"],
            registry=self.registry,
        )

        self.opportunities_total = Counter(
            "flash_arbitrage_opportunities_total",
            "Opportunities that cleared the profit threshold",
            ["path"],
            registry=self.registry,
        )

        # === EXECUTION METRICS ===
        self.executions_total = Counter(
            "flash_arbitrage_executions_total",
            "Execution attempts by terminal state",
            ["path", "state"],
            registry=self.registry,
        )

        self.executions_skipped_total = Counter(
            "flash_arbitrage_executions_skipped_total",
            "Opportunities that were not executed",
            ["path"],
            registry=self.registry,
        )

        self.reconciliation_required_total = Counter(
            "flash_arbitrage_reconciliation_required_total",
            "Attempts whose on-chain outcome is unknown",
            ["path"],
            registry=self.registry,
        )

        self.last_cycle_timestamp = Gauge(
            "flash_arbitrage_last_cycle_timestamp",
            "Unix timestamp of the last completed cycle",
            registry=self.registry,
        )

    def record_cycle_report(self, report: CycleReport) -> None:
        """Fold one cycle report into the metrics."""
        with self._lock:
            self.cycles_total.inc()
            self.cycle_duration_seconds.observe(max(0.0, report.duration_sec))
            self.last_cycle_timestamp.set(report.finished_at)

            for result in report.results:
                path = result.path_name
                self.path_evaluations_total.labels(path=path, status=result.status.value).inc()
                if result.error_kind:
                    self.path_errors_total.labels(path=path, error_kind=result.error_kind).inc()
                if result.profit_percent is not None:
                    self.last_profit_percent.labels(path=path).set(result.profit_percent)
                if result.status is PathStatus.OPPORTUNITY:
                    self.opportunities_total.labels(path=path).inc()
                if result.execution_skipped:
                    self.executions_skipped_total.labels(path=path).inc()

                execution = result.execution
                if execution is not None:
                    self.executions_total.labels(path=path, state=execution.state.value).inc()
                    if execution.requires_reconciliation:
                        self.reconciliation_required_total.labels(path=path).inc()

    __call__ = record_cycle_report

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ) -> bool:
        """Start Prometheus metrics HTTP server"""
        try:
            app = web.Application()
            app.router.add_get(path, self._metrics_handler)
            app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"Prometheus metrics server started on http://{host}:{port}{path}")
            return True

        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            if self._runner is not None:
                await self._runner.cleanup()
            self._site = None
            self._runner = None
            return False

    async def stop_server(self):
        """Stop the metrics server"""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        """Handle metrics endpoint requests"""
        metrics_output = generate_latest(self.registry)
        # Strip charset from content type to avoid conflicts with aiohttp
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=metrics_output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        """Handle health check endpoint"""
        return web.json_response({"status": "healthy", "service": "flash_arbitrage"})
