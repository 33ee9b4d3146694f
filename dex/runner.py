"""
Main arbitrage scheduler.

Evaluates every monitored path once per cycle, gates the results, hands
profitable opportunities to the execution coordinator and publishes one
CycleReport per cycle to the registered sinks.
"""

import asyncio
import inspect
import re
from typing import Callable, List, Optional, Sequence

from flash_arbitrage.constants import DEFAULT_MAX_CONCURRENT_PATHS, DEFAULT_MONITORING_INTERVAL_SEC
from flash_arbitrage.exceptions import QuoteError
from flash_arbitrage.interfaces import Clock, SystemClock
from flash_arbitrage.utils import format_duration, format_profit, get_logger, timestamp_to_iso
from flash_arbitrage.version import get_version

from .evaluator import PathEvaluator
from .executor import ExecutionCoordinator
from .opportunity_math import ProfitabilityGate
from .types import CycleReport, MonitoredPath, PathResult, PathStatus

CycleSink = Callable[[CycleReport], object]


# ANSI color codes for pretty output
class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"

    @staticmethod
    def strip(text: str) -> str:
        """Remove all ANSI codes from text."""
        return re.sub(r"\033\[[0-9;]+m", "", text)


# Initialize logger
logger = get_logger(__name__)


class ArbitrageScheduler:
    """
    Fixed-interval evaluation loop.

    Each cycle starts `interval_sec` after the previous one started (or
    immediately if the previous cycle overran). Paths within a cycle run
    concurrently, at most `max_concurrent_paths` at a time, and one failing
    path never affects the others.
    """

    def __init__(
        self,
        paths: Sequence[MonitoredPath],
        evaluator: PathEvaluator,
        gate: ProfitabilityGate,
        coordinator: Optional[ExecutionCoordinator] = None,
        interval_sec: float = DEFAULT_MONITORING_INTERVAL_SEC,
        max_concurrent_paths: int = DEFAULT_MAX_CONCURRENT_PATHS,
        clock: Optional[Clock] = None,
        sinks: Sequence[CycleSink] = (),
    ):
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be positive: {interval_sec}")
        if max_concurrent_paths < 1:
            raise ValueError(f"max_concurrent_paths must be >= 1: {max_concurrent_paths}")

        self.paths = tuple(paths)
        self.evaluator = evaluator
        self.gate = gate
        self.coordinator = coordinator
        self.interval_sec = interval_sec
        self.max_concurrent_paths = max_concurrent_paths
        self.clock = clock or SystemClock()
        self.sinks: List[CycleSink] = list(sinks)

        self.cycle_count = 0
        self._stop_event = asyncio.Event()

    def add_sink(self, sink: CycleSink) -> None:
        self.sinks.append(sink)

    def stop(self) -> None:
        """Request a graceful stop: the in-flight cycle finishes, no new one starts."""
        if not self._stop_event.is_set():
            logger.info("Stop requested, finishing current cycle")
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def run(self, max_cycles: Optional[int] = None) -> int:
        """
        Run cycles until stop() is called or max_cycles cycles completed.

        Returns:
            Number of cycles run
        """
        cycles = 0
        while not self._stop_event.is_set():
            cycle_start = self.clock.monotonic()
            await self.run_cycle()
            cycles += 1

            if max_cycles is not None and cycles >= max_cycles:
                break
            if self._stop_event.is_set():
                break

            delay = max(0.0, cycle_start + self.interval_sec - self.clock.monotonic())
            await self._wait(delay)

        if self.coordinator is not None:
            await self.coordinator.wait_inflight()
        logger.info(f"Scheduler stopped after {cycles} cycle(s)")
        return cycles

    async def _wait(self, delay: float) -> None:
        """Sleep until the next cycle, waking early on stop()."""
        sleeper = asyncio.ensure_future(self.clock.sleep(delay))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            stopper.cancel()

    async def run_cycle(self) -> CycleReport:
        """Evaluate every monitored path once and publish the report."""
        self.cycle_count += 1
        cycle = self.cycle_count
        started_at = self.clock.now()

        # Bound concurrent evaluations (venue rate limits)
        semaphore = asyncio.Semaphore(self.max_concurrent_paths)

        async def run_one(monitored: MonitoredPath) -> PathResult:
            async with semaphore:
                return await self._process_path(monitored)

        results = await asyncio.gather(*(run_one(mp) for mp in self.paths))
        report = CycleReport(
            cycle=cycle,
            started_at=started_at,
            finished_at=self.clock.now(),
            results=tuple(results),
        )
        await self._publish(report)
        return report

    async def _process_path(self, monitored: MonitoredPath) -> PathResult:
        path = monitored.path
        try:
            evaluation = await self.evaluator.evaluate(path, monitored.amount_in)
            opportunity, decision = self.gate.assess(evaluation, monitored.estimated_cost)
        except QuoteError as e:
            logger.warning(f"{path.name}: {type(e).__name__}: {e}")
            return PathResult(
                path_name=path.name,
                status=PathStatus.ERROR,
                error_kind=type(e).__name__,
                error=str(e),
            )
        except Exception as e:
            logger.error(f"{path.name}: evaluation failed: {e}", exc_info=True)
            return PathResult(
                path_name=path.name,
                status=PathStatus.ERROR,
                error_kind=type(e).__name__,
                error=str(e),
            )

        if not decision.execute:
            return PathResult(
                path_name=path.name,
                status=PathStatus.NO_OPPORTUNITY,
                profit_percent=decision.profit_percent,
                opportunity=opportunity,
            )

        logger.info(
            f"Opportunity: {path.name} {format_profit(decision.profit_percent)} "
            f"(profit {decision.profit_absolute} on {monitored.amount_in})"
        )

        skipped = self._skip_reason(monitored)
        if skipped:
            return PathResult(
                path_name=path.name,
                status=PathStatus.OPPORTUNITY,
                profit_percent=decision.profit_percent,
                opportunity=opportunity,
                execution_skipped=skipped,
            )

        try:
            execution = await self.coordinator.execute(opportunity)
        except Exception as e:
            logger.error(f"{path.name}: execution crashed: {e}", exc_info=True)
            return PathResult(
                path_name=path.name,
                status=PathStatus.OPPORTUNITY,
                profit_percent=decision.profit_percent,
                opportunity=opportunity,
                error_kind=type(e).__name__,
                error=str(e),
            )

        return PathResult(
            path_name=path.name,
            status=PathStatus.OPPORTUNITY,
            profit_percent=decision.profit_percent,
            opportunity=opportunity,
            execution=execution,
        )

    def _skip_reason(self, monitored: MonitoredPath) -> Optional[str]:
        if self.coordinator is None:
            return "detection only"
        target = self.coordinator.target
        path = monitored.path
        if target.max_hops is not None and path.hop_count > target.max_hops:
            return f"{path.hop_count}-hop path exceeds target limit of {target.max_hops} hops"
        # The target settles its own venue order, not the quoted one
        if target.venue_order is not None and path.venue_ids != target.venue_order:
            return (
                f"venues {' -> '.join(path.venue_ids)} differ from target order "
                f"{' -> '.join(target.venue_order)}"
            )
        return None

    async def _publish(self, report: CycleReport) -> None:
        for sink in self.sinks:
            try:
                result = sink(report)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Cycle report sink {sink!r} failed: {e}", exc_info=True)


def log_cycle_report(report: CycleReport) -> None:
    """Sink: one summary line per cycle plus one line per error."""
    for result in report.errors:
        logger.warning(f"Cycle {report.cycle}: {result.path_name} {result.error_kind}: {result.error}")

    for result in report.opportunities:
        execution = result.execution
        if execution is None:
            status = f"skipped ({result.execution_skipped})" if result.execution_skipped else "not executed"
        else:
            status = execution.state.value
        logger.info(
            f"Cycle {report.cycle}: {result.path_name} {format_profit(result.profit_percent)} -> {status}"
        )

    logger.info(
        f"Cycle {report.cycle}: {len(report.results)} paths, "
        f"{len(report.opportunities)} opportunities, {len(report.errors)} errors "
        f"in {format_duration(report.duration_sec)}"
    )


class ConsoleReporter:
    """
    Sink printing a colored per-cycle table.

    In quiet mode only opportunities are printed immediately; everything else
    is folded into a batch summary every `batch_size` cycles.
    """

    def __init__(self, threshold_pct: float, quiet: bool = False, batch_size: int = 10):
        self.threshold_pct = threshold_pct
        self.quiet = quiet
        self.batch_size = batch_size
        self.batch_start_cycle = 1
        self.batch_best_pct: Optional[float] = None

    def print_banner(self, paths: Sequence[MonitoredPath], interval_sec: float, mode: str) -> None:
        c = Colors
        print(f"\n{c.CYAN}{c.BOLD}{'═' * 80}{c.RESET}")
        print(f"{c.CYAN}{c.BOLD}  FLASH ARBITRAGE ENGINE v{get_version()} {c.RESET}{c.CYAN}({mode}){c.RESET}")
        print(f"{c.CYAN}{'═' * 80}{c.RESET}\n")
        print(
            f"  {c.DIM}Paths:{c.RESET} {c.GREEN}{len(paths)}{c.RESET} | "
            f"{c.DIM}Interval:{c.RESET} {c.GREEN}{interval_sec}s{c.RESET} | "
            f"{c.DIM}Profit Threshold:{c.RESET} {c.GREEN}{self.threshold_pct:.2f}% NET{c.RESET}"
        )
        for monitored in paths:
            venues = ", ".join(monitored.path.venue_ids)
            print(f"    {monitored.name:<36} {c.DIM}via {venues}{c.RESET}")
        print(f"\n{c.CYAN}{'═' * 80}{c.RESET}\n")

    def __call__(self, report: CycleReport) -> None:
        if self.quiet:
            self._quiet(report)
        else:
            self._print_table(report)

    def _quiet(self, report: CycleReport) -> None:
        for result in report.results:
            if result.profit_percent is not None and (
                self.batch_best_pct is None or result.profit_percent > self.batch_best_pct
            ):
                self.batch_best_pct = result.profit_percent

        if report.opportunities:
            for result in report.opportunities:
                logger.info(f"OPPORTUNITY FOUND! (Cycle {report.cycle}) {result.path_name} "
                            f"{format_profit(result.profit_percent)}")
            self.batch_start_cycle = report.cycle + 1
            self.batch_best_pct = None
            return

        if report.cycle % self.batch_size == 0:
            best = "" if self.batch_best_pct is None else f" | best={format_profit(self.batch_best_pct)}"
            logger.info(f"Cycles {self.batch_start_cycle}-{report.cycle}: 0 opportunities{best}")
            self.batch_start_cycle = report.cycle + 1
            self.batch_best_pct = None

    def _print_table(self, report: CycleReport) -> None:
        c = Colors
        header = f"Path Results (Cycle #{report.cycle})"
        print(f"\n  {c.BOLD}{c.BLUE}{header:^72}{c.RESET}")
        print(f"  {c.BLUE}{'─' * 72}{c.RESET}")
        print(f"  {c.DIM}{timestamp_to_iso(report.finished_at)}{c.RESET}")

        ranked = sorted(
            report.results,
            key=lambda r: r.profit_percent if r.profit_percent is not None else float("-inf"),
            reverse=True,
        )
        for i, result in enumerate(ranked, 1):
            if result.status is PathStatus.ERROR:
                print(
                    f"  {c.YELLOW}!{c.RESET} {c.BOLD}{i:2d}.{c.RESET} {c.WHITE}{result.path_name:36s}{c.RESET} "
                    f"{c.DIM}{result.error_kind}: {result.error}{c.RESET}"
                )
                continue
            profitable = result.status is PathStatus.OPPORTUNITY
            icon = "✓" if profitable else "✗"
            color = c.GREEN if profitable else c.RED
            suffix = ""
            if result.execution is not None:
                suffix = f" {c.DIM}->{c.RESET} {result.execution.state.value}"
            elif result.execution_skipped:
                suffix = f" {c.DIM}-> skipped: {result.execution_skipped}{c.RESET}"
            print(
                f"  {color}{icon}{c.RESET} {c.BOLD}{i:2d}.{c.RESET} {c.WHITE}{result.path_name:36s}{c.RESET} "
                f"{c.BOLD}Net:{c.RESET} {color}{format_profit(result.profit_percent)}{c.RESET}{suffix}"
            )

        print(f"\n  {c.BLUE}{'─' * 72}{c.RESET}")
        if report.opportunities:
            print(f"  {c.GREEN}✓{c.RESET} {c.BOLD}{len(report.opportunities)} PROFITABLE{c.RESET} paths found!")
        else:
            print(f"  {c.DIM}Summary: Checked {len(report.results)} paths, 0 profitable{c.RESET}")
        print()
