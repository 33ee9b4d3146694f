"""
Execution coordinator: drives one opportunity through the attempt lifecycle.

Handles:
- Cost estimation with a safety multiplier on top of the raw estimate
- Atomic submission through the configured execution target
- Bounded settlement wait and event verification
- Execution statistics
"""

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Optional, Set

from flash_arbitrage.constants import (
    DEFAULT_COST_SAFETY_MULTIPLIER_PCT,
    DEFAULT_EXECUTION_TIMEOUT_SEC,
)
from flash_arbitrage.exceptions import SettlementTimeout
from flash_arbitrage.interfaces import Clock, SystemClock
from flash_arbitrage.utils import get_logger

from .targets import ExecutionTarget
from .types import (
    ArbitrageOpportunity,
    AttemptState,
    ExecutionAttempt,
    ExecutionResult,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionPolicy:
    """
    Configuration for arbitrage execution.

    Attributes:
        cost_safety_multiplier_pct: Percent added on top of the raw cost estimate
        settlement_timeout_sec: How long the target may wait for settlement
        deadline_grace_sec: Extra time before the coordinator gives up on the target
    """

    cost_safety_multiplier_pct: int = DEFAULT_COST_SAFETY_MULTIPLIER_PCT
    settlement_timeout_sec: float = DEFAULT_EXECUTION_TIMEOUT_SEC
    deadline_grace_sec: float = 5.0


def apply_safety_multiplier(raw_estimate: int, multiplier_pct: int) -> int:
    """raw * (100 + pct) / 100, rounded down. 100_000 at 20% -> 120_000."""
    return raw_estimate * (100 + multiplier_pct) // 100


class ExecutionCoordinator:
    """
    Executes opportunities against an ExecutionTarget.

    Every call to execute() ends in a terminal AttemptState and returns an
    ExecutionResult; nothing is retried. From submission onwards the attempt
    runs shielded, so cancelling the caller never abandons a submitted
    transaction halfway.
    """

    def __init__(
        self,
        target: ExecutionTarget,
        policy: Optional[ExecutionPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        self.target = target
        self.policy = policy or ExecutionPolicy()
        self.clock = clock or SystemClock()

        # Execution statistics
        self.executions_attempted = 0
        self.executions_verified = 0
        self.state_counts: Counter = Counter()
        self._inflight: Set[asyncio.Task] = set()

    async def execute(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        attempt = ExecutionAttempt(opportunity=opportunity, started_at=self.clock.monotonic())
        self.executions_attempted += 1

        if await self._estimate(attempt):
            task = asyncio.ensure_future(self._submit_and_settle(attempt))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # The attempt keeps running; record it once it is terminal
                task.add_done_callback(lambda _: self._finish(attempt))
                raise

        return self._finish(attempt)

    async def _estimate(self, attempt: ExecutionAttempt) -> bool:
        opp = attempt.opportunity
        try:
            raw = await self.target.estimate_cost(
                opp.borrow_token, opp.amount_in, opp.intermediate_token
            )
        except Exception as e:
            attempt.fail(AttemptState.COST_ESTIMATION_FAILED, str(e))
            return False

        if raw <= 0:
            attempt.fail(
                AttemptState.COST_ESTIMATION_FAILED, f"Non-positive cost estimate: {raw}"
            )
            return False

        attempt.raw_cost_estimate = raw
        attempt.budget = apply_safety_multiplier(raw, self.policy.cost_safety_multiplier_pct)
        attempt.transition(AttemptState.COST_ESTIMATED)
        logger.debug(
            f"{opp.path.name}: cost estimate {raw}, budget {attempt.budget} "
            f"(+{self.policy.cost_safety_multiplier_pct}%)"
        )
        return True

    async def _submit_and_settle(self, attempt: ExecutionAttempt) -> None:
        opp = attempt.opportunity
        try:
            attempt.handle = await self.target.submit(
                opp.borrow_token, opp.amount_in, opp.intermediate_token, attempt.budget
            )
        except Exception as e:
            attempt.fail(AttemptState.SUBMISSION_FAILED, str(e))
            return
        attempt.transition(AttemptState.SUBMITTED)

        timeout = self.policy.settlement_timeout_sec
        try:
            outcome = await asyncio.wait_for(
                self.target.await_settlement(attempt.handle, timeout),
                timeout + self.policy.deadline_grace_sec,
            )
        except SettlementTimeout as e:
            attempt.fail(AttemptState.TIMED_OUT, str(e))
            return
        except asyncio.TimeoutError:
            attempt.fail(
                AttemptState.TIMED_OUT,
                f"No settlement for {attempt.handle} within {timeout}s",
            )
            return
        except Exception as e:
            # Submitted but outcome unobservable
            attempt.fail(AttemptState.TIMED_OUT, f"Settlement status unknown: {e}")
            return

        attempt.outcome = outcome
        if not outcome.settled:
            attempt.fail(AttemptState.REVERTED, f"Settlement {attempt.handle} reverted")
            return
        attempt.transition(AttemptState.CONFIRMED)

        if outcome.find_arbitrage_event(opp.borrow_token, opp.amount_in) is None:
            attempt.fail(
                AttemptState.EVENT_NOT_FOUND,
                f"No Arbitrage event for {opp.amount_in} {opp.borrow_token.symbol} "
                f"in {attempt.handle}",
            )
            return
        attempt.transition(AttemptState.VERIFIED)

    def _finish(self, attempt: ExecutionAttempt) -> ExecutionResult:
        attempt.finished_at = self.clock.monotonic()
        opp = attempt.opportunity
        state = attempt.state
        self.state_counts[state] += 1

        outcome = attempt.outcome
        event = (
            outcome.find_arbitrage_event(opp.borrow_token, opp.amount_in) if outcome else None
        )
        result = ExecutionResult(
            path_name=opp.path.name,
            state=state,
            succeeded=state is AttemptState.VERIFIED,
            requires_reconciliation=state.requires_reconciliation,
            handle=attempt.handle,
            budget=attempt.budget,
            cost_used=outcome.cost_used if outcome else None,
            expected_profit=opp.profit_absolute,
            reported_profit=event.profit if event else None,
            failure_reason=attempt.failure_reason,
            duration_sec=attempt.finished_at - attempt.started_at,
        )

        if result.succeeded:
            self.executions_verified += 1
            logger.info(f"Execution verified: {opp.path.name} ({attempt.handle})")
        elif result.requires_reconciliation:
            logger.error(
                f"Execution {state.value} for {opp.path.name} ({attempt.handle}), "
                f"manual reconciliation required: {attempt.failure_reason}"
            )
        else:
            logger.warning(
                f"Execution {state.value} for {opp.path.name}: {attempt.failure_reason}"
            )
        return result

    async def wait_inflight(self) -> None:
        """Wait until every submitted attempt has reached a terminal state."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    def get_stats(self) -> Dict:
        """Get execution statistics."""
        success_rate = (
            self.executions_verified / self.executions_attempted * 100
            if self.executions_attempted > 0
            else 0.0
        )
        return {
            "executions_attempted": self.executions_attempted,
            "executions_verified": self.executions_verified,
            "success_rate_pct": success_rate,
            "requires_reconciliation": sum(
                n for s, n in self.state_counts.items() if s.requires_reconciliation
            ),
            "by_state": {s.value: n for s, n in self.state_counts.items()},
        }
