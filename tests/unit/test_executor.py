"""
Unit tests for dex/executor.py

Covers every terminal state of the attempt lifecycle.
"""

import asyncio

import pytest

from dex.executor import ExecutionCoordinator, ExecutionPolicy, apply_safety_multiplier
from dex.targets import PaperExecutionTarget
from dex.types import (
    ArbitrageOpportunity,
    AttemptState,
    SettlementEvent,
    SettlementOutcome,
    SwapPath,
    Token,
)
from flash_arbitrage.exceptions import ExecutionTargetError, SettlementTimeout

WETH = Token("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", 18)
DAI = Token("0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI", 18)
AMOUNT = 10 * 10**18


class ScriptedTarget:
    """Execution target whose behaviour per step is scripted by the test."""

    max_hops = 2
    venue_order = None

    def __init__(
        self,
        estimate=100_000,
        estimate_error=None,
        submit_error=None,
        settle_error=None,
        outcome=None,
        settle_delay=0.0,
    ):
        self.estimate = estimate
        self.estimate_error = estimate_error
        self.submit_error = submit_error
        self.settle_error = settle_error
        self.outcome = outcome
        self.settle_delay = settle_delay
        self.estimate_calls = []
        self.submit_calls = []
        self.settle_calls = []

    async def estimate_cost(self, borrow_token, amount, intermediate_token):
        self.estimate_calls.append((borrow_token, amount, intermediate_token))
        if self.estimate_error:
            raise self.estimate_error
        return self.estimate

    async def submit(self, borrow_token, amount, intermediate_token, budget):
        self.submit_calls.append((borrow_token, amount, intermediate_token, budget))
        if self.submit_error:
            raise self.submit_error
        return "0xabc"

    async def await_settlement(self, handle, timeout):
        self.settle_calls.append((handle, timeout))
        if self.settle_delay:
            await asyncio.sleep(self.settle_delay)
        if self.settle_error:
            raise self.settle_error
        return self.outcome


def matching_outcome(token_address=WETH.address, amount=AMOUNT, settled=True):
    return SettlementOutcome(
        settled=settled,
        events=(SettlementEvent("Arbitrage", token_address, amount, profit=42),),
        block_number=123,
        cost_used=90_000,
    )


@pytest.fixture
def opportunity():
    path = SwapPath(tokens=(WETH, DAI, WETH), venue_ids=("uniswap_v2", "sushiswap"))
    return ArbitrageOpportunity(
        path=path,
        amount_in=AMOUNT,
        amount_out=AMOUNT + 6 * 10**16,
        profit_absolute=6 * 10**16,
        profit_percent=0.6,
        per_hop_quotes=(),
    )


def test_safety_multiplier():
    assert apply_safety_multiplier(100_000, 20) == 120_000
    assert apply_safety_multiplier(100_001, 20) == 120_001
    assert apply_safety_multiplier(99, 0) == 99


class TestExecutionCoordinator:
    @pytest.mark.asyncio
    async def test_verified(self, opportunity):
        target = ScriptedTarget(outcome=matching_outcome())
        coordinator = ExecutionCoordinator(target)

        result = await coordinator.execute(opportunity)

        assert result.state is AttemptState.VERIFIED
        assert result.succeeded
        assert not result.requires_reconciliation
        assert result.handle == "0xabc"
        assert result.budget == 120_000
        assert result.cost_used == 90_000
        assert result.expected_profit == 6 * 10**16
        assert result.reported_profit == 42
        assert target.submit_calls == [(WETH, AMOUNT, DAI, 120_000)]
        assert target.settle_calls == [("0xabc", 120)]

    @pytest.mark.asyncio
    async def test_event_token_match_ignores_checksum_case(self, opportunity):
        target = ScriptedTarget(outcome=matching_outcome(token_address=WETH.address.lower()))
        result = await ExecutionCoordinator(target).execute(opportunity)
        assert result.state is AttemptState.VERIFIED

    @pytest.mark.asyncio
    async def test_custom_multiplier(self, opportunity):
        target = ScriptedTarget(outcome=matching_outcome())
        coordinator = ExecutionCoordinator(
            target, ExecutionPolicy(cost_safety_multiplier_pct=50)
        )
        result = await coordinator.execute(opportunity)
        assert result.budget == 150_000

    @pytest.mark.asyncio
    async def test_cost_estimation_failed(self, opportunity):
        target = ScriptedTarget(estimate_error=ExecutionTargetError("execution reverted"))
        result = await ExecutionCoordinator(target).execute(opportunity)

        assert result.state is AttemptState.COST_ESTIMATION_FAILED
        assert not result.succeeded
        assert not result.requires_reconciliation
        assert "execution reverted" in result.failure_reason
        assert target.submit_calls == []

    @pytest.mark.asyncio
    async def test_zero_estimate_is_estimation_failure(self, opportunity):
        target = ScriptedTarget(estimate=0)
        result = await ExecutionCoordinator(target).execute(opportunity)
        assert result.state is AttemptState.COST_ESTIMATION_FAILED
        assert target.submit_calls == []

    @pytest.mark.asyncio
    async def test_submission_failed(self, opportunity):
        target = ScriptedTarget(submit_error=ExecutionTargetError("nonce too low"))
        result = await ExecutionCoordinator(target).execute(opportunity)

        assert result.state is AttemptState.SUBMISSION_FAILED
        assert result.handle is None
        assert result.budget == 120_000
        assert target.settle_calls == []

    @pytest.mark.asyncio
    async def test_reverted(self, opportunity):
        target = ScriptedTarget(outcome=SettlementOutcome(settled=False))
        result = await ExecutionCoordinator(target).execute(opportunity)

        assert result.state is AttemptState.REVERTED
        assert not result.requires_reconciliation

    @pytest.mark.asyncio
    async def test_target_timeout_is_timed_out_and_not_retried(self, opportunity):
        target = ScriptedTarget(settle_error=SettlementTimeout("not mined", handle="0xabc"))
        coordinator = ExecutionCoordinator(target)

        result = await coordinator.execute(opportunity)

        assert result.state is AttemptState.TIMED_OUT
        assert result.requires_reconciliation
        assert result.handle == "0xabc"
        assert len(target.submit_calls) == 1
        assert len(target.settle_calls) == 1

    @pytest.mark.asyncio
    async def test_coordinator_deadline_is_timed_out(self, opportunity):
        target = ScriptedTarget(outcome=matching_outcome(), settle_delay=5.0)
        coordinator = ExecutionCoordinator(
            target, ExecutionPolicy(settlement_timeout_sec=0.01, deadline_grace_sec=0.01)
        )

        result = await coordinator.execute(opportunity)

        assert result.state is AttemptState.TIMED_OUT
        assert result.requires_reconciliation

    @pytest.mark.asyncio
    async def test_unexpected_settlement_error_is_timed_out(self, opportunity):
        target = ScriptedTarget(settle_error=ConnectionError("rpc down"))
        result = await ExecutionCoordinator(target).execute(opportunity)
        assert result.state is AttemptState.TIMED_OUT
        assert "rpc down" in result.failure_reason

    @pytest.mark.asyncio
    async def test_event_not_found_wrong_amount(self, opportunity):
        target = ScriptedTarget(outcome=matching_outcome(amount=AMOUNT - 1))
        result = await ExecutionCoordinator(target).execute(opportunity)

        assert result.state is AttemptState.EVENT_NOT_FOUND
        assert result.requires_reconciliation
        assert result.reported_profit is None

    @pytest.mark.asyncio
    async def test_event_not_found_no_events(self, opportunity):
        target = ScriptedTarget(outcome=SettlementOutcome(settled=True))
        result = await ExecutionCoordinator(target).execute(opportunity)
        assert result.state is AttemptState.EVENT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_each_attempt_has_its_own_budget(self, opportunity):
        target = ScriptedTarget(outcome=matching_outcome())
        coordinator = ExecutionCoordinator(target)

        target.estimate = 100_000
        first = await coordinator.execute(opportunity)
        target.estimate = 200_000
        second = await coordinator.execute(opportunity)

        assert first.budget == 120_000
        assert second.budget == 240_000

    @pytest.mark.asyncio
    async def test_stats(self, opportunity):
        coordinator = ExecutionCoordinator(ScriptedTarget(outcome=matching_outcome()))
        await coordinator.execute(opportunity)
        coordinator.target = ScriptedTarget(settle_error=SettlementTimeout("slow"))
        await coordinator.execute(opportunity)

        stats = coordinator.get_stats()
        assert stats["executions_attempted"] == 2
        assert stats["executions_verified"] == 1
        assert stats["success_rate_pct"] == 50.0
        assert stats["requires_reconciliation"] == 1
        assert stats["by_state"] == {"verified": 1, "timed_out": 1}

    @pytest.mark.asyncio
    async def test_cancel_after_submission_still_reaches_terminal_state(self, opportunity):
        target = ScriptedTarget(outcome=matching_outcome(), settle_delay=0.05)
        coordinator = ExecutionCoordinator(target)

        task = asyncio.ensure_future(coordinator.execute(opportunity))
        while not target.settle_calls:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await coordinator.wait_inflight()
        await asyncio.sleep(0)
        assert coordinator.get_stats()["by_state"] == {"verified": 1}

    @pytest.mark.asyncio
    async def test_paper_target_verifies(self, opportunity):
        target = PaperExecutionTarget(gas_estimate=250_000)
        result = await ExecutionCoordinator(target).execute(opportunity)

        assert result.state is AttemptState.VERIFIED
        assert result.budget == 300_000
        assert result.handle == "0xDRYRUN-1"
