"""
Single source of truth for opportunity math.

The profitability gate is the ONLY place where net profit and the execute
decision are computed. Both the scheduler and the logging sink use it.

Conversion policy:
- Amounts: integers in base units, never floats
- Threshold comparison: exact (Decimal cross multiplication)
- profit_percent: float, for display only
"""

from decimal import Decimal, getcontext
from typing import Tuple, Union

from .types import ArbitrageOpportunity, PathEvaluation, ProfitDecision

# Set high precision for all decimal operations
getcontext().prec = 50


# ============================================================================
# Conversion helpers
# ============================================================================


def to_decimal(value: Union[int, float, str, Decimal]) -> Decimal:
    """Convert a config number to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def profit_percent(profit_absolute: int, amount_in: int) -> float:
    """profit / amount_in * 100, for display."""
    return float(Decimal(profit_absolute) * 100 / Decimal(amount_in))


# ============================================================================
# Profitability gate
# ============================================================================


def evaluate_profit(
    amount_in: int,
    amount_out: int,
    min_profit_percent: Union[int, float, str, Decimal],
    estimated_cost: int = 0,
) -> ProfitDecision:
    """
    Decide whether a round trip clears the profit threshold.

    Args:
        amount_in: Initial amount (base units), must be > 0
        amount_out: Final amount after the last hop (base units)
        min_profit_percent: Threshold percent, e.g. 0.5 for 0.5%
        estimated_cost: Execution cost in base-token units

    Returns:
        ProfitDecision; execute is True only if the net percent is strictly
        above the threshold AND the absolute profit is positive

    Raises:
        ValueError: If amount_in <= 0
    """
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive: {amount_in}")

    profit_absolute = amount_out - amount_in - estimated_cost

    # profit/amount_in*100 > threshold  <=>  profit*100 > threshold*amount_in
    above_threshold = Decimal(profit_absolute) * 100 > to_decimal(min_profit_percent) * amount_in

    return ProfitDecision(
        profit_absolute=profit_absolute,
        profit_percent=profit_percent(profit_absolute, amount_in),
        execute=above_threshold and profit_absolute > 0,
    )


class ProfitabilityGate:
    """Profitability gate bound to a fixed threshold."""

    def __init__(self, min_profit_percent: Union[int, float, str, Decimal]):
        self.min_profit_percent = to_decimal(min_profit_percent)

    def decide(self, amount_in: int, amount_out: int, estimated_cost: int = 0) -> ProfitDecision:
        return evaluate_profit(amount_in, amount_out, self.min_profit_percent, estimated_cost)

    def assess(
        self, evaluation: PathEvaluation, estimated_cost: int = 0
    ) -> Tuple[ArbitrageOpportunity, ProfitDecision]:
        """Turn a path evaluation into an opportunity plus its decision."""
        decision = self.decide(evaluation.amount_in, evaluation.amount_out, estimated_cost)
        return build_opportunity(evaluation, decision, estimated_cost), decision


def build_opportunity(
    evaluation: PathEvaluation, decision: ProfitDecision, estimated_cost: int = 0
) -> ArbitrageOpportunity:
    return ArbitrageOpportunity(
        path=evaluation.path,
        amount_in=evaluation.amount_in,
        amount_out=evaluation.amount_out,
        profit_absolute=decision.profit_absolute,
        profit_percent=decision.profit_percent,
        per_hop_quotes=evaluation.quotes,
        estimated_cost=estimated_cost,
    )
