"""
Core data types for DEX arbitrage detection and execution.

All token amounts are integers in base units (wei, lamports, ...). Floats
only appear as display-only profit percentages.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from flash_arbitrage.constants import ARBITRAGE_EVENT_NAME


@dataclass(frozen=True)
class Token:
    """
    A token known to the engine.

    Attributes:
        address: Contract address (EVM) or mint (Solana)
        symbol: Human-readable symbol (e.g., "WETH")
        decimals: Decimal precision of the token
    """

    address: str
    symbol: str
    decimals: int

    def to_base_units(self, amount: Decimal) -> int:
        """Convert a human amount (e.g. Decimal("1.5")) into base units."""
        scaled = Decimal(amount) * (Decimal(10) ** self.decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"{amount} {self.symbol} is finer than {self.decimals} decimals"
            )
        return int(scaled)

    def from_base_units(self, amount: int) -> Decimal:
        """Convert base units into a human amount (display only)."""
        return Decimal(amount) / (Decimal(10) ** self.decimals)

    def same_address(self, address: str) -> bool:
        """Compare addresses ignoring EVM checksum casing."""
        if self.address.startswith("0x"):
            return self.address.lower() == str(address).lower()
        return self.address == str(address)


@dataclass(frozen=True)
class Hop:
    """One venue-mediated conversion inside a path."""

    input_token: Token
    output_token: Token
    venue_id: str


@dataclass(frozen=True)
class SwapPath:
    """
    Round-trip route through a sequence of venues.

    Attributes:
        name: Human-readable label (defaults to "WETH -> DAI -> WETH")
        tokens: Ordered tokens; first and last are the same token
        venue_ids: One venue per hop (len(tokens) - 1 entries)
    """

    tokens: Tuple[Token, ...]
    venue_ids: Tuple[str, ...]
    name: str = ""

    def __post_init__(self):
        if len(self.tokens) < 3:
            raise ValueError("A swap path needs at least two hops (three tokens)")
        if self.tokens[0] != self.tokens[-1]:
            raise ValueError(
                f"Path must start and end with the same token, got "
                f"{self.tokens[0].symbol} and {self.tokens[-1].symbol}"
            )
        if len(self.venue_ids) != len(self.tokens) - 1:
            raise ValueError(
                f"Path with {len(self.tokens) - 1} hops needs as many venues, "
                f"got {len(self.venue_ids)}"
            )
        for a, b in zip(self.tokens, self.tokens[1:]):
            if a == b:
                raise ValueError(f"Hop {a.symbol} -> {b.symbol} swaps a token for itself")
        if not self.name:
            object.__setattr__(self, "name", self.describe())

    def describe(self) -> str:
        return " -> ".join(t.symbol for t in self.tokens)

    @property
    def base_token(self) -> Token:
        return self.tokens[0]

    @property
    def intermediate_tokens(self) -> Tuple[Token, ...]:
        return self.tokens[1:-1]

    @property
    def hop_count(self) -> int:
        return len(self.venue_ids)

    @property
    def hops(self) -> Tuple[Hop, ...]:
        return tuple(
            Hop(self.tokens[i], self.tokens[i + 1], venue_id)
            for i, venue_id in enumerate(self.venue_ids)
        )


@dataclass(frozen=True)
class MonitoredPath:
    """A configured path together with its fixed input amount and cost estimate."""

    path: SwapPath
    amount_in: int
    estimated_cost: int = 0

    def __post_init__(self):
        if self.amount_in <= 0:
            raise ValueError(f"amount_in must be positive: {self.amount_in}")
        if self.estimated_cost < 0:
            raise ValueError(f"estimated_cost must be >= 0: {self.estimated_cost}")

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class VenueQuote:
    """A single venue's answer for one hop. Never cached across cycles."""

    input_token: Token
    output_token: Token
    amount_in: int
    amount_out: int
    venue_id: str


@dataclass(frozen=True)
class PathEvaluation:
    """Result of walking every hop of a path with fresh quotes."""

    path: SwapPath
    amount_in: int
    amount_out: int
    quotes: Tuple[VenueQuote, ...]


@dataclass(frozen=True)
class ProfitDecision:
    """Output of the profitability gate."""

    profit_absolute: int
    profit_percent: float
    execute: bool


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    Evaluated round trip for one path in one cycle.

    Attributes:
        path: The evaluated path
        amount_in: Initial amount in base units of the path's base token
        amount_out: Final amount after the last hop
        profit_absolute: amount_out - amount_in - estimated cost
        profit_percent: profit_absolute / amount_in * 100 (display only)
        per_hop_quotes: Quote trail, one entry per hop
        estimated_cost: Execution cost subtracted from the profit
    """

    path: SwapPath
    amount_in: int
    amount_out: int
    profit_absolute: int
    profit_percent: float
    per_hop_quotes: Tuple[VenueQuote, ...]
    estimated_cost: int = 0

    @property
    def borrow_token(self) -> Token:
        return self.path.base_token

    @property
    def intermediate_token(self) -> Token:
        return self.path.tokens[1]


@dataclass(frozen=True)
class SettlementEvent:
    """An event observed in a settlement receipt."""

    name: str
    token: str
    amount: int
    profit: Optional[int] = None


@dataclass(frozen=True)
class SettlementOutcome:
    """What the execution target observed once settlement finalized."""

    settled: bool
    events: Tuple[SettlementEvent, ...] = ()
    block_number: Optional[int] = None
    cost_used: Optional[int] = None

    def find_arbitrage_event(
        self, token: Token, amount: int
    ) -> Optional[SettlementEvent]:
        """Return the arbitrage event for this token/amount, if present."""
        for event in self.events:
            if (
                event.name == ARBITRAGE_EVENT_NAME
                and token.same_address(event.token)
                and event.amount == amount
            ):
                return event
        return None


class AttemptState(Enum):
    """
    Lifecycle of an execution attempt.

    Success path: PENDING -> COST_ESTIMATED -> SUBMITTED -> CONFIRMED -> VERIFIED.
    TIMED_OUT and EVENT_NOT_FOUND leave the on-chain state unknown and must be
    reconciled by an operator; REVERTED is a confirmed failure.
    """

    PENDING = "pending"
    COST_ESTIMATED = "cost_estimated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    VERIFIED = "verified"
    COST_ESTIMATION_FAILED = "cost_estimation_failed"
    SUBMISSION_FAILED = "submission_failed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    EVENT_NOT_FOUND = "event_not_found"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    @property
    def requires_reconciliation(self) -> bool:
        return self in (AttemptState.TIMED_OUT, AttemptState.EVENT_NOT_FOUND)


_TRANSITIONS = {
    AttemptState.PENDING: (
        AttemptState.COST_ESTIMATED,
        AttemptState.COST_ESTIMATION_FAILED,
    ),
    AttemptState.COST_ESTIMATED: (
        AttemptState.SUBMITTED,
        AttemptState.SUBMISSION_FAILED,
    ),
    AttemptState.SUBMITTED: (
        AttemptState.CONFIRMED,
        AttemptState.REVERTED,
        AttemptState.TIMED_OUT,
    ),
    AttemptState.CONFIRMED: (
        AttemptState.VERIFIED,
        AttemptState.EVENT_NOT_FOUND,
    ),
    AttemptState.VERIFIED: (),
    AttemptState.COST_ESTIMATION_FAILED: (),
    AttemptState.SUBMISSION_FAILED: (),
    AttemptState.REVERTED: (),
    AttemptState.TIMED_OUT: (),
    AttemptState.EVENT_NOT_FOUND: (),
}


@dataclass
class ExecutionAttempt:
    """
    Mutable record of one execution attempt. Each attempt owns its own
    budget and handle; nothing here is shared between attempts.
    """

    opportunity: ArbitrageOpportunity
    state: AttemptState = AttemptState.PENDING
    raw_cost_estimate: Optional[int] = None
    budget: Optional[int] = None
    handle: Optional[str] = None
    outcome: Optional[SettlementOutcome] = None
    failure_reason: Optional[str] = None
    started_at: float = 0.0
    finished_at: Optional[float] = None

    def transition(self, new_state: AttemptState) -> None:
        """Move to new_state, rejecting moves the lifecycle does not allow."""
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(
                f"Illegal attempt transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def fail(self, new_state: AttemptState, reason: str) -> None:
        self.transition(new_state)
        self.failure_reason = reason


@dataclass(frozen=True)
class ExecutionResult:
    """
    Normalized, terminal outcome of an execution attempt.

    Attributes:
        path_name: Path the opportunity came from
        state: Terminal attempt state
        succeeded: True only for VERIFIED
        requires_reconciliation: True when on-chain state is unknown
        handle: Submission handle (e.g. transaction hash), if submitted
        budget: Submission budget after the safety multiplier
        cost_used: Cost actually consumed, if reported by the target
        expected_profit: Profit the opportunity predicted (base units)
        reported_profit: Profit reported by the settlement event, if any
        failure_reason: Human-readable failure description
        duration_sec: Time from start to terminal state
    """

    path_name: str
    state: AttemptState
    succeeded: bool
    requires_reconciliation: bool
    handle: Optional[str] = None
    budget: Optional[int] = None
    cost_used: Optional[int] = None
    expected_profit: Optional[int] = None
    reported_profit: Optional[int] = None
    failure_reason: Optional[str] = None
    duration_sec: Optional[float] = None


class PathStatus(Enum):
    """Outcome of one path's pipeline within a cycle."""

    NO_OPPORTUNITY = "no_opportunity"
    OPPORTUNITY = "opportunity"
    ERROR = "error"


@dataclass(frozen=True)
class PathResult:
    """
    One line of the per-cycle result feed.

    Attributes:
        path_name: Evaluated path
        status: Whether the path errored, was unprofitable or profitable
        profit_percent: Net profit percent (None when evaluation failed)
        opportunity: The evaluated opportunity (None on error)
        error_kind: Exception class name when status is ERROR
        error: Error message when status is ERROR
        execution: Execution outcome when the opportunity was executed
        execution_skipped: Why a profitable opportunity was not executed
    """

    path_name: str
    status: PathStatus
    profit_percent: Optional[float] = None
    opportunity: Optional[ArbitrageOpportunity] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    execution: Optional[ExecutionResult] = None
    execution_skipped: Optional[str] = None


@dataclass(frozen=True)
class CycleReport:
    """Everything one evaluation cycle produced."""

    cycle: int
    started_at: float
    finished_at: float
    results: Tuple[PathResult, ...] = field(default_factory=tuple)

    @property
    def duration_sec(self) -> float:
        return self.finished_at - self.started_at

    @property
    def opportunities(self) -> Tuple[PathResult, ...]:
        return tuple(r for r in self.results if r.status is PathStatus.OPPORTUNITY)

    @property
    def errors(self) -> Tuple[PathResult, ...]:
        return tuple(r for r in self.results if r.status is PathStatus.ERROR)
