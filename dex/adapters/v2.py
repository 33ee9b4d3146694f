"""
Uniswap V2 style adapters for constant-product AMM venues.

Two variants share the same contract:
- UniswapV2RouterAdapter asks the router's ``getAmountsOut`` (the venue does
  the math, including its own fee).
- UniswapV2PairAdapter reads fresh pair reserves and applies the x*y=k
  formula locally with integer arithmetic.

Both return integer base units and never cache anything between calls.
"""

import asyncio
from typing import Dict, FrozenSet, Mapping, Tuple

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from flash_arbitrage.constants import DEFAULT_V2_FEE_BPS
from flash_arbitrage.exceptions import QuoteUnavailable, VenueUnreachable
from flash_arbitrage.utils import get_logger

from ..abi import UNISWAP_V2_PAIR_ABI, UNISWAP_V2_ROUTER_ABI
from ..types import Token

logger = get_logger(__name__)


def is_rate_limit_error(error: Exception) -> bool:
    """Detect RPC rate limit responses (common provider patterns)."""
    error_msg = str(error)
    return (
        "429" in error_msg
        or "Too Many Requests" in error_msg
        or "-32005" in error_msg  # BSC/Ethereum rate limit code
        or "limit exceeded" in error_msg.lower()
    )


async def call_with_backoff(call, max_retries: int = 3, backoff_base: float = 1.0):
    """
    Run a blocking web3 call in the thread pool, retrying on rate limits.

    Contract reverts are raised as-is; any other failure (after retries
    for rate limits) is raised as-is too and classified by the caller.
    """
    loop = asyncio.get_running_loop()
    for attempt in range(max(1, max_retries)):
        try:
            return await loop.run_in_executor(None, call)
        except (ContractLogicError, BadFunctionCallOutput):
            raise
        except Exception as e:
            if is_rate_limit_error(e) and attempt < max_retries - 1:
                # Exponential backoff: 1x, 2x, 4x the base delay
                wait_time = backoff_base * (2**attempt)
                logger.debug(f"Rate limited, retrying in {wait_time:.1f}s: {e}")
                await asyncio.sleep(wait_time)
                continue
            raise


def swap_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """
    Calculate output amount for a V2 swap using the constant-product formula.

    Formula (fee applied to the input, integer division like the contract):
        amountInWithFee = amountIn * (10000 - fee_bps)
        amountOut = amountInWithFee * reserveOut / (reserveIn * 10000 + amountInWithFee)

    Args:
        amount_in: Input token amount (base units)
        reserve_in: Reserve of input token
        reserve_out: Reserve of output token
        fee_bps: Fee in basis points (30 = 0.30%)

    Returns:
        Output token amount (base units, rounded down)

    Raises:
        ValueError: If inputs are invalid (negative, zero reserves, etc.)
    """
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive: {amount_in}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError(
            f"Reserves must be positive: in={reserve_in}, out={reserve_out}"
        )
    if fee_bps < 0 or fee_bps >= 10000:
        raise ValueError(f"Fee must be in [0, 10000) bps: {fee_bps}")

    amount_in_with_fee = amount_in * (10000 - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * 10000 + amount_in_with_fee
    return numerator // denominator


class UniswapV2RouterAdapter:
    """Quotes a hop through a Uniswap V2 compatible router (Uniswap, Sushiswap, ...)."""

    def __init__(
        self,
        venue_id: str,
        web3: Web3,
        router_address: str,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        self.venue_id = venue_id
        self.web3 = web3
        self.router_address = Web3.to_checksum_address(router_address)
        self.router = web3.eth.contract(
            address=self.router_address, abi=UNISWAP_V2_ROUTER_ABI
        )
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    async def quote(self, input_token: Token, output_token: Token, amount_in: int) -> int:
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive: {amount_in}")

        route = [
            Web3.to_checksum_address(input_token.address),
            Web3.to_checksum_address(output_token.address),
        ]
        call = self.router.functions.getAmountsOut(amount_in, route).call

        try:
            amounts = await call_with_backoff(call, self.max_retries, self.backoff_base)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise QuoteUnavailable(
                f"{self.venue_id} has no route {input_token.symbol} -> "
                f"{output_token.symbol}: {e}",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            ) from e
        except Exception as e:
            raise VenueUnreachable(
                f"{self.venue_id} quote {input_token.symbol} -> "
                f"{output_token.symbol} failed: {e}",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            ) from e

        amount_out = int(amounts[-1])
        if amount_out <= 0:
            raise QuoteUnavailable(
                f"{self.venue_id} quoted zero output for {input_token.symbol} -> "
                f"{output_token.symbol}",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            )
        return amount_out


class UniswapV2PairAdapter:
    """
    Quotes hops from raw pair reserves.

    Attributes:
        venue_id: Stable venue identifier
        pairs: Map of frozenset({symbolA, symbolB}) -> pair contract address
        fee_bps: Venue swap fee in basis points
    """

    def __init__(
        self,
        venue_id: str,
        web3: Web3,
        pairs: Mapping[FrozenSet[str], str],
        fee_bps: int = DEFAULT_V2_FEE_BPS,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        self.venue_id = venue_id
        self.web3 = web3
        self.fee_bps = fee_bps
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._pairs: Dict[FrozenSet[str], object] = {
            key: web3.eth.contract(
                address=Web3.to_checksum_address(addr), abi=UNISWAP_V2_PAIR_ABI
            )
            for key, addr in pairs.items()
        }

    async def fetch_reserves(self, pair) -> Tuple[str, int, int]:
        """Fetch token0 and current reserves; reserves are read fresh on every call."""
        token0, reserves = await asyncio.gather(
            call_with_backoff(pair.functions.token0().call, self.max_retries, self.backoff_base),
            call_with_backoff(
                pair.functions.getReserves().call, self.max_retries, self.backoff_base
            ),
        )
        return token0, int(reserves[0]), int(reserves[1])

    async def quote(self, input_token: Token, output_token: Token, amount_in: int) -> int:
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive: {amount_in}")

        pair = self._pairs.get(frozenset((input_token.symbol, output_token.symbol)))
        if pair is None:
            raise QuoteUnavailable(
                f"{self.venue_id} has no pool for {input_token.symbol}/{output_token.symbol}",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            )

        try:
            token0, r0, r1 = await self.fetch_reserves(pair)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise QuoteUnavailable(
                f"{self.venue_id} pool {input_token.symbol}/{output_token.symbol} "
                f"is not readable: {e}",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            ) from e
        except Exception as e:
            raise VenueUnreachable(
                f"{self.venue_id} reserves fetch failed: {e}",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            ) from e

        if input_token.same_address(token0):
            reserve_in, reserve_out = r0, r1
        else:
            reserve_in, reserve_out = r1, r0

        if reserve_in <= 0 or reserve_out <= 0:
            raise QuoteUnavailable(
                f"{self.venue_id} pool {input_token.symbol}/{output_token.symbol} "
                f"has no liquidity",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            )

        amount_out = swap_out(amount_in, reserve_in, reserve_out, self.fee_bps)
        if amount_out <= 0:
            raise QuoteUnavailable(
                f"{self.venue_id} quoted zero output for {input_token.symbol} -> "
                f"{output_token.symbol}",
                venue_id=self.venue_id,
                input_symbol=input_token.symbol,
                output_symbol=output_token.symbol,
            )
        return amount_out
