"""
Jupiter aggregator adapter for Solana venues.

Queries the quote API for an exact-in swap between two mints. Amounts are
already in base units (lamports / token atoms) on both sides, so no
decimals conversion is needed. Quotes are always fetched fresh.
"""

import asyncio

import aiohttp

from flash_arbitrage.constants import DEFAULT_JUPITER_SLIPPAGE_BPS, JUPITER_QUOTE_API_URL
from flash_arbitrage.exceptions import QuoteUnavailable, VenueUnreachable
from flash_arbitrage.utils import get_logger

from ..types import Token

logger = get_logger(__name__)


class JupiterQuoteAdapter:
    """
    Quotes hops through the Jupiter swap aggregator.

    Attributes:
        venue_id: Stable venue identifier
        session: Shared aiohttp session (owned by the caller)
        base_url: Quote API root, e.g. https://quote-api.jup.ag/v6
        slippage_bps: Slippage tolerance sent with the quote request
        timeout_sec: Total request timeout
    """

    def __init__(
        self,
        venue_id: str,
        session: aiohttp.ClientSession,
        base_url: str = JUPITER_QUOTE_API_URL,
        slippage_bps: int = DEFAULT_JUPITER_SLIPPAGE_BPS,
        timeout_sec: float = 10.0,
    ):
        self.venue_id = venue_id
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.slippage_bps = slippage_bps
        self.timeout_sec = timeout_sec

    async def quote(self, input_token: Token, output_token: Token, amount_in: int) -> int:
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive: {amount_in}")

        params = {
            "inputMint": input_token.address,
            "outputMint": output_token.address,
            "amount": str(amount_in),
            "slippageBps": str(self.slippage_bps),
        }
        context = dict(
            venue_id=self.venue_id,
            input_symbol=input_token.symbol,
            output_symbol=output_token.symbol,
        )
        hop = f"{input_token.symbol} -> {output_token.symbol}"

        try:
            async with self.session.get(
                f"{self.base_url}/quote",
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
            ) as resp:
                if resp.status == 429 or resp.status >= 500:
                    raise VenueUnreachable(
                        f"{self.venue_id} returned HTTP {resp.status} for {hop}",
                        details={"status": resp.status},
                        **context,
                    )
                data = await resp.json(content_type=None)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise VenueUnreachable(
                f"{self.venue_id} quote {hop} failed: {e!r}", **context
            ) from e

        if status >= 400 or not isinstance(data, dict):
            error = data.get("error") if isinstance(data, dict) else data
            raise QuoteUnavailable(
                f"{self.venue_id} has no route {hop}: {error}",
                details={"status": status},
                **context,
            )

        out_amount = data.get("outAmount")
        try:
            amount_out = int(out_amount)
        except (TypeError, ValueError):
            raise QuoteUnavailable(
                f"{self.venue_id} returned no outAmount for {hop}", **context
            )

        if amount_out <= 0:
            raise QuoteUnavailable(
                f"{self.venue_id} quoted zero output for {hop}", **context
            )

        logger.debug(f"{self.venue_id} {hop}: {amount_in} -> {amount_out}")
        return amount_out
