"""
Quote adapter protocol shared by every venue variant.

Adapters are matched structurally: anything with a ``venue_id`` and an async
``quote`` method satisfies the contract. Two instances for the same pair
(e.g. Uniswap and Sushiswap routers) differ only in id and configuration.
"""

from typing import Protocol, runtime_checkable

from ..types import Token


@runtime_checkable
class VenueQuoteAdapter(Protocol):
    """
    Read-only price source for one trading venue.

    ``quote`` takes and returns integer base units. It raises
    QuoteUnavailable when the venue has no route or liquidity, and
    VenueUnreachable on transient I/O failures.
    """

    venue_id: str

    async def quote(self, input_token: Token, output_token: Token, amount_in: int) -> int:
        ...
