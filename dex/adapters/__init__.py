"""
Venue quote adapters.

Every adapter satisfies VenueQuoteAdapter; build_venue_adapters turns the
configured venues into a venue_id -> adapter map.
"""

from typing import Dict, Optional

import aiohttp
from web3 import Web3

from flash_arbitrage.exceptions import ConfigurationError

from .base import VenueQuoteAdapter
from .jupiter import JupiterQuoteAdapter
from .v2 import UniswapV2PairAdapter, UniswapV2RouterAdapter, call_with_backoff, swap_out

__all__ = [
    "VenueQuoteAdapter",
    "UniswapV2RouterAdapter",
    "UniswapV2PairAdapter",
    "JupiterQuoteAdapter",
    "build_venue_adapters",
    "call_with_backoff",
    "swap_out",
]


def build_venue_adapters(
    venues,
    web3: Optional[Web3] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, VenueQuoteAdapter]:
    """
    Create one adapter per configured venue.

    Args:
        venues: Iterable of VenueConfig
        web3: Connected Web3 instance (required for uniswap_v2_* venues)
        session: Shared aiohttp session (required for jupiter venues)

    Raises:
        ConfigurationError: If a venue kind is unknown or its client is missing
    """
    adapters: Dict[str, VenueQuoteAdapter] = {}
    for venue in venues:
        if venue.kind in ("uniswap_v2_router", "uniswap_v2_pair") and web3 is None:
            raise ConfigurationError(f"Venue '{venue.id}' needs an RPC connection (rpc_url)")

        if venue.kind == "uniswap_v2_router":
            adapters[venue.id] = UniswapV2RouterAdapter(venue.id, web3, venue.address)
        elif venue.kind == "uniswap_v2_pair":
            pairs = {frozenset(name.split("/")): addr for name, addr in venue.pairs.items()}
            adapters[venue.id] = UniswapV2PairAdapter(
                venue.id, web3, pairs, fee_bps=venue.fee_bps
            )
        elif venue.kind == "jupiter":
            if session is None:
                raise ConfigurationError(f"Venue '{venue.id}' needs an HTTP session")
            adapters[venue.id] = JupiterQuoteAdapter(
                venue.id,
                session,
                base_url=venue.url,
                slippage_bps=venue.slippage_bps,
                timeout_sec=venue.timeout_sec,
            )
        else:
            raise ConfigurationError(f"Unknown venue kind '{venue.kind}' for '{venue.id}'")
    return adapters
