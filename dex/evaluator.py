"""
Path evaluation: walks every hop of a path with fresh venue quotes.
"""

from typing import Iterable, Mapping

from flash_arbitrage.exceptions import ConfigurationError
from flash_arbitrage.utils import get_logger

from .adapters import VenueQuoteAdapter
from .types import PathEvaluation, SwapPath, VenueQuote

logger = get_logger(__name__)


def validate_paths(paths: Iterable[SwapPath], adapters: Mapping[str, VenueQuoteAdapter]) -> None:
    """Reject paths that reference a venue with no adapter."""
    for path in paths:
        missing = [v for v in path.venue_ids if v not in adapters]
        if missing:
            raise ConfigurationError(
                f"Path '{path.name}' references unknown venue(s): {', '.join(missing)}",
                details={"path": path.name, "venues": missing},
            )


class PathEvaluator:
    """
    Composes per-hop quotes into a round-trip result.

    Hops are quoted strictly in order, each hop consuming the previous hop's
    output. Any adapter error aborts the evaluation and is re-raised
    unchanged; no partial result is produced.
    """

    def __init__(self, adapters: Mapping[str, VenueQuoteAdapter], paths: Iterable[SwapPath] = ()):
        self.adapters = dict(adapters)
        validate_paths(paths, self.adapters)

    async def evaluate(self, path: SwapPath, amount_in: int) -> PathEvaluation:
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive: {amount_in}")

        amount = amount_in
        quotes = []
        for hop in path.hops:
            adapter = self.adapters.get(hop.venue_id)
            if adapter is None:
                raise ConfigurationError(
                    f"Path '{path.name}' references unknown venue: {hop.venue_id}"
                )
            amount_out = await adapter.quote(hop.input_token, hop.output_token, amount)
            quotes.append(
                VenueQuote(
                    input_token=hop.input_token,
                    output_token=hop.output_token,
                    amount_in=amount,
                    amount_out=amount_out,
                    venue_id=hop.venue_id,
                )
            )
            amount = amount_out

        logger.debug(f"{path.name}: {amount_in} -> {amount}")
        return PathEvaluation(
            path=path, amount_in=amount_in, amount_out=amount, quotes=tuple(quotes)
        )
