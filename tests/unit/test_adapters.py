"""
Unit tests for dex/adapters (V2 router, V2 pair, Jupiter and the factory).
"""

import asyncio
import contextlib
from types import MappingProxyType
from unittest.mock import MagicMock

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from web3.exceptions import ContractLogicError

from dex.adapters import (
    JupiterQuoteAdapter,
    UniswapV2PairAdapter,
    UniswapV2RouterAdapter,
    VenueQuoteAdapter,
    build_venue_adapters,
    swap_out,
)
from dex.config import VenueConfig
from dex.types import Token
from flash_arbitrage.exceptions import ConfigurationError, QuoteUnavailable, VenueUnreachable

WETH = Token("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", 18)
USDC = Token("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6)
SOL = Token("So11111111111111111111111111111111111111112", "SOL", 9)
SOL_USDC = Token("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "USDC", 6)
ROUTER = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"
PAIR = "0xB4e16d0168e52d35CaCD2c6185b44281Ec28C9Dc"


class TestSwapOut:
    def test_constant_product_with_fee(self):
        # 1 unit in, 1000/1000 reserves, 0.3% fee
        assert swap_out(10_000, 1_000_000, 1_000_000, 30) == 9_871

    def test_zero_fee(self):
        assert swap_out(100, 1_000, 1_000, 0) == 90

    def test_rounds_down(self):
        assert swap_out(1, 1_000_000, 1_000, 30) == 0

    def test_invalid_inputs(self):
        with pytest.raises(ValueError):
            swap_out(0, 1_000, 1_000, 30)
        with pytest.raises(ValueError):
            swap_out(10, 0, 1_000, 30)
        with pytest.raises(ValueError):
            swap_out(10, 1_000, 1_000, 10_000)


class TestUniswapV2RouterAdapter:
    def make(self, **kwargs):
        web3 = MagicMock()
        adapter = UniswapV2RouterAdapter("uniswap_v2", web3, ROUTER, backoff_base=0, **kwargs)
        call = adapter.router.functions.getAmountsOut.return_value.call
        return adapter, call

    def test_satisfies_protocol(self):
        adapter, _ = self.make()
        assert isinstance(adapter, VenueQuoteAdapter)

    @pytest.mark.asyncio
    async def test_quote(self):
        adapter, call = self.make()
        call.return_value = [10**18, 2_500_000_000]

        assert await adapter.quote(WETH, USDC, 10**18) == 2_500_000_000
        adapter.router.functions.getAmountsOut.assert_called_with(
            10**18, [WETH.address, USDC.address]
        )

    @pytest.mark.asyncio
    async def test_revert_is_quote_unavailable(self):
        adapter, call = self.make()
        call.side_effect = ContractLogicError("execution reverted")

        with pytest.raises(QuoteUnavailable) as exc_info:
            await adapter.quote(WETH, USDC, 10**18)
        assert exc_info.value.venue_id == "uniswap_v2"
        assert exc_info.value.input_symbol == "WETH"
        assert exc_info.value.output_symbol == "USDC"

    @pytest.mark.asyncio
    async def test_transport_error_is_venue_unreachable(self):
        adapter, call = self.make()
        call.side_effect = ConnectionError("connection refused")

        with pytest.raises(VenueUnreachable):
            await adapter.quote(WETH, USDC, 10**18)
        assert call.call_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        adapter, call = self.make(max_retries=3)
        call.side_effect = [Exception("429 Too Many Requests"), [10**18, 42]]

        assert await adapter.quote(WETH, USDC, 10**18) == 42
        assert call.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up_after_max_retries(self):
        adapter, call = self.make(max_retries=2)
        call.side_effect = Exception("429 Too Many Requests")

        with pytest.raises(VenueUnreachable):
            await adapter.quote(WETH, USDC, 10**18)
        assert call.call_count == 2

    @pytest.mark.asyncio
    async def test_zero_output_is_quote_unavailable(self):
        adapter, call = self.make()
        call.return_value = [10**18, 0]

        with pytest.raises(QuoteUnavailable):
            await adapter.quote(WETH, USDC, 10**18)


class TestUniswapV2PairAdapter:
    def make(self, reserves, token0=WETH.address):
        web3 = MagicMock()
        pair = web3.eth.contract.return_value
        pair.functions.token0.return_value.call.return_value = token0
        pair.functions.getReserves.return_value.call.return_value = reserves
        adapter = UniswapV2PairAdapter(
            "uniswap_v2", web3, {frozenset({"WETH", "USDC"}): PAIR}, fee_bps=30, backoff_base=0
        )
        return adapter, pair

    @pytest.mark.asyncio
    async def test_quote_token0_in(self):
        adapter, _ = self.make([1_000_000, 2_000_000, 0])
        assert await adapter.quote(WETH, USDC, 10_000) == swap_out(10_000, 1_000_000, 2_000_000, 30)

    @pytest.mark.asyncio
    async def test_quote_token1_in(self):
        adapter, _ = self.make([1_000_000, 2_000_000, 0])
        assert await adapter.quote(USDC, WETH, 10_000) == swap_out(10_000, 2_000_000, 1_000_000, 30)

    @pytest.mark.asyncio
    async def test_token0_match_ignores_case(self):
        adapter, _ = self.make([1_000_000, 2_000_000, 0], token0=WETH.address.lower())
        assert await adapter.quote(WETH, USDC, 10_000) == swap_out(10_000, 1_000_000, 2_000_000, 30)

    @pytest.mark.asyncio
    async def test_reserves_are_read_every_call(self):
        adapter, pair = self.make([1_000_000, 2_000_000, 0])
        await adapter.quote(WETH, USDC, 10_000)
        await adapter.quote(WETH, USDC, 10_000)
        assert pair.functions.getReserves.return_value.call.call_count == 2

    @pytest.mark.asyncio
    async def test_unknown_pool(self):
        adapter, _ = self.make([1_000_000, 2_000_000, 0])
        with pytest.raises(QuoteUnavailable):
            await adapter.quote(WETH, SOL, 10_000)

    @pytest.mark.asyncio
    async def test_empty_pool(self):
        adapter, _ = self.make([0, 0, 0])
        with pytest.raises(QuoteUnavailable):
            await adapter.quote(WETH, USDC, 10_000)

    @pytest.mark.asyncio
    async def test_rpc_failure(self):
        adapter, pair = self.make([1, 1, 0])
        pair.functions.getReserves.return_value.call.side_effect = ConnectionError("down")
        with pytest.raises(VenueUnreachable):
            await adapter.quote(WETH, USDC, 10_000)


@contextlib.asynccontextmanager
async def jupiter(handler, timeout_sec=5.0):
    app = web.Application()
    app.router.add_get("/v6/quote", handler)
    async with TestServer(app) as server:
        async with aiohttp.ClientSession() as session:
            yield JupiterQuoteAdapter(
                "jupiter", session, base_url=str(server.make_url("/v6")), timeout_sec=timeout_sec
            )


class TestJupiterQuoteAdapter:
    @pytest.mark.asyncio
    async def test_quote(self):
        seen = {}

        async def handler(request):
            seen.update(request.query)
            return web.json_response({"inAmount": "1000000000", "outAmount": "150250000"})

        async with jupiter(handler) as adapter:
            assert await adapter.quote(SOL, SOL_USDC, 1_000_000_000) == 150_250_000

        assert seen == {
            "inputMint": SOL.address,
            "outputMint": SOL_USDC.address,
            "amount": "1000000000",
            "slippageBps": "50",
        }

    @pytest.mark.asyncio
    async def test_no_route_is_quote_unavailable(self):
        async def handler(request):
            return web.json_response({"error": "Could not find any route"}, status=400)

        async with jupiter(handler) as adapter:
            with pytest.raises(QuoteUnavailable, match="Could not find any route"):
                await adapter.quote(SOL, SOL_USDC, 1_000)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_server_errors_are_venue_unreachable(self, status):
        async def handler(request):
            return web.Response(status=status, text="busy")

        async with jupiter(handler) as adapter:
            with pytest.raises(VenueUnreachable):
                await adapter.quote(SOL, SOL_USDC, 1_000)

    @pytest.mark.asyncio
    async def test_missing_or_zero_out_amount(self):
        responses = [{"routePlan": []}, {"outAmount": "0"}, {"outAmount": "abc"}]

        async def handler(request):
            return web.json_response(responses.pop(0))

        async with jupiter(handler) as adapter:
            for _ in range(3):
                with pytest.raises(QuoteUnavailable):
                    await adapter.quote(SOL, SOL_USDC, 1_000)

    @pytest.mark.asyncio
    async def test_invalid_json_is_venue_unreachable(self):
        async def handler(request):
            return web.Response(text="<html>gateway</html>")

        async with jupiter(handler) as adapter:
            with pytest.raises(VenueUnreachable):
                await adapter.quote(SOL, SOL_USDC, 1_000)

    @pytest.mark.asyncio
    async def test_timeout_is_venue_unreachable(self):
        async def handler(request):
            await asyncio.sleep(1)
            return web.json_response({"outAmount": "1"})

        async with jupiter(handler, timeout_sec=0.05) as adapter:
            with pytest.raises(VenueUnreachable):
                await adapter.quote(SOL, SOL_USDC, 1_000)


class TestBuildVenueAdapters:
    def test_dispatches_by_kind(self):
        venues = [
            VenueConfig(id="uni", kind="uniswap_v2_router", address=ROUTER),
            VenueConfig(id="pairs", kind="uniswap_v2_pair", pairs=MappingProxyType({"WETH/USDC": PAIR})),
            VenueConfig(id="jup", kind="jupiter"),
        ]
        adapters = build_venue_adapters(venues, web3=MagicMock(), session=MagicMock())

        assert isinstance(adapters["uni"], UniswapV2RouterAdapter)
        assert isinstance(adapters["pairs"], UniswapV2PairAdapter)
        assert isinstance(adapters["jup"], JupiterQuoteAdapter)
        assert all(a.venue_id == vid for vid, a in adapters.items())

    def test_evm_venue_without_web3(self):
        with pytest.raises(ConfigurationError):
            build_venue_adapters([VenueConfig(id="uni", kind="uniswap_v2_router", address=ROUTER)])

    def test_jupiter_without_session(self):
        with pytest.raises(ConfigurationError):
            build_venue_adapters([VenueConfig(id="jup", kind="jupiter")])
