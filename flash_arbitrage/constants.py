"""
Built-in token and venue registry plus default policy values.

Token entries are ``symbol -> (address or mint, decimals)``. Configuration
files may refer to these by symbol instead of repeating addresses.
"""

from typing import Dict, Tuple

# === EVM TOKENS ===
EVM_TOKENS: Dict[str, Dict[str, Tuple[str, int]]] = {
    "ethereum": {
        "WETH": ("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18),
        "USDC": ("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
        "USDT": ("0xdAC17F958D2ee523a2206206994597C13D831ec7", 6),
        "DAI": ("0x6B175474E89094C44Da98b954EedeAC495271d0F", 18),
        "WBTC": ("0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", 8),
    },
    "polygon": {
        "WMATIC": ("0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270", 18),
        "WETH": ("0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619", 18),
        "USDC": ("0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174", 6),
        "USDT": ("0xc2132D05D31c914a87C6611C10748AEb04B58e8F", 6),
        "DAI": ("0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063", 18),
    },
    "arbitrum": {
        "WETH": ("0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", 18),
        "USDC": ("0xFF970A61A04b1cA14834A43f5dE4533eBDDB5CC8", 6),
        "USDT": ("0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", 6),
        "DAI": ("0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1", 18),
    },
}

# === SOLANA TOKENS (mint accounts) ===
SOLANA_TOKENS: Dict[str, Dict[str, Tuple[str, int]]] = {
    "solana": {
        "SOL": ("So11111111111111111111111111111111111111112", 9),  # Wrapped SOL
        "USDC": ("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
        "USDT": ("Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 6),
        "BTC": ("9n4nbM75f5Ui33ZbPYXn59EwSgE8CGsHtAeTH5YFeJ9E", 6),
        "ETH": ("2FPyTwcZLUg1MDrwsyoP4D6s1tM7hAkHYRjkNb5w6Pxk", 6),
        "RAY": ("4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", 6),
        "SRM": ("SRMuApVNdxXokk5GT7XD5cUUgXMBCoAz2LHeuAoKWRt", 6),
    },
    "solana-devnet": {
        "SOL": ("So11111111111111111111111111111111111111112", 9),
        "USDC": ("Gh9ZwEmdLJ8DscKNTkTqPbNwLNNBjuSzaG9Vp2KGtKJr", 6),
        "USDT": ("BQcdHdAQW1hczDbBi9hiegXAR7A98Q9jx3X3iBBBDiq4", 6),
    },
}

KNOWN_TOKENS: Dict[str, Dict[str, Tuple[str, int]]] = {**EVM_TOKENS, **SOLANA_TOKENS}

# === DEX ROUTERS (EVM) ===
EVM_DEX_ROUTERS: Dict[str, Dict[str, str]] = {
    "ethereum": {
        "uniswap_v2": "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D",
        "sushiswap": "0xd9e1cE17f2641f24aE83637ab66a2cca9C378B9F",
    },
    "polygon": {
        "quickswap": "0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff",
        "sushiswap": "0x1b02dA8Cb0d097eB8D57A175b88c7D8b47997506",
    },
}

JUPITER_QUOTE_API_URL = "https://quote-api.jup.ag/v6"

# === POLICY DEFAULTS ===
DEFAULT_MONITORING_INTERVAL_SEC = 60
DEFAULT_MIN_PROFIT_THRESHOLD_PCT = 0.5
DEFAULT_COST_SAFETY_MULTIPLIER_PCT = 20  # +20% on top of the raw gas estimate
DEFAULT_EXECUTION_TIMEOUT_SEC = 120
DEFAULT_GAS_PRICE_GWEI = 50
DEFAULT_JUPITER_SLIPPAGE_BPS = 50
DEFAULT_V2_FEE_BPS = 30
DEFAULT_MAX_CONCURRENT_PATHS = 4

# Name of the event emitted by the settlement contract on success
ARBITRAGE_EVENT_NAME = "Arbitrage"

# Venues the flash-loan contract swaps through, in order (buy, then sell)
DEFAULT_CONTRACT_VENUE_ORDER = ("uniswap_v2", "sushiswap")
