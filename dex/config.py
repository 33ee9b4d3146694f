"""
Configuration loading and validation for the arbitrage engine.

The YAML file is parsed once at startup into a frozen EngineConfig which is
then passed by reference to the scheduler, gate and coordinator.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from flash_arbitrage.constants import (
    DEFAULT_CONTRACT_VENUE_ORDER,
    DEFAULT_COST_SAFETY_MULTIPLIER_PCT,
    DEFAULT_EXECUTION_TIMEOUT_SEC,
    DEFAULT_GAS_PRICE_GWEI,
    DEFAULT_JUPITER_SLIPPAGE_BPS,
    DEFAULT_MAX_CONCURRENT_PATHS,
    DEFAULT_MIN_PROFIT_THRESHOLD_PCT,
    DEFAULT_MONITORING_INTERVAL_SEC,
    DEFAULT_V2_FEE_BPS,
    EVM_DEX_ROUTERS,
    JUPITER_QUOTE_API_URL,
    KNOWN_TOKENS,
)
from flash_arbitrage.exceptions import ConfigurationError
from flash_arbitrage.utils import is_valid_basis_points

from .types import MonitoredPath, SwapPath, Token

VENUE_KINDS = ("uniswap_v2_router", "uniswap_v2_pair", "jupiter")


@dataclass(frozen=True)
class VenueConfig:
    """
    One configured venue.

    Attributes:
        id: Stable venue identifier referenced by paths
        kind: Adapter variant (uniswap_v2_router, uniswap_v2_pair, jupiter)
        address: Router address (uniswap_v2_router)
        pairs: "A/B" -> pair address (uniswap_v2_pair)
        fee_bps: Swap fee for locally computed quotes (uniswap_v2_pair)
        url: Quote API root (jupiter)
        slippage_bps: Slippage tolerance sent with quotes (jupiter)
        timeout_sec: Per-request timeout
    """

    id: str
    kind: str
    address: Optional[str] = None
    pairs: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    fee_bps: int = DEFAULT_V2_FEE_BPS
    url: str = JUPITER_QUOTE_API_URL
    slippage_bps: int = DEFAULT_JUPITER_SLIPPAGE_BPS
    timeout_sec: float = 10.0


@dataclass(frozen=True)
class MetricsConfig:
    """Prometheus exposition settings."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable engine configuration.

    Attributes:
        network: Network key used for the built-in token/router registry
        rpc_url: EVM JSON-RPC endpoint (None for Solana-only setups)
        monitoring_interval_sec: Seconds between cycle starts
        min_profit_threshold_pct: Net profit percent an opportunity must exceed
        cost_safety_multiplier_pct: Percent added on top of the raw cost estimate
        execution_timeout_sec: Max seconds to wait for settlement
        gas_price_gwei: Gas price used for EVM submissions
        max_concurrent_paths: Bound on paths evaluated at the same time
        contract_address: Settlement contract address (EVM live mode)
        private_key_env: Environment variable holding the signing key
        contract_venue_order: Venue ids the contract swaps through, in order
        tokens: Symbol -> Token for every token in use
        venues: Configured venues
        paths: Monitored paths with their fixed input amounts
        metrics: Prometheus settings
    """

    network: str
    rpc_url: Optional[str]
    monitoring_interval_sec: float
    min_profit_threshold_pct: float
    cost_safety_multiplier_pct: int
    execution_timeout_sec: float
    gas_price_gwei: float
    max_concurrent_paths: int
    contract_address: Optional[str]
    private_key_env: str
    tokens: Mapping[str, Token]
    venues: Tuple[VenueConfig, ...]
    paths: Tuple[MonitoredPath, ...]
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    contract_venue_order: Tuple[str, ...] = DEFAULT_CONTRACT_VENUE_ORDER

    @property
    def venue_ids(self) -> Tuple[str, ...]:
        return tuple(v.id for v in self.venues)

    @property
    def uses_evm(self) -> bool:
        return any(v.kind.startswith("uniswap_v2") for v in self.venues)


def _get_required(d: Dict, key: str, expected_type: type) -> Any:
    """Get required config field with type validation."""
    if key not in d:
        raise ConfigurationError(f"Missing required config field: {key}")
    val = d[key]
    if not isinstance(val, expected_type):
        raise ConfigurationError(
            f"Config field '{key}' must be {expected_type.__name__}, got {type(val).__name__}"
        )
    return val


def _get_number(d: Dict, key: str, default: float, minimum: float = 0) -> float:
    val = d.get(key, default)
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        raise ConfigurationError(f"Config field '{key}' must be a number, got {val!r}")
    if val < minimum:
        raise ConfigurationError(f"Config field '{key}' must be >= {minimum}, got {val}")
    return val


def _parse_tokens(
    tokens_raw: Any, network: str
) -> Dict[str, Token]:
    """Parse explicit tokens; entries without an address come from the registry."""
    registry = KNOWN_TOKENS.get(network, {})
    if isinstance(tokens_raw, list):
        tokens_raw = {symbol: {} for symbol in tokens_raw}
    if not isinstance(tokens_raw, dict):
        raise ConfigurationError("tokens must be a dict or a list of symbols")

    tokens = {}
    for symbol, info in tokens_raw.items():
        info = info or {}
        if not isinstance(info, dict):
            raise ConfigurationError(f"Token '{symbol}' config must be a dict")
        if "address" in info:
            if "decimals" not in info:
                raise ConfigurationError(f"Token '{symbol}' missing 'decimals'")
            tokens[symbol] = Token(
                address=str(info["address"]),
                symbol=symbol,
                decimals=int(info["decimals"]),
            )
        elif symbol in registry:
            address, decimals = registry[symbol]
            tokens[symbol] = Token(address=address, symbol=symbol, decimals=decimals)
        else:
            raise ConfigurationError(
                f"Token '{symbol}' has no address and is not known on '{network}'"
            )
    return tokens


def _resolve_token(symbol: str, tokens: Dict[str, Token], network: str) -> Token:
    """Look up a token by symbol, pulling it from the registry on first use."""
    if symbol in tokens:
        return tokens[symbol]
    registry = KNOWN_TOKENS.get(network, {})
    if symbol not in registry:
        raise ConfigurationError(f"Unknown token '{symbol}' on network '{network}'")
    address, decimals = registry[symbol]
    tokens[symbol] = Token(address=address, symbol=symbol, decimals=decimals)
    return tokens[symbol]


def _parse_venues(venues_raw: List[Any], network: str) -> Tuple[VenueConfig, ...]:
    """Parse and validate venue configs."""
    if not isinstance(venues_raw, list) or not venues_raw:
        raise ConfigurationError("venues must be a non-empty list")

    venues = []
    seen = set()
    for i, venue in enumerate(venues_raw):
        if not isinstance(venue, dict):
            raise ConfigurationError(f"Venue config {i} must be a dict")

        venue_id = venue.get("id")
        if not venue_id:
            raise ConfigurationError(f"Venue config {i} missing 'id'")
        if venue_id in seen:
            raise ConfigurationError(f"Duplicate venue id '{venue_id}'")
        seen.add(venue_id)

        kind = venue.get("kind")
        if kind not in VENUE_KINDS:
            raise ConfigurationError(
                f"Venue '{venue_id}' has invalid kind '{kind}' "
                f"(must be one of {', '.join(VENUE_KINDS)})"
            )

        address = venue.get("address")
        if kind == "uniswap_v2_router" and not address:
            address = EVM_DEX_ROUTERS.get(network, {}).get(venue_id)
            if not address:
                raise ConfigurationError(
                    f"Venue '{venue_id}' missing 'address' and no known router on '{network}'"
                )

        pairs = venue.get("pairs", {})
        if not isinstance(pairs, dict):
            raise ConfigurationError(f"Venue '{venue_id}' pairs must be a dict")
        if kind == "uniswap_v2_pair" and not pairs:
            raise ConfigurationError(f"Venue '{venue_id}' needs at least one pair")
        for pair_name in pairs:
            if len(str(pair_name).split("/")) != 2:
                raise ConfigurationError(
                    f"Venue '{venue_id}' pair '{pair_name}' must look like 'BASE/QUOTE'"
                )

        for bps_key in ("fee_bps", "slippage_bps"):
            if bps_key in venue and not is_valid_basis_points(venue[bps_key]):
                raise ConfigurationError(
                    f"Venue '{venue_id}' {bps_key} must be between 0 and 10000"
                )

        venues.append(
            VenueConfig(
                id=venue_id,
                kind=kind,
                address=address,
                pairs=MappingProxyType({str(k): str(v) for k, v in pairs.items()}),
                fee_bps=int(venue.get("fee_bps", DEFAULT_V2_FEE_BPS)),
                url=venue.get("url", JUPITER_QUOTE_API_URL),
                slippage_bps=int(venue.get("slippage_bps", DEFAULT_JUPITER_SLIPPAGE_BPS)),
                timeout_sec=float(venue.get("timeout_sec", 10.0)),
            )
        )
    return tuple(venues)


def _parse_amount(
    entry: Dict[str, Any], key: str, token: Token, where: str, required: bool = True
) -> int:
    """Read `key` (human units) or `key_base_units` (integer) for token."""
    base_key = f"{key}_base_units"
    if base_key in entry:
        val = entry[base_key]
        if isinstance(val, bool) or not isinstance(val, int):
            raise ConfigurationError(f"{where}: '{base_key}' must be an integer")
        return val
    if key not in entry:
        if required:
            raise ConfigurationError(f"{where}: missing '{key}'")
        return 0
    try:
        return token.to_base_units(Decimal(str(entry[key])))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"{where}: invalid '{key}': {e}") from e


def _build_monitored_path(
    name: str,
    symbols: List[str],
    venue_ids: List[str],
    entry: Dict[str, Any],
    tokens: Dict[str, Token],
    network: str,
) -> MonitoredPath:
    where = f"Path '{name or ' -> '.join(symbols)}'"
    path_tokens = tuple(_resolve_token(s, tokens, network) for s in symbols)
    try:
        path = SwapPath(tokens=path_tokens, venue_ids=tuple(venue_ids), name=name)
        return MonitoredPath(
            path=path,
            amount_in=_parse_amount(entry, "amount_in", path_tokens[0], where),
            estimated_cost=_parse_amount(
                entry, "estimated_cost", path_tokens[0], where, required=False
            ),
        )
    except ValueError as e:
        raise ConfigurationError(f"{where}: {e}") from e


def _parse_paths(
    paths_raw: List[Any], tokens: Dict[str, Token], network: str
) -> List[MonitoredPath]:
    """Parse explicitly listed paths."""
    if not isinstance(paths_raw, list):
        raise ConfigurationError("paths must be a list")

    paths = []
    for i, entry in enumerate(paths_raw):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Path config {i} must be a dict")
        symbols = entry.get("tokens")
        if not isinstance(symbols, list) or len(symbols) < 3:
            raise ConfigurationError(f"Path config {i} needs a 'tokens' list of 3+ symbols")

        if "venues" in entry:
            venue_ids = entry["venues"]
            if not isinstance(venue_ids, list):
                raise ConfigurationError(f"Path config {i} 'venues' must be a list")
        elif "venue" in entry:
            venue_ids = [entry["venue"]] * (len(symbols) - 1)
        else:
            raise ConfigurationError(f"Path config {i} needs 'venues' or 'venue'")

        paths.append(
            _build_monitored_path(
                entry.get("name", ""), symbols, venue_ids, entry, tokens, network
            )
        )
    return paths


def _parse_pairwise(
    pairwise_raw: Dict[str, Any], tokens: Dict[str, Token], network: str
) -> List[MonitoredPath]:
    """
    Generate base -> token -> base paths for every monitored token.

    Buys the token on `buy_venue` and sells it back on `sell_venue`.
    """
    if not isinstance(pairwise_raw, dict):
        raise ConfigurationError("pairwise must be a dict")

    base = _get_required(pairwise_raw, "base", str)
    buy_venue = _get_required(pairwise_raw, "buy_venue", str)
    sell_venue = _get_required(pairwise_raw, "sell_venue", str)
    symbols = pairwise_raw.get("tokens") or [s for s in tokens if s != base]
    if not symbols:
        raise ConfigurationError("pairwise has no tokens to pair with the base")

    paths = []
    for symbol in symbols:
        if symbol == base:
            continue
        paths.append(
            _build_monitored_path(
                "", [base, symbol, base], [buy_venue, sell_venue], pairwise_raw, tokens, network
            )
        )
    return paths


def _parse_contract_venue_order(raw: Any, known_venues: set) -> Tuple[str, ...]:
    """Venue order of the settlement contract's two swaps."""
    if raw is None:
        return DEFAULT_CONTRACT_VENUE_ORDER
    if not isinstance(raw, list) or len(raw) != 2:
        raise ConfigurationError("contract_venue_order must list exactly two venue ids")
    for venue_id in raw:
        if venue_id not in known_venues:
            raise ConfigurationError(f"contract_venue_order uses unknown venue '{venue_id}'")
    return tuple(raw)


def _parse_metrics(metrics_raw: Dict[str, Any]) -> MetricsConfig:
    if not isinstance(metrics_raw, dict):
        raise ConfigurationError("metrics must be a dict")
    return MetricsConfig(
        enabled=bool(metrics_raw.get("enabled", False)),
        host=str(metrics_raw.get("host", "0.0.0.0")),
        port=int(metrics_raw.get("port", 8000)),
    )


def parse_config(config_dict: Dict[str, Any]) -> EngineConfig:
    """
    Parse and validate config from dictionary.

    Args:
        config_dict: Loaded YAML config

    Returns:
        Frozen EngineConfig

    Raises:
        ConfigurationError: If required fields missing or invalid
    """
    network = config_dict.get("network", "ethereum")
    if not isinstance(network, str):
        raise ConfigurationError("network must be a string")

    rpc_url_env = config_dict.get("rpc_url_env", "RPC_URL")
    rpc_url = os.getenv(rpc_url_env) or config_dict.get("rpc_url")

    contract_env = config_dict.get("contract_address_env", "CONTRACT_ADDRESS")
    contract_address = os.getenv(contract_env) or config_dict.get("contract_address")

    tokens = _parse_tokens(config_dict.get("tokens") or {}, network)
    venues = _parse_venues(config_dict.get("venues", []), network)

    paths = _parse_paths(config_dict.get("paths", []), tokens, network)
    if "pairwise" in config_dict:
        paths.extend(_parse_pairwise(config_dict["pairwise"], tokens, network))
    if not paths:
        raise ConfigurationError("At least one path (paths or pairwise) must be configured")

    names = [p.name for p in paths]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate path names: {', '.join(duplicates)}")

    known_venues = {v.id for v in venues}
    for monitored in paths:
        for venue_id in monitored.path.venue_ids:
            if venue_id not in known_venues:
                raise ConfigurationError(
                    f"Path '{monitored.name}' uses unknown venue '{venue_id}'"
                )

    max_concurrent = config_dict.get("max_concurrent_paths", DEFAULT_MAX_CONCURRENT_PATHS)
    if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent < 1:
        raise ConfigurationError("max_concurrent_paths must be a positive integer")

    cost_multiplier = config_dict.get(
        "cost_safety_multiplier_pct", DEFAULT_COST_SAFETY_MULTIPLIER_PCT
    )
    if isinstance(cost_multiplier, bool) or not isinstance(cost_multiplier, int) or cost_multiplier < 0:
        raise ConfigurationError("cost_safety_multiplier_pct must be a non-negative integer")

    interval = _get_number(
        config_dict, "monitoring_interval_sec", DEFAULT_MONITORING_INTERVAL_SEC
    )
    if interval <= 0:
        raise ConfigurationError("monitoring_interval_sec must be > 0")

    return EngineConfig(
        network=network,
        rpc_url=rpc_url,
        monitoring_interval_sec=interval,
        min_profit_threshold_pct=_get_number(
            config_dict,
            "min_profit_threshold_pct",
            DEFAULT_MIN_PROFIT_THRESHOLD_PCT,
            minimum=float("-inf"),
        ),
        cost_safety_multiplier_pct=cost_multiplier,
        execution_timeout_sec=_get_number(
            config_dict, "execution_timeout_sec", DEFAULT_EXECUTION_TIMEOUT_SEC
        ),
        gas_price_gwei=_get_number(config_dict, "gas_price_gwei", DEFAULT_GAS_PRICE_GWEI),
        max_concurrent_paths=max_concurrent,
        contract_address=contract_address,
        private_key_env=config_dict.get("private_key_env", "PRIVATE_KEY"),
        tokens=MappingProxyType(dict(tokens)),
        venues=venues,
        paths=tuple(paths),
        metrics=_parse_metrics(config_dict.get("metrics", {})),
        contract_venue_order=_parse_contract_venue_order(
            config_dict.get("contract_venue_order"), known_venues
        ),
    )


def load_config(config_path: str) -> EngineConfig:
    """
    Load and validate config from YAML file.

    Args:
        config_path: Path to config YAML file

    Returns:
        Validated EngineConfig instance

    Raises:
        ConfigurationError: If config invalid or file not found
    """
    if not os.path.exists(config_path):
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigurationError("Config file must contain a YAML dictionary")

    return parse_config(config_dict)
