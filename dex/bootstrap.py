"""
Wires an EngineConfig into a runnable scheduler.

Owns the external clients (web3 connection, aiohttp session, metrics
server) so the CLI only has to build, run and close an Engine.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

import aiohttp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import HTTPProvider, Web3

from flash_arbitrage.exceptions import ConfigurationError
from flash_arbitrage.interfaces import Clock
from flash_arbitrage.metrics import ArbitrageMetrics
from flash_arbitrage.utils import get_logger

from .adapters import build_venue_adapters
from .config import EngineConfig
from .evaluator import PathEvaluator
from .executor import ExecutionCoordinator, ExecutionPolicy
from .opportunity_math import ProfitabilityGate
from .runner import ArbitrageScheduler, ConsoleReporter, log_cycle_report
from .targets import ExecutionTarget, FlashLoanContractTarget, PaperExecutionTarget

logger = get_logger(__name__)

MODES = ("paper", "dry_run", "live")


def connect_web3(rpc_url: str, timeout: int = 30) -> Web3:
    """Connect to an EVM JSON-RPC endpoint."""
    web3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
    if not web3.is_connected():
        raise ConfigurationError(f"Failed to connect to RPC: {rpc_url}")
    logger.info(f"Connected to RPC (chain id {web3.eth.chain_id})")
    return web3


def load_signing_account(env_var: str) -> LocalAccount:
    """Load the signing account from a private key held in an environment variable."""
    private_key = os.getenv(env_var)
    if not private_key:
        raise ConfigurationError(f"LIVE mode requires the {env_var} environment variable")
    try:
        account = Account.from_key(private_key)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid private key in {env_var}") from e
    logger.info(f"Loaded account: {account.address}")
    return account


def build_target(mode: str, config: EngineConfig, web3: Optional[Web3]) -> Optional[ExecutionTarget]:
    """paper -> no target, dry_run -> PaperExecutionTarget, live -> FlashLoanContractTarget."""
    if mode not in MODES:
        raise ConfigurationError(f"Unknown mode '{mode}' (must be one of {', '.join(MODES)})")
    if mode == "paper":
        return None
    if mode == "dry_run":
        return PaperExecutionTarget()

    if web3 is None:
        raise ConfigurationError("LIVE mode requires an EVM RPC connection (rpc_url)")
    if not config.contract_address:
        raise ConfigurationError("LIVE mode requires contract_address (or CONTRACT_ADDRESS)")
    account = load_signing_account(config.private_key_env)
    return FlashLoanContractTarget(
        web3,
        config.contract_address,
        account,
        gas_price_wei=Web3.to_wei(config.gas_price_gwei, "gwei"),
        venue_order=config.contract_venue_order,
    )


@dataclass
class Engine:
    """A wired scheduler plus the resources it needs released on shutdown."""

    scheduler: ArbitrageScheduler
    session: Optional[aiohttp.ClientSession] = None
    metrics: Optional[ArbitrageMetrics] = None
    metrics_server_started: bool = False
    reporters: List[object] = field(default_factory=list)

    async def close(self) -> None:
        if self.metrics is not None and self.metrics_server_started:
            await self.metrics.stop_server()
        if self.session is not None:
            await self.session.close()


async def build_engine(
    config: EngineConfig,
    mode: str = "paper",
    quiet: bool = False,
    metrics_port: Optional[int] = None,
    clock: Optional[Clock] = None,
    web3: Optional[Web3] = None,
) -> Engine:
    """
    Build the full engine for `config` in the given execution mode.

    Args:
        config: Validated engine configuration
        mode: One of paper, dry_run, live
        quiet: Only print opportunities and batch summaries
        metrics_port: Serve Prometheus metrics on this port (overrides config)
        clock: Clock for the scheduler (system clock by default)
        web3: Pre-built Web3 instance (connects to config.rpc_url otherwise)
    """
    if web3 is None and config.uses_evm:
        if not config.rpc_url:
            raise ConfigurationError("EVM venues configured but no rpc_url / RPC_URL set")
        web3 = connect_web3(config.rpc_url)

    session = None
    if any(v.kind == "jupiter" for v in config.venues):
        session = aiohttp.ClientSession()

    try:
        adapters = build_venue_adapters(config.venues, web3=web3, session=session)
        evaluator = PathEvaluator(adapters, [mp.path for mp in config.paths])
        target = build_target(mode, config, web3)
    except Exception:
        if session is not None:
            await session.close()
        raise

    coordinator = None
    if target is not None:
        coordinator = ExecutionCoordinator(
            target,
            ExecutionPolicy(
                cost_safety_multiplier_pct=config.cost_safety_multiplier_pct,
                settlement_timeout_sec=config.execution_timeout_sec,
            ),
            clock=clock,
        )

    reporter = ConsoleReporter(config.min_profit_threshold_pct, quiet=quiet)
    scheduler = ArbitrageScheduler(
        config.paths,
        evaluator,
        ProfitabilityGate(config.min_profit_threshold_pct),
        coordinator=coordinator,
        interval_sec=config.monitoring_interval_sec,
        max_concurrent_paths=config.max_concurrent_paths,
        clock=clock,
        sinks=[log_cycle_report, reporter],
    )
    engine = Engine(scheduler=scheduler, session=session, reporters=[reporter])

    if metrics_port is not None or config.metrics.enabled:
        engine.metrics = ArbitrageMetrics()
        scheduler.add_sink(engine.metrics.record_cycle_report)
        engine.metrics_server_started = await engine.metrics.start_server(
            port=metrics_port if metrics_port is not None else config.metrics.port,
            host=config.metrics.host,
        )

    if not quiet:
        reporter.print_banner(config.paths, config.monitoring_interval_sec, mode.upper())
    return engine
