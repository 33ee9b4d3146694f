#!/usr/bin/env python3
"""
Run the flash arbitrage engine.

MODES:
  1. Paper (default): Detect and report opportunities, no execution
  2. Dry Run: Execute against a simulated target (logs what would happen)
  3. Live: Submit flash-loan transactions (REQUIRES PRIVATE KEY)

SAFETY:
  - Paper mode is the default
  - Private key must be explicitly provided via env var
  - Only opportunities strictly above the profit threshold are executed
  - Executions are never retried automatically

Usage:
  # Paper trading (no execution)
  python run_arbitrage.py --config configs/ethereum_pairwise.yaml

  # Dry run (simulate execution)
  python run_arbitrage.py --config configs/ethereum_pairwise.yaml --dry-run

  # Live execution (DANGEROUS - requires private key)
  export PRIVATE_KEY="0x..."
  python run_arbitrage.py --config configs/ethereum_pairwise.yaml --live

Environment Variables:
  RPC_URL: EVM JSON-RPC endpoint (overrides rpc_url in the config)
  CONTRACT_ADDRESS: Flash-loan contract (overrides contract_address)
  PRIVATE_KEY: Private key for signing transactions (required for --live)
"""

import argparse
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv

import logging_config
from dex.bootstrap import build_engine
from dex.config import load_config
from flash_arbitrage.exceptions import ConfigurationError
from flash_arbitrage.utils import get_logger
from flash_arbitrage.version import get_version

logger = get_logger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Flash Arbitrage Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to engine config YAML file",
    )

    # Execution mode
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--paper",
        action="store_true",
        help="Paper mode (detect only, no execution) [DEFAULT]",
    )
    mode_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry run mode (simulated execution, no real transactions)",
    )
    mode_group.add_argument(
        "--live",
        action="store_true",
        help="Live mode (submit real transactions - REQUIRES PRIVATE_KEY)",
    )

    # Other options
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Quiet mode (only opportunities and batch summaries)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Serve Prometheus metrics on this port",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_version()}",
    )

    return parser.parse_args(argv)


def get_mode(args) -> str:
    if args.live:
        return "live"
    if args.dry_run:
        return "dry_run"
    return "paper"


def install_signal_handlers(loop, scheduler) -> None:
    """SIGINT/SIGTERM request a graceful stop instead of killing the loop."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt handling
            pass


async def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    load_dotenv()

    if args.debug:
        logging_config.setup_debug()
    else:
        logging_config.setup(logging.INFO)

    mode = get_mode(args)
    try:
        logger.info(f"Loading config from {args.config}...")
        config = load_config(args.config)
        engine = await build_engine(
            config, mode=mode, quiet=args.quiet, metrics_port=args.metrics_port
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.info(f"Execution Mode: {mode.upper().replace('_', ' ')}")
    install_signal_handlers(asyncio.get_running_loop(), engine.scheduler)

    try:
        await engine.scheduler.run(max_cycles=1 if args.once else None)
    finally:
        coordinator = engine.scheduler.coordinator
        if coordinator is not None:
            logger.info(f"Execution stats: {coordinator.get_stats()}")
        await engine.close()
    return 0


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    cli()
