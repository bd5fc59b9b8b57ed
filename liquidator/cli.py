"""Command-line interface for the liquidation service."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .logging_setup import configure_logging
from .models import AssetAddress
from .services import Monitor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="liquidator",
        description="Aave V3 liquidation monitor and batch executor",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Track positions and settle liquidations continuously")

    scan_parser = sub.add_parser("scan", help="Scan historical liquidations since the last checkpoint")
    scan_parser.add_argument(
        "--to-block",
        type=int,
        default=None,
        help="Last block to scan (default: chain head)",
    )

    evaluate_parser = sub.add_parser("evaluate", help="Evaluate the given borrowers once")
    evaluate_parser.add_argument("addresses", nargs="+", help="Borrower addresses")

    return parser


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    monitor = Monitor(config)

    if args.command == "run":
        await monitor.run()
    elif args.command == "scan":
        records = await monitor.scan_history(args.to_block)
        for record in records:
            logger.info(
                "%s block %d | liquidator %s | net profit $%.2f",
                record.tx_hash,
                record.block_number,
                record.liquidator.short(),
                record.breakdown.profit_usd,
            )
        logger.info("%d records scanned, history kept in %s", len(records), config.storage.history_path)
    elif args.command == "evaluate":
        for address in args.addresses:
            monitor.monitored.add(AssetAddress(address))
        results = await monitor.evaluate_once()
        logger.info("Evaluated %d batches: %s", len(results), results)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
