"""Command-line entry point for the position engine.

Run from the backend dir:
  python main.py positions --user alice --address <wallet>
  python main.py balance <wallet>
  python main.py market <mint> [--force]
  python main.py sync --user alice --address <wallet>
  python main.py metrics

Every sub-command prints one JSON document on stdout.
"""

import argparse
import asyncio
import json
import sys
from typing import Optional, Sequence

from pydantic import BaseModel

from config import settings
from services.errors import PortfolioError, exception_text
from services.portfolio_service import PortfolioService, build_portfolio_service
from utils.logger import get_logger, setup_logging

logger = get_logger("main")


def _dump(value) -> str:
    if isinstance(value, BaseModel):
        payload = value.model_dump(mode="json")
    elif isinstance(value, list):
        payload = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    else:
        payload = value
    return json.dumps(payload, indent=2, default=str, ensure_ascii=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Solana position tracker and P&L reconciliation")
    sub = parser.add_subparsers(dest="command", required=True)

    positions = sub.add_parser("positions", help="Reconciled positions with P&L")
    positions.add_argument("--user", required=True, help="Ledger user id")
    positions.add_argument("--address", help="Wallet address to read on-chain holdings from")
    positions.add_argument("--force", action="store_true", help="Bypass caches")

    balance = sub.add_parser("balance", help="Native and token balances of a wallet")
    balance.add_argument("address")
    balance.add_argument("--force", action="store_true")

    market = sub.add_parser("market", help="Market data for a token mint")
    market.add_argument("contract")
    market.add_argument("--force", action="store_true")

    sync = sub.add_parser("sync", help="Force-refresh positions from the chain")
    sync.add_argument("--user", required=True)
    sync.add_argument("--address", required=True)

    sub.add_parser("metrics", help="Cache, pool and upstream call metrics")
    return parser


async def run_command(service: PortfolioService, args: argparse.Namespace):
    if args.command == "positions":
        return await service.get_active_positions(args.user, args.address, force_refresh=args.force)
    if args.command == "balance":
        return await service.get_wallet_balance(args.address, force_refresh=args.force)
    if args.command == "market":
        return await service.get_market_data(args.contract, force_refresh=args.force)
    if args.command == "sync":
        return await service.sync_with_blockchain(args.user, args.address)
    if args.command == "metrics":
        return service.get_metrics()
    raise ValueError(f"Unknown command: {args.command}")


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    # Logs go to stderr so stdout stays parseable JSON.
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON, stream=sys.stderr)

    service = build_portfolio_service(settings)
    try:
        result = await run_command(service, args)
    except PortfolioError as e:
        logger.error("Command failed", command=args.command, error_type=type(e).__name__, error=exception_text(e))
        print(json.dumps({"error": exception_text(e), "type": type(e).__name__}), file=sys.stderr)
        return 1
    finally:
        await service.aclose()

    print(_dump(result))
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
