"""Command-line interface for the escrow lender."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import AppConfig, load_config
from .errors import EscrowLenderError
from .logging_setup import configure_logging
from .models import LenderPosition
from .services import LenderService


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="escrow-lender",
        description="Deposit to and withdraw from the lender escrow",
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
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="Ledger user id (overrides session.user_id in config)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("position", help="Show current deposit, interest and rate")
    sub.add_parser("deals", help="List recorded deals, most recent first")

    deposit_parser = sub.add_parser("deposit", help="Deposit wei into the escrow")
    deposit_parser.add_argument("amount", type=int, help="Amount in wei")

    sub.add_parser("withdraw", help="Withdraw the full balance plus interest")

    rate_parser = sub.add_parser("set-rate", help="Change the interest rate (admin only)")
    rate_parser.add_argument("rate", type=int, help="New rate multiplied by 100")

    watch_parser = sub.add_parser("watch", help="Refresh the position until interrupted")
    watch_parser.add_argument(
        "interval",
        nargs="?",
        type=float,
        default=None,
        help="Refresh interval in seconds (overrides config)",
    )

    sub.add_parser("reconcile", help="Settle outbox entries missing from the ledger")

    return parser


def _format_position(position: LenderPosition | None) -> str:
    if position is None:
        return "Position unavailable"
    return (
        f"Current deposit: {position.deposit_amount} wei\n"
        f"Interest earned: {position.interest_earned} wei\n"
        f"Interest rate:   {position.rate_percent:g} %"
    )


def _user_id(args: argparse.Namespace, config: AppConfig) -> int:
    user_id = args.user_id if args.user_id is not None else config.session.user_id
    if user_id is None:
        raise SystemExit("No user id: pass --user-id or set session.user_id")
    return user_id


async def _watch(service: LenderService, user_id: int, interval: float) -> None:
    async with service.session(user_id, refresh_interval=interval) as session:
        while True:
            await asyncio.sleep(interval)
            print(_format_position(session.position), end="\n\n", flush=True)


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command; returns the process exit code."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    service = LenderService(config)

    if args.command == "reconcile":
        report = await service.reconcile()
        print(
            f"Settled: {len(report.settled)}  Failed: {len(report.failed)}  "
            f"Pending: {len(report.still_pending)}  Review: {len(report.needs_review)}"
        )
        return 0 if report.clean else 2

    user_id = _user_id(args, config)

    if args.command == "watch":
        await _watch(service, user_id, args.interval or config.refresh.interval_seconds)
        return 0

    session = service.session(user_id)
    await session.start(refresh=False)
    try:
        if args.command == "position":
            print(_format_position(await session.refresh()))
        elif args.command == "deals":
            for deal in await session.deals():
                print(
                    f"{deal.timestamp.isoformat()}  {deal.deal_type.value:<8}  "
                    f"{deal.amount} wei  (interest {deal.interest_gained} wei)"
                )
        elif args.command in ("deposit", "withdraw"):
            if args.command == "deposit":
                result = await session.deposit(args.amount)
            else:
                result = await session.withdraw()
            print(result.message)
            if result.position is not None:
                print(_format_position(result.position))
            return 0 if result.ok else 1
        elif args.command == "set-rate":
            receipt = await session.change_rate(args.rate)
            print(f"Interest rate changed in tx {receipt.tx_hash}")
    finally:
        await session.stop()
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(asyncio.run(_run(args)))
    except EscrowLenderError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
