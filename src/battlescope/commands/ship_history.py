"""
BattleScope Ship History Commands
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from ..core.config import get_settings
from ..core.formatters import get_utc_timestamp, parse_datetime
from .runtime import open_store


def cmd_ship_history_reset(args: argparse.Namespace) -> dict:
    """Rebuild pilot ship history from succeeded enrichments."""
    from ..services.ship_history import ResetMode, ResetOptions, ShipHistoryResetService

    from_date = None
    if args.from_date:
        from_date = parse_datetime(args.from_date)
        if from_date is None:
            return {"error": "invalid_argument", "message": f"Invalid --from: {args.from_date}"}

    try:
        options = ResetOptions(
            mode=ResetMode(args.mode),
            from_date=from_date,
            batch_size=args.batch_size or get_settings().ship_history_batch_size,
        )
    except ValueError as e:
        return {"error": "invalid_argument", "message": str(e)}

    def report(progress) -> None:
        print(
            f"Progress: {progress.processed}/{progress.total} ({progress.percentage}%)",
            file=sys.stderr,
        )

    async def run() -> dict:
        async with open_store() as store:
            service = ShipHistoryResetService(store)
            result = await service.execute(options, on_progress=None if args.quiet else report)

        output = result.to_dict()
        output["mode"] = options.mode.value
        output["query_timestamp"] = get_utc_timestamp()
        if not result.success:
            output["error"] = "reset_failed"
            output["message"] = result.error
        return output

    return asyncio.run(run())


def cmd_ship_history_stats(args: argparse.Namespace) -> dict:
    from ..services.ship_history import ShipHistoryResetService

    async def run() -> dict:
        async with open_store() as store:
            stats = await ShipHistoryResetService(store).get_stats()
        stats["query_timestamp"] = get_utc_timestamp()
        return stats

    return asyncio.run(run())


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register ship-history command parsers."""

    history_parser = subparsers.add_parser(
        "ship-history",
        help="Pilot ship history maintenance",
    )
    history_subparsers = history_parser.add_subparsers(
        dest="ship_history_command",
        help="Ship history commands",
    )

    # ship-history reset --mode full|incremental [--from DATE]
    reset_parser = history_subparsers.add_parser(
        "reset",
        help="Rebuild ship history from enrichments",
    )
    reset_parser.add_argument(
        "--mode",
        choices=["full", "incremental"],
        default="full",
        help="full truncates first; incremental replaces rows from --from onward",
    )
    reset_parser.add_argument(
        "--from",
        dest="from_date",
        help="Start of the incremental window (ISO 8601, UTC)",
    )
    reset_parser.add_argument(
        "--batch-size",
        type=int,
        help="Enrichments per batch (default: BATTLESCOPE_SHIP_HISTORY_BATCH_SIZE)",
    )
    reset_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print progress to stderr",
    )
    reset_parser.set_defaults(func=cmd_ship_history_reset)

    # ship-history stats
    stats_parser = history_subparsers.add_parser(
        "stats",
        help="Show ship history row count",
    )
    stats_parser.set_defaults(func=cmd_ship_history_stats)
