"""
BattleScope Ruleset Commands

Show and replace the active ingestion ruleset. Writes are followed by a
cache invalidation broadcast so running ingestion workers reload it.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from redis.exceptions import RedisError

from ..core.formatters import get_utc_timestamp
from ..core.logging import get_logger
from ..models import Ruleset, RulesetUpdate
from .runtime import open_redis, open_store

logger = get_logger(__name__)


def load_ruleset_file(path: Path) -> dict[str, Any]:
    """
    Read a YAML ruleset document.

    Raises:
        ValueError: If the document is not a mapping
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return dict(data)


def build_ruleset_update(
    current: Ruleset,
    file_data: Optional[Mapping[str, Any]],
    args: argparse.Namespace,
) -> RulesetUpdate:
    """
    Merge the current ruleset, an optional YAML document and CLI flags.

    Later sources win: flags override the file, the file overrides the
    current values.
    """
    merged: dict[str, Any] = {
        "min_pilots": current.min_pilots,
        "tracked_alliance_ids": sorted(current.tracked_alliance_ids),
        "tracked_corp_ids": sorted(current.tracked_corp_ids),
        "ignore_unlisted": current.ignore_unlisted,
    }
    if file_data:
        merged.update(file_data)

    if getattr(args, "min_pilots", None) is not None:
        merged["min_pilots"] = args.min_pilots
    if getattr(args, "alliances", None) is not None:
        merged["tracked_alliance_ids"] = args.alliances
    if getattr(args, "corps", None) is not None:
        merged["tracked_corp_ids"] = args.corps
    if getattr(args, "ignore_unlisted", None) is not None:
        merged["ignore_unlisted"] = args.ignore_unlisted
    if getattr(args, "updated_by", None):
        merged["updated_by"] = args.updated_by

    return RulesetUpdate.from_mapping(merged)


def ruleset_warnings(ruleset: Ruleset) -> list[str]:
    """Describe settings that are valid but probably not what the operator meant."""
    warnings = []
    if ruleset.ignore_unlisted and not (ruleset.tracked_alliance_ids or ruleset.tracked_corp_ids):
        warnings.append(
            "ignore_unlisted is set with no tracked alliances or corporations; "
            "every killmail will be rejected"
        )
    return warnings


def cmd_ruleset_show(args: argparse.Namespace) -> dict:
    """Show the active ruleset."""

    async def run() -> dict:
        async with open_store() as store:
            ruleset = await store.get_active_ruleset()
        result = ruleset.to_dict()
        result["query_timestamp"] = get_utc_timestamp()
        return result

    return asyncio.run(run())


def cmd_ruleset_set(args: argparse.Namespace) -> dict:
    """Replace the active ruleset and broadcast the change."""
    from ..services.ruleset import RedisRulesetCache, publish_ruleset_invalidation

    file_data = None
    if args.file:
        try:
            file_data = load_ruleset_file(Path(args.file))
        except (OSError, yaml.YAMLError, ValueError) as e:
            return {"error": "invalid_ruleset_file", "message": str(e)}

    async def run() -> dict:
        async with open_store() as store:
            current = await store.get_active_ruleset()
            try:
                update = build_ruleset_update(current, file_data, args)
            except (TypeError, ValueError) as e:
                return {"error": "invalid_ruleset", "message": str(e)}

            ruleset = await store.update_active_ruleset(update)
            result = ruleset.to_dict()
            warnings = ruleset_warnings(ruleset)
            for warning in warnings:
                logger.warning(warning)

            try:
                async with open_redis() as redis:
                    await RedisRulesetCache(store, redis).invalidate()
                    result["subscribers_notified"] = await publish_ruleset_invalidation(redis)
            except (RedisError, OSError) as e:
                # Stored; caches pick it up when their TTL expires
                logger.warning("Ruleset saved but invalidation failed: %s", e)
                warnings.append(f"Cache invalidation failed: {e}")

            if warnings:
                result["warnings"] = warnings

        result["query_timestamp"] = get_utc_timestamp()
        return result

    return asyncio.run(run())


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register ruleset command parsers."""

    ruleset_parser = subparsers.add_parser(
        "ruleset",
        help="Manage the ingestion ruleset",
    )
    ruleset_subparsers = ruleset_parser.add_subparsers(
        dest="ruleset_command",
        help="Ruleset commands",
    )

    show_parser = ruleset_subparsers.add_parser("show", help="Show the active ruleset")
    show_parser.set_defaults(func=cmd_ruleset_show)

    set_parser = ruleset_subparsers.add_parser(
        "set",
        help="Replace the active ruleset",
        description="Unspecified fields keep their current value.",
    )
    set_parser.add_argument("--file", help="YAML document with ruleset fields")
    set_parser.add_argument("--min-pilots", type=int, help="Minimum distinct pilots per killmail")
    set_parser.add_argument(
        "--alliances",
        type=int,
        nargs="*",
        help="Tracked alliance IDs (pass no values to clear)",
    )
    set_parser.add_argument(
        "--corps",
        type=int,
        nargs="*",
        help="Tracked corporation IDs (pass no values to clear)",
    )
    unlisted = set_parser.add_mutually_exclusive_group()
    unlisted.add_argument(
        "--ignore-unlisted",
        dest="ignore_unlisted",
        action="store_const",
        const=True,
        help="Reject killmails involving no tracked entity",
    )
    unlisted.add_argument(
        "--accept-unlisted",
        dest="ignore_unlisted",
        action="store_const",
        const=False,
        help="Accept killmails regardless of tracked entities",
    )
    set_parser.add_argument("--updated-by", help="Operator name recorded with the change")
    set_parser.set_defaults(func=cmd_ruleset_set, ignore_unlisted=None)
