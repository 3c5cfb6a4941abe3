#!/usr/bin/env python3
"""
BattleScope CLI Entry Point
Provides command-line interface for the ingestion, enrichment and clustering workers.
Run with: python -m battlescope <command> [args]
"""

import argparse
import json
import logging
import sys

from .core.formatters import get_utc_timestamp
from .core.logging import configure_logging


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="battlescope",
        description="BattleScope - killmail ingestion and battle clustering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--log-json", action="store_true", help="Log one JSON object per line")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from .commands import health, pipeline, ruleset, ship_history

    pipeline.register_parsers(subparsers)
    ship_history.register_parsers(subparsers)
    ruleset.register_parsers(subparsers)
    health.register_parsers(subparsers)

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose or args.log_json:
        configure_logging(
            level=logging.DEBUG if args.verbose else None,
            json_output=True if args.log_json else None,
        )

    # Default to help if no command
    if not args.command:
        parser.print_help()
        return 0

    # Group commands (enrich, ruleset, ...) need a subcommand
    if not hasattr(args, "func"):
        output_error(
            f"Missing subcommand for: {args.command}",
            error_type="unknown_command",
            hint=f"Run 'battlescope {args.command} --help' for usage",
        )

    # Execute command
    try:
        result = args.func(args)

        # Output result if it's a dict (JSON response)
        if isinstance(result, dict) and result:
            output_json(result)

            # Return non-zero exit code if result contains error
            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
