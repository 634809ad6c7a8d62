"""CLI entry point for Timepon.

Supports:
  - serving: python -m timepon serve [--workspace <path>] [--log-level <level>]
  - one-shot scan: python -m timepon scan [--workspace <path>] [--log-level <level>]
"""

import argparse
import asyncio
import logging
import sys

from .config import TimeponConfig
from .context import TimeponContext
from .server import run_server


async def _scan(config: TimeponConfig) -> int:
    context = TimeponContext(config)
    await context.start(watch=False)
    try:
        added = await context.scan_once()
    finally:
        await context.close()
    print(f"Tracked {added} new files ({len(context.index)} total) in {config.document_path}")
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="timepon",
        description="Timepon: file metadata tracking for AI-assisted development"
    )
    # options shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--workspace",
        default=None,
        help="Workspace to track (default: $TIMEPON_WORKSPACE, then the current directory)"
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Diagnostic log level (logs go to stderr)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    serve_parser = subparsers.add_parser(
        "serve", parents=[common], help="Watch the workspace and start the MCP server"
    )
    serve_parser.add_argument(
        "--stability",
        type=float,
        default=2.0,
        help="Seconds a new file must stay unchanged before it is tracked"
    )

    subparsers.add_parser(
        "scan", parents=[common], help="Track existing files once and write _timepon.yaml"
    )

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return 1

    # stdout carries MCP traffic
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        config = TimeponConfig.from_env(args.workspace, stability_threshold=args.stability)
        try:
            return asyncio.run(run_server(config))
        except KeyboardInterrupt:
            return 0
    return asyncio.run(_scan(TimeponConfig.from_env(args.workspace)))


if __name__ == "__main__":
    sys.exit(main())
