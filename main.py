#!/usr/bin/env python3

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
_env_file = Path(__file__).parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from wewe_sync.cli.commands.accounts import (
    register_commands as register_account_commands,
)
from wewe_sync.cli.commands.feeds import (
    register_commands as register_feed_commands,
)
from wewe_sync.cli.commands.sync import (
    register_commands as register_sync_commands,
)
from wewe_sync.config import get_config


def _build_command_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m main",
        description="Sync WeChat public account articles into Markdown notes.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    register_account_commands(subparsers)
    register_feed_commands(subparsers)
    register_sync_commands(subparsers)
    return parser


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else (get_config().log_level or "INFO")
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _dispatch(args: argparse.Namespace) -> int:
    handler = getattr(args, "func", None)
    if handler is None:
        raise ValueError("No handler registered for parsed arguments.")
    return handler(args)


def main(argv: Sequence[str] | None = None) -> int:
    raw_args = list(sys.argv[1:] if argv is None else argv)

    command_parser = _build_command_parser()
    args = command_parser.parse_args(raw_args)
    _configure_logging(args.verbose)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
