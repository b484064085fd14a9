"""Helpers shared by the CLI command modules."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from wewe_sync.integrations.wewe import ErrorKind, WeReadApiError
from wewe_sync.sync import NoCapacityError, SyncError


def add_json_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="Output results in JSON format.",
    )


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))


def describe_error(exc: Exception) -> str:
    """Turn a service failure into a message an operator can act on."""
    if isinstance(exc, WeReadApiError):
        if exc.kind in (ErrorKind.NETWORK, ErrorKind.SERVER):
            return f"The platform is temporarily unavailable, try again later ({exc})"
        if exc.kind in (ErrorKind.UNAUTHORIZED, ErrorKind.CREDENTIAL_FORMAT):
            return f"Account needs re-authentication: run 'accounts login' ({exc})"
        if exc.kind is ErrorKind.RATE_LIMITED:
            return f"Account is rate limited and was suspended ({exc})"
        return f"Platform request failed: {exc}"
    if isinstance(exc, NoCapacityError):
        return str(exc)
    if isinstance(exc, (SyncError, ValueError)):
        return f"Error: {exc}"
    return f"Unexpected error: {exc}"


def fail(exc: Exception) -> int:
    print(describe_error(exc), file=sys.stderr)
    return 1
