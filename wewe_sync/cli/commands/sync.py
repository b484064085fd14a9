"""CLI commands for sync cycles.

Commands:
- sync run: Refresh feeds, write notes and prune old articles
- sync refresh: Refresh feeds only
- sync notes: Write notes for unsynced articles only
- sync status: Show account, feed and article counts
- sync watch: Run cycles on a fixed interval until interrupted
"""

from __future__ import annotations

import argparse

from ._shared import add_json_flag, fail, print_json


def register_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add sync subcommands to the main CLI parser."""

    sync_parser = subparsers.add_parser(
        "sync",
        description="Fetch new articles and keep notes in step with the store.",
        help="Run sync cycles.",
    )
    sync_subparsers = sync_parser.add_subparsers(
        dest="sync_command",
        metavar="SUBCOMMAND",
    )
    sync_subparsers.required = True

    def add_refresh_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--stale",
            action="store_true",
            help="Only refresh feeds not synced within the stale threshold.",
        )
        parser.add_argument(
            "--feed",
            type=int,
            action="append",
            dest="feed_ids",
            metavar="FEED_ID",
            help="Refresh only this feed (repeatable).",
        )
        parser.add_argument(
            "--retention-days",
            type=int,
            help="Retention window in days (default: from settings).",
        )
        add_json_flag(parser)

    run_parser = sync_subparsers.add_parser(
        "run",
        description="Run a full sync cycle: refresh, notes, prune.",
        help="Run a sync cycle.",
    )
    add_refresh_args(run_parser)
    run_parser.add_argument(
        "--no-notes",
        action="store_true",
        help="Do not write notes.",
    )
    run_parser.add_argument(
        "--no-prune",
        action="store_true",
        help="Do not delete articles outside the retention window.",
    )
    run_parser.set_defaults(func=sync_run_cli, sync_command="run")

    refresh_parser = sync_subparsers.add_parser(
        "refresh",
        description="Fetch new articles without writing notes or pruning.",
        help="Refresh feeds.",
    )
    add_refresh_args(refresh_parser)
    refresh_parser.set_defaults(func=sync_run_cli, sync_command="refresh", no_notes=True, no_prune=True)

    notes_parser = sync_subparsers.add_parser(
        "notes",
        description="Write notes for articles that do not have one yet.",
        help="Write pending notes.",
    )
    add_json_flag(notes_parser)
    notes_parser.set_defaults(func=sync_notes_cli, sync_command="notes")

    status_parser = sync_subparsers.add_parser(
        "status",
        description="Show account, feed and article counts.",
        help="Show sync status.",
    )
    status_parser.add_argument(
        "--check-server",
        action="store_true",
        help="Also check that the platform is reachable.",
    )
    add_json_flag(status_parser)
    status_parser.set_defaults(func=sync_status_cli, sync_command="status")

    watch_parser = sync_subparsers.add_parser(
        "watch",
        description="Run sync cycles on a fixed interval until interrupted.",
        help="Sync periodically.",
    )
    watch_parser.add_argument(
        "--interval",
        type=float,
        metavar="MINUTES",
        help="Minutes between cycles (default: from settings).",
    )
    watch_parser.add_argument(
        "--all",
        action="store_true",
        dest="all_feeds",
        help="Refresh every feed each cycle instead of only stale feeds.",
    )
    watch_parser.add_argument(
        "--retention-days",
        type=int,
        help="Retention window in days (default: from settings).",
    )
    watch_parser.add_argument(
        "--cycles",
        type=int,
        help="Stop after this many cycles (default: run until interrupted).",
    )
    add_json_flag(watch_parser)
    watch_parser.set_defaults(func=sync_watch_cli, sync_command="watch")


def sync_run_cli(args: argparse.Namespace) -> int:
    """Run a sync cycle (or a refresh-only cycle for ``sync refresh``)."""
    from wewe_sync.app import build_context
    from wewe_sync.sync import SyncError, SyncOptions

    if args.feed_ids:
        mode = "feeds"
    elif args.stale:
        mode = "stale"
    else:
        mode = "all"

    options = SyncOptions(
        mode=mode,
        feed_ids=tuple(args.feed_ids or ()),
        create_notes=not args.no_notes,
        prune=not args.no_prune,
    )

    context = build_context()
    if not args.output_json:
        print(f"Starting sync (mode={mode})...")

    try:
        result = context.runner.run_cycle(args.retention_days, options)
    except SyncError as exc:
        return fail(exc)

    if args.output_json:
        print_json(result.to_dict())
    else:
        print(result.summary())
        if result.refresh.errors:
            print()
            print("Feeds that failed this cycle:")
            for error in result.refresh.errors:
                print(f"  ✗ {error['title']}: {error['error']}")

    return 1 if result.has_errors else 0


def sync_notes_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context
    from wewe_sync.sync import SyncError

    context = build_context()
    try:
        result = context.runner.create_notes_only()
    except SyncError as exc:
        return fail(exc)

    if args.output_json:
        print_json(result.to_dict())
    else:
        print(f"Notes: {result.created} created, {result.skipped} skipped, {result.failed} failed")
    return 1 if result.failed else 0


def sync_status_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context

    context = build_context()
    status = context.runner.stats()
    if args.check_server:
        status["server_reachable"] = context.accounts.check_server_health()

    if args.output_json:
        print_json(status)
        return 0

    accounts = status["accounts"]
    print("Sync status")
    print("=" * 40)
    print(
        f"Accounts: {accounts['total']} "
        f"(active {accounts['active']}, blacklisted {accounts['blacklisted']}, "
        f"expired {accounts['expired']}, disabled {accounts['disabled']})"
    )
    print(f"Feeds: {status['feeds']}")
    print(f"Articles: {status['articles']} ({status['unsynced_articles']} without notes)")
    if "server_reachable" in status:
        print(f"Platform reachable: {'yes' if status['server_reachable'] else 'no'}")
    return 0


def sync_watch_cli(args: argparse.Namespace) -> int:
    """Run cycles on an interval in the foreground until Ctrl+C or ``--cycles``."""
    from wewe_sync.app import build_context
    from wewe_sync.sync import SyncOptions, SyncResult, SyncScheduler

    context = build_context()
    interval = args.interval or context.settings.sync_interval_minutes

    def report(result: SyncResult) -> None:
        if args.output_json:
            print_json(result.to_dict())
        else:
            print(result.summary())

    try:
        scheduler = SyncScheduler(
            context.runner,
            interval,
            options=SyncOptions(mode="all" if args.all_feeds else "stale"),
            retention_days=args.retention_days,
            on_result=report,
        )
    except ValueError as exc:
        return fail(exc)

    if not args.output_json:
        print(f"Syncing every {interval:g} minutes. Press Ctrl+C to stop.")
    try:
        scheduler.run(max_cycles=args.cycles)
    except KeyboardInterrupt:
        scheduler.stop()
        if not args.output_json:
            print("Stopped.")
    return 1 if scheduler.failures else 0
