"""CLI commands for feed subscriptions.

Commands:
- feeds subscribe: Subscribe to the public account behind a share link
- feeds list: Show subscribed feeds
- feeds remove: Remove a feed with its articles and notes
- feeds stats: Article counts per feed
"""

from __future__ import annotations

import argparse

from ._shared import add_json_flag, fail, print_json


def register_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add feed subcommands to the main CLI parser."""

    feeds_parser = subparsers.add_parser(
        "feeds",
        description="Manage subscribed public accounts.",
        help="Subscribe to and manage feeds.",
    )
    feeds_subparsers = feeds_parser.add_subparsers(
        dest="feeds_command",
        metavar="SUBCOMMAND",
    )
    feeds_subparsers.required = True

    subscribe_parser = feeds_subparsers.add_parser(
        "subscribe",
        description="Subscribe to the public account behind a WeChat share link.",
        help="Subscribe to a feed.",
    )
    subscribe_parser.add_argument("link", help="Article share link, e.g. https://mp.weixin.qq.com/s/...")
    subscribe_parser.add_argument(
        "--no-history",
        action="store_true",
        help="Skip the initial historical fetch.",
    )
    add_json_flag(subscribe_parser)
    subscribe_parser.set_defaults(func=feeds_subscribe_cli, feeds_command="subscribe")

    list_parser = feeds_subparsers.add_parser(
        "list",
        description="List subscribed feeds.",
        help="List feeds.",
    )
    add_json_flag(list_parser)
    list_parser.set_defaults(func=feeds_list_cli, feeds_command="list")

    remove_parser = feeds_subparsers.add_parser(
        "remove",
        description="Remove a feed, its articles and their notes.",
        help="Remove a feed.",
    )
    remove_parser.add_argument("feed_id", type=int, help="Feed id.")
    add_json_flag(remove_parser)
    remove_parser.set_defaults(func=feeds_remove_cli, feeds_command="remove")

    stats_parser = feeds_subparsers.add_parser(
        "stats",
        description="Show article counts and last sync time per feed.",
        help="Feed statistics.",
    )
    add_json_flag(stats_parser)
    stats_parser.set_defaults(func=feeds_stats_cli, feeds_command="stats")


def feeds_subscribe_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context
    from wewe_sync.integrations.wewe import WeReadApiError
    from wewe_sync.sync import SyncError

    context = build_context()
    try:
        feed = context.feeds.subscribe(args.link, fetch_history=not args.no_history)
    except (SyncError, WeReadApiError) as exc:
        return fail(exc)

    if args.output_json:
        print_json(feed.to_dict())
    else:
        print(f"Subscribed to {feed.title} (feed {feed.id}).")
    return 0


def feeds_list_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context

    context = build_context()
    feeds = context.feeds.list_feeds()

    if args.output_json:
        print_json([feed.to_dict() for feed in feeds])
        return 0

    if not feeds:
        print("No feeds. Run 'feeds subscribe <link>' to add one.")
        return 0
    for feed in feeds:
        synced = feed.last_sync_at.strftime("%Y-%m-%d %H:%M") if feed.last_sync_at else "never"
        print(f"[{feed.id}] {feed.title} ({feed.external_feed_id}) - last sync: {synced}")
    return 0


def feeds_remove_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context
    from wewe_sync.sync import SyncError

    context = build_context()
    try:
        result = context.runner.remove_feed(args.feed_id)
    except SyncError as exc:
        return fail(exc)

    if args.output_json:
        print_json(result.to_dict())
    else:
        print(
            f"Feed {args.feed_id} removed "
            f"({result.articles_deleted} articles, {result.notes_deleted} notes)."
        )
    return 0


def feeds_stats_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context

    context = build_context()
    rows = context.feeds.feed_stats()

    if args.output_json:
        print_json(rows)
        return 0

    print(f"{'ID':>4}  {'Articles':>8}  {'Last sync':<20}  Title")
    print("-" * 60)
    for row in rows:
        print(f"{row['id']:>4}  {row['articles']:>8}  {str(row['last_sync_at'] or 'never'):<20}  {row['title']}")
    return 0
