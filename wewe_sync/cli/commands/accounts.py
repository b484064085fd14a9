"""CLI commands for platform accounts.

Commands:
- accounts login: Sign in by scanning a prompt and wait for completion
- accounts list: Show accounts and their status
- accounts enable / disable: Manually change an account's status
- accounts token: Re-issue an account's token
- accounts rename: Change an account's display name
- accounts remove: Delete an account
"""

from __future__ import annotations

import argparse

from ._shared import add_json_flag, fail, print_json


def register_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add account subcommands to the main CLI parser."""

    accounts_parser = subparsers.add_parser(
        "accounts",
        description="Manage the platform accounts used for fetching.",
        help="Sign in and manage accounts.",
    )
    accounts_subparsers = accounts_parser.add_subparsers(
        dest="accounts_command",
        metavar="SUBCOMMAND",
    )
    accounts_subparsers.required = True

    login_parser = accounts_subparsers.add_parser(
        "login",
        description="Start a sign-in and poll until it is authorized.",
        help="Sign in a new account.",
    )
    login_parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between status polls (default: from settings).",
    )
    login_parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds before the sign-in prompt expires (default: from settings).",
    )
    add_json_flag(login_parser)
    login_parser.set_defaults(func=accounts_login_cli, accounts_command="login")

    list_parser = accounts_subparsers.add_parser(
        "list",
        description="List accounts with their status.",
        help="List accounts.",
    )
    add_json_flag(list_parser)
    list_parser.set_defaults(func=accounts_list_cli, accounts_command="list")

    for name, help_text in (("enable", "Re-enable an account."), ("disable", "Disable an account.")):
        status_parser = accounts_subparsers.add_parser(name, description=help_text, help=help_text)
        status_parser.add_argument("account_id", type=int, help="Account id.")
        status_parser.set_defaults(func=accounts_status_cli, accounts_command=name)

    token_parser = accounts_subparsers.add_parser(
        "token",
        description="Replace an account's token; an expired account becomes active.",
        help="Re-issue an account token.",
    )
    token_parser.add_argument("account_id", type=int, help="Account id.")
    token_parser.add_argument("token", help="New token.")
    token_parser.set_defaults(func=accounts_token_cli, accounts_command="token")

    rename_parser = accounts_subparsers.add_parser(
        "rename",
        description="Change an account's display name.",
        help="Rename an account.",
    )
    rename_parser.add_argument("account_id", type=int, help="Account id.")
    rename_parser.add_argument("name", help="New display name.")
    rename_parser.set_defaults(func=accounts_rename_cli, accounts_command="rename")

    remove_parser = accounts_subparsers.add_parser(
        "remove",
        description="Delete an account.",
        help="Delete an account.",
    )
    remove_parser.add_argument("account_id", type=int, help="Account id.")
    remove_parser.set_defaults(func=accounts_remove_cli, accounts_command="remove")


def _account_row(account) -> dict:
    return {
        "id": account.id,
        "display_name": account.display_name,
        "external_id": account.external_id,
        "status": account.status.value,
        "blacklisted_until": account.blacklisted_until.isoformat() if account.blacklisted_until else None,
        "updated_at": account.updated_at.isoformat(),
    }


def accounts_login_cli(args: argparse.Namespace) -> int:
    """Sign in a new account.

    Prints the authorization prompt, then polls in the foreground until the
    sign-in completes, fails or expires.
    """
    from wewe_sync.app import build_context
    from wewe_sync.integrations.wewe import WeReadApiError
    from wewe_sync.sync import LoginPoller, PollOutcome

    context = build_context()
    settings = context.settings

    try:
        session = context.accounts.begin_login()
    except WeReadApiError as exc:
        return fail(exc)

    if not args.output_json:
        print("Scan the following prompt with WeChat to authorize the account:")
        print(f"  {session.authorization_prompt}")
        print("Waiting for authorization...")

    poller = LoginPoller(
        context.accounts,
        session,
        interval=args.interval or settings.login_poll_interval,
        max_errors=settings.login_max_errors,
        expiry_seconds=args.timeout or settings.login_expiry_seconds,
    )
    try:
        account = poller.run()
    except KeyboardInterrupt:
        poller.cancel()
        account = None
    finally:
        context.accounts.discard_login(session.session_id)

    if args.output_json:
        print_json(
            {
                "outcome": poller.outcome.value,
                "account": _account_row(account) if account else None,
                "error": str(poller.error) if poller.error else None,
            }
        )
    elif account is not None:
        print(f"Signed in as {account.display_name} (account {account.id}).")
    elif poller.outcome is PollOutcome.EXPIRED:
        print("The sign-in prompt expired. Run 'accounts login' again.")
    elif poller.error is not None:
        return fail(poller.error)
    else:
        print("Sign-in cancelled.")

    return 0 if account is not None else 1


def accounts_list_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context

    context = build_context()
    rows = [_account_row(account) for account in context.accounts.list_accounts()]

    if args.output_json:
        print_json(rows)
        return 0

    if not rows:
        print("No accounts. Run 'accounts login' to add one.")
        return 0
    for row in rows:
        line = f"[{row['id']}] {row['display_name']} ({row['external_id']}) - {row['status']}"
        if row["blacklisted_until"]:
            line += f" until {row['blacklisted_until']}"
        print(line)
    return 0


def accounts_status_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context
    from wewe_sync.storage.models import AccountStatus
    from wewe_sync.sync import SyncError

    status = AccountStatus.ACTIVE if args.accounts_command == "enable" else AccountStatus.DISABLED
    context = build_context()
    try:
        account = context.accounts.set_status(args.account_id, status)
    except SyncError as exc:
        return fail(exc)
    print(f"Account {account.display_name} is now {account.status.value}.")
    return 0


def accounts_token_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context
    from wewe_sync.integrations.wewe import WeReadApiError
    from wewe_sync.sync import SyncError

    context = build_context()
    try:
        account = context.accounts.update_token(args.account_id, args.token)
    except (SyncError, WeReadApiError) as exc:
        return fail(exc)
    print(f"Token updated for {account.display_name} ({account.status.value}).")
    return 0


def accounts_rename_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context
    from wewe_sync.sync import SyncError

    context = build_context()
    try:
        account = context.accounts.rename(args.account_id, args.name)
    except (SyncError, ValueError) as exc:
        return fail(exc)
    print(f"Account {account.id} renamed to {account.display_name}.")
    return 0


def accounts_remove_cli(args: argparse.Namespace) -> int:
    from wewe_sync.app import build_context
    from wewe_sync.sync import SyncError

    context = build_context()
    try:
        context.accounts.delete_account(args.account_id)
    except SyncError as exc:
        return fail(exc)
    print(f"Account {args.account_id} removed.")
    return 0
