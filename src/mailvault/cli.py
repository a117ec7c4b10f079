"""Command-line interface for MailVault.

Operator commands for inspecting the store, moderating senders and searching.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import structlog

from mailvault import __version__
from mailvault.config import Settings, get_settings
from mailvault.exceptions import MailVaultError
from mailvault.mailbox import Mailbox

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mailvault", description="Moderated mailbox store")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite database (default: settings db_path)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the database schema")

    search_parser = subparsers.add_parser("search", help="Full-text search of approved messages")
    search_parser.add_argument("query", help="FTS query; malformed queries fall back to substring")
    search_parser.add_argument("--limit", type=int, default=None, help="Max results")
    search_parser.add_argument(
        "--include-archived",
        action="store_true",
        help="Also match archived messages",
    )

    pending_parser = subparsers.add_parser("pending", help="List messages awaiting approval")
    pending_parser.add_argument("--limit", type=int, default=None, help="Max results")

    approve_parser = subparsers.add_parser("approve", help="Approve a sender")
    approve_parser.add_argument("email", help="Sender address")
    approve_parser.add_argument("--name", default=None, help="Display name")

    revoke_parser = subparsers.add_parser("revoke", help="Remove a sender from the allow-list")
    revoke_parser.add_argument("email", help="Sender address")

    subparsers.add_parser("senders", help="List approved senders")

    threads_parser = subparsers.add_parser("threads", help="List threads with visible messages")
    threads_parser.add_argument("--limit", type=int, default=None, help="Max results")

    drafts_parser = subparsers.add_parser("drafts", help="List drafts")
    drafts_parser.add_argument("--limit", type=int, default=None, help="Max results")

    return parser


def _log_level(settings: Settings) -> int:
    """Resolve the logging level; debug mode forces DEBUG."""
    if settings.debug:
        return logging.DEBUG
    return getattr(logging, settings.log_level.upper(), logging.INFO)


def _fmt_ts(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="seconds")


def _cmd_init(mailbox: Mailbox, args: argparse.Namespace) -> int:
    print(f"Initialized {mailbox.db.path}")
    return 0


def _cmd_search(mailbox: Mailbox, args: argparse.Namespace) -> int:
    results = mailbox.search.search(
        args.query, limit=args.limit, include_archived=args.include_archived
    )
    for m in results:
        print(f"{m.id}\t{_fmt_ts(m.created_at)}\t{m.from_address}\t{m.subject}")
    return 0


def _cmd_pending(mailbox: Mailbox, args: argparse.Namespace) -> int:
    limit = args.limit or mailbox.settings.default_page_size
    for m in mailbox.messages.list_pending(limit=limit):
        print(f"{m.id}\t{_fmt_ts(m.created_at)}\t{m.from_address}\t{m.subject}")
    return 0


def _cmd_approve(mailbox: Mailbox, args: argparse.Namespace) -> int:
    result = mailbox.approval.approve(args.email, name=args.name)
    print(f"Approved {result.email} ({result.approved_count} messages released)")
    return 0


def _cmd_revoke(mailbox: Mailbox, args: argparse.Namespace) -> int:
    if mailbox.approval.revoke(args.email):
        print(f"Revoked {args.email.lower()}")
    else:
        print(f"{args.email.lower()} was not approved")
    return 0


def _cmd_senders(mailbox: Mailbox, args: argparse.Namespace) -> int:
    for s in mailbox.approval.list_senders():
        print(f"{s.email}\t{s.name or ''}\t{_fmt_ts(s.created_at)}")
    return 0


def _cmd_threads(mailbox: Mailbox, args: argparse.Namespace) -> int:
    limit = args.limit or mailbox.settings.default_page_size
    for t in mailbox.messages.list_threads(limit=limit):
        print(f"{t.id}\t{_fmt_ts(t.last_message_at)}\t{t.message_count}\t{t.subject}")
    return 0


def _cmd_drafts(mailbox: Mailbox, args: argparse.Namespace) -> int:
    limit = args.limit or mailbox.settings.default_page_size
    for d in mailbox.drafts.list(limit=limit):
        print(f"{d.id}\t{_fmt_ts(d.updated_at)}\t{d.to or '(no recipient)'}\t{d.subject}")
    return 0


_COMMANDS = {
    "init": _cmd_init,
    "search": _cmd_search,
    "pending": _cmd_pending,
    "approve": _cmd_approve,
    "revoke": _cmd_revoke,
    "senders": _cmd_senders,
    "threads": _cmd_threads,
    "drafts": _cmd_drafts,
}


def main(args: list[str] | None = None, settings: Settings | None = None) -> int:
    """Main entry point for the MailVault CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.
        settings: Application settings. If None, uses default settings.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = settings or get_settings()

    # Configure logging
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(_log_level(settings)),
    )

    parser = _build_parser()
    parsed = parser.parse_args(args)

    if parsed.db is not None:
        settings = settings.model_copy(update={"db_path": parsed.db})

    logger.info("mailvault_started", version=__version__, command=parsed.command)

    handler = _COMMANDS.get(parsed.command)
    if handler is None:
        logger.error("unknown_command", command=parsed.command)
        return 2

    try:
        return handler(Mailbox(settings), parsed)
    except MailVaultError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
