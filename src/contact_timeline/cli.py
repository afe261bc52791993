"""Command-line interface for the contact timeline engine.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog

from contact_timeline import __version__
from contact_timeline.config import Settings, get_settings
from contact_timeline.exceptions import ContactTimelineError
from contact_timeline.gmail import GmailEmailFetcher
from contact_timeline.models import EmailThreadActivity, SyncStatus
from contact_timeline.sources import ActivityQueryResult, InMemoryPinnedItems, JsonActivityStore
from contact_timeline.store import EmailStoreRepository, StoredEmailFetcher
from contact_timeline.sync import EmailSyncCoordinator
from contact_timeline.timeline import MergedActivity, TimelineController, TimelineSnapshot

logger = structlog.get_logger()

_DEFAULT_USER_ID = "local"


class _NoActivities:
    def get_activities(self, contact_id: str) -> ActivityQueryResult:
        return ActivityQueryResult()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="contact-timeline", description="Contact activity timeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync",
        help="Download a contact's Gmail history into the local store",
    )
    sync_parser.add_argument("contact_email", help="Email address of the contact")
    sync_parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite store (default: settings store_db_path)",
    )
    sync_parser.add_argument("--user-id", default=_DEFAULT_USER_ID, help="Id of the syncing user")

    show_parser = subparsers.add_parser("show", help="Print a contact's merged timeline")
    show_parser.add_argument("contact_email", help="Email address of the contact")
    show_parser.add_argument(
        "--contact-id",
        default=None,
        help="Contact id used to look up internal activities (default: the email address)",
    )
    show_parser.add_argument(
        "--activities",
        type=Path,
        default=None,
        help="JSON file of internal activities (notes, calls, tasks, sent emails)",
    )
    show_parser.add_argument(
        "--pages",
        type=int,
        default=1,
        help="Number of email pages to load",
    )
    show_parser.add_argument(
        "--pinned",
        nargs="*",
        default=[],
        metavar="MESSAGE_ID",
        help="Message ids to show as pinned",
    )
    show_parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite store (default: settings store_db_path)",
    )
    show_parser.add_argument("--user-id", default=_DEFAULT_USER_ID, help="Id of the viewing user")

    return parser


def _stored_fetcher(settings: Settings, db_path: Path | None) -> StoredEmailFetcher:
    repo = EmailStoreRepository(db_path or settings.store_db_path)
    repo.initialize()
    return StoredEmailFetcher(repo, GmailEmailFetcher(settings=settings), settings=settings)


async def _cmd_sync(args: argparse.Namespace) -> int:
    settings = get_settings()
    fetcher = _stored_fetcher(settings, args.db)
    coordinator = EmailSyncCoordinator(fetcher, settings)

    await coordinator.sync_contact_history(args.contact_email, args.user_id)

    if coordinator.get_sync_state(args.contact_email) is SyncStatus.FAILED:
        print(f"Sync failed: {coordinator.get_sync_error(args.contact_email)}", file=sys.stderr)
        return 1

    stored = fetcher.repository.count(args.contact_email)
    print(f"Synced {stored} emails for {args.contact_email}")
    return 0


async def _cmd_show(args: argparse.Namespace) -> int:
    settings = get_settings()
    coordinator = EmailSyncCoordinator(_stored_fetcher(settings, args.db), settings)

    pinned = InMemoryPinnedItems()
    pinned.pin(args.contact_email, args.pinned)
    store = JsonActivityStore(args.activities) if args.activities else _NoActivities()

    controller = TimelineController(
        coordinator,
        store,
        pinned,
        user_id=args.user_id,
        contact_id=args.contact_id or args.contact_email,
        contact_email=args.contact_email,
        settings=settings,
    )
    async with controller:
        for _ in range(max(args.pages, 1) - 1):
            if not coordinator.has_more_emails(args.contact_email):
                break
            await controller.load_more_emails()
        snapshot = controller.snapshot()

    _print_snapshot(snapshot)
    return 1 if snapshot.error else 0


def _print_snapshot(snapshot: TimelineSnapshot) -> None:
    for activity in snapshot.activities:
        print(_format_activity(activity))
        if isinstance(activity, EmailThreadActivity):
            for email in reversed(activity.emails_in_thread):
                print(f"    {email.timestamp or '(no date)'}\t{email.subject}")

    print(
        f"\n{snapshot.internal_count} activities, {snapshot.emails_count} emails"
        f"{' (more available)' if snapshot.has_more_emails else ''}"
    )
    if snapshot.oldest_email_date:
        print(f"Oldest loaded email: {snapshot.oldest_email_date}")
    if snapshot.error:
        print(f"Error: {snapshot.error}", file=sys.stderr)


def _format_activity(activity: MergedActivity) -> str:
    pin = "*" if activity.is_pinned else " "
    when = activity.timestamp or "(no date)"
    if isinstance(activity, EmailThreadActivity):
        return f"{pin} {when}\tthread ({activity.thread_email_count})\t{activity.subject}"
    if activity.type in ("email", "email_sent"):
        unread = "" if activity.is_read else " [unread]"
        return f"{pin} {when}\t{activity.type}{unread}\t{activity.subject}"
    return f"{pin} {when}\t{activity.type}\t{activity.content or ''}"


def main(args: list[str] | None = None) -> int:
    """Main entry point for the contact timeline CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    # Configure logging
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
    )

    logger.info("contact_timeline_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "sync":
            return asyncio.run(_cmd_sync(parsed))
        if parsed.command == "show":
            return asyncio.run(_cmd_show(parsed))
    except ContactTimelineError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
