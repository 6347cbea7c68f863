"""Command-line interface for mailbox-bridge.

This module provides the main entry point for the CLI application. The
default connection is described by settings (``MAILBOX_BRIDGE_*``).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import structlog

from mailbox_bridge import __version__
from mailbox_bridge.cache import FileSystemBlobStore, ThreadCacheRepository
from mailbox_bridge.config import Settings, get_settings
from mailbox_bridge.driver import MailManager, connection_to_driver
from mailbox_bridge.exceptions import ConfigurationError, StandardizedError
from mailbox_bridge.models import Connection
from mailbox_bridge.sync import ThreadSyncEngine

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailbox-bridge",
        description="Sync and browse a mailbox through the Gmail or IMAP/SMTP driver",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync a folder into the local thread cache")
    sync_parser.add_argument("folder", help="Folder to sync (inbox, sent, drafts, spam, bin, ...)")

    threads_parser = subparsers.add_parser("threads", help="Read threads from the local cache")
    threads_sub = threads_parser.add_subparsers(dest="threads_command", required=True)

    list_parser = threads_sub.add_parser("list", help="List cached threads of a folder")
    list_parser.add_argument("folder", help="Folder to list")
    list_parser.add_argument(
        "--query",
        default=None,
        help="Substring matched against subject and sender",
    )
    list_parser.add_argument("--limit", type=int, default=25, help="Max results")

    get_parser = threads_sub.add_parser("get", help="Show one thread (synced on cache miss)")
    get_parser.add_argument("id", help="Thread id")

    subparsers.add_parser("labels", help="List provider labels / folders")
    subparsers.add_parser("count", help="Show unread counts per label")

    auth_parser = subparsers.add_parser("auth", help="Obtain provider credentials")
    auth_sub = auth_parser.add_subparsers(dest="auth_command", required=True)
    auth_sub.add_parser("google", help="Run the Google OAuth flow and print the tokens")

    return parser


def _build_driver(settings: Settings) -> MailManager:
    if not settings.email:
        raise ConfigurationError("MAILBOX_BRIDGE_EMAIL is not set")

    connection = Connection(
        id=settings.connection_id,
        user_id=settings.email,
        provider_id=settings.provider,
        email=settings.email,
        access_token=settings.access_token or None,
        refresh_token=settings.refresh_token or None,
        host=settings.imap_host,
        port=settings.imap_port,
        secure=settings.imap_secure,
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_secure=settings.smtp_secure,
    )
    return connection_to_driver(connection, settings)


def _build_engine(settings: Settings) -> ThreadSyncEngine:
    repo = ThreadCacheRepository.for_connection(settings.cache_dir, settings.connection_id)
    repo.initialize()
    driver = _build_driver(settings)
    return ThreadSyncEngine(
        driver,
        repo,
        FileSystemBlobStore(settings.blob_dir),
        settings.connection_id,
        settings=settings,
    )


async def _cmd_sync(args: argparse.Namespace) -> int:
    engine = _build_engine(get_settings())
    try:
        result = await engine.sync_threads(args.folder)
        print(f"{result.message} ({engine.folder_thread_count(args.folder)} cached in {args.folder})")
    finally:
        await engine.close()
    return 0


async def _cmd_threads_list(args: argparse.Namespace) -> int:
    engine = _build_engine(get_settings())
    try:
        page = await engine.list_threads_from_db(args.folder, query=args.query, max_results=args.limit)
        for stub in page.threads:
            raw = stub.raw or {}
            sender = raw.get("latest_sender") or {}
            unread = "UNREAD" if "UNREAD" in (raw.get("latest_label_ids") or []) else "READ"
            print(
                f"{unread}\t{raw.get('latest_received_on', '')}\t"
                f"{sender.get('email', '(unknown sender)')}\t{raw.get('latest_subject', '')}\t{stub.id}"
            )
        if not page.threads:
            print(f"No cached threads in {args.folder}; a background sync was started.")
    finally:
        await engine.close()
    return 0


async def _cmd_threads_get(args: argparse.Namespace) -> int:
    engine = _build_engine(get_settings())
    try:
        thread = await engine.get_thread_from_db(args.id)
        print(f"{len(thread.messages)} messages, {thread.total_replies} replies")
        for message in thread.messages:
            marker = "DRAFT" if message.is_draft else ("UNREAD" if message.unread else "READ")
            print(f"- {message.received_on.isoformat()}\t{marker}\t{message.sender.email}\t{message.subject}")
    finally:
        await engine.close()
    return 0


async def _cmd_labels(args: argparse.Namespace) -> int:
    driver = _build_driver(get_settings())
    try:
        for label in await driver.get_user_labels():
            print(f"{label.type}\t{label.id}\t{label.name}")
    finally:
        await driver.close()
    return 0


async def _cmd_count(args: argparse.Namespace) -> int:
    driver = _build_driver(get_settings())
    try:
        for item in await driver.count():
            print(f"{item.label}\t{item.count}")
    finally:
        await driver.close()
    return 0


def _cmd_auth_google(args: argparse.Namespace) -> int:
    # Imported lazily to keep import-time cost low and tests fast.
    from google_auth_oauthlib.flow import InstalledAppFlow

    settings = get_settings()
    credentials_path = settings.gmail_credentials_path
    if not credentials_path.exists():
        raise ConfigurationError(f"Gmail credentials file not found: {credentials_path}")

    flow = InstalledAppFlow.from_client_secrets_file(
        str(credentials_path), scopes=[settings.gmail_scope]
    )
    creds = flow.run_local_server(port=0)
    logger.info("gmail_authorization_completed")

    print("MAILBOX_BRIDGE_PROVIDER=google")
    print(f"MAILBOX_BRIDGE_ACCESS_TOKEN={creds.token}")
    print(f"MAILBOX_BRIDGE_REFRESH_TOKEN={creds.refresh_token}")
    print(f"MAILBOX_BRIDGE_GOOGLE_CLIENT_ID={creds.client_id}")
    print(f"MAILBOX_BRIDGE_GOOGLE_CLIENT_SECRET={creds.client_secret}")
    return 0


def _dispatch(parsed: argparse.Namespace) -> int:
    if parsed.command == "sync":
        return asyncio.run(_cmd_sync(parsed))
    if parsed.command == "threads":
        if parsed.threads_command == "list":
            return asyncio.run(_cmd_threads_list(parsed))
        if parsed.threads_command == "get":
            return asyncio.run(_cmd_threads_get(parsed))
    if parsed.command == "labels":
        return asyncio.run(_cmd_labels(parsed))
    if parsed.command == "count":
        return asyncio.run(_cmd_count(parsed))
    if parsed.command == "auth" and parsed.auth_command == "google":
        return _cmd_auth_google(parsed)

    logger.error("unknown_command", command=parsed.command)
    return 2


def main(args: list[str] | None = None) -> int:
    """Main entry point for the mailbox-bridge CLI.

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
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
    )

    logger.info("mailbox_bridge_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        return _dispatch(parsed)
    except StandardizedError as exc:
        logger.error("command_failed", command=parsed.command, code=exc.code, error=str(exc))
        print(f"error: {exc} ({exc.code})", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
