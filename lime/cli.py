#!/usr/bin/env python3
"""LIME CLI - inspect and export LINE chat backups from the terminal.

Usage:
    lime --db naver_line_backup.db chats               List conversations
    lime --db backup.db messages <chat_id>             Show a page of messages
    lime --db backup.db search "ramen"                 Search message text
    lime --db backup.db search --att 19                LINE Music messages only
    lime --db backup.db types                          Message/attachment type counts
    lime --db backup.db schema                         Snapshot table definitions
    lime --db backup.db export <chat_id> -f csv        Export one conversation
    lime --db backup.db export --all                   Export every conversation
    lime --db backup.db --contacts c.csv --media chats_backup.zip load
                                                       Save a backup to local storage
    lime chats                                         Use the saved backup
    lime clear                                         Delete the saved backup
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import NoReturn
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from lime.config import LimeConfig, get_config
from lime.errors import (
    BackupError,
    ConfigurationError,
    ExtractFailedError,
    LimeError,
    StorageFailedError,
    backup_not_initialized,
)
from lime.export import (
    ExportFormat,
    export_all_chats,
    export_chat,
    generate_all_export_filename,
    generate_export_filename,
    get_message_text,
    get_sender_name,
    write_export,
)
from lime.session import BackupSession
from lime.utils.async_utils import run_in_thread

console = Console()
logger = logging.getLogger(__name__)

MESSAGE_PREVIEW_LENGTH = 60


def _format_lime_error(error: LimeError) -> None:
    """Display a LIME error with a hint for the common causes.

    Args:
        error: The error to display.
    """
    console.print(f"[red]Error: {error.message}[/red]")

    if isinstance(error, BackupError):
        if error.details.get("db_path"):
            console.print(f"[yellow]Snapshot: {error.details['db_path']}[/yellow]")
        console.print(
            "[yellow]Pass --db with an exported naver_line_backup.db, "
            "or run 'lime load' first.[/yellow]"
        )
    elif isinstance(error, ExtractFailedError):
        console.print("[yellow]Check that the archive is a complete chats_backup zip.[/yellow]")
    elif isinstance(error, StorageFailedError):
        if error.details.get("store_path"):
            console.print(f"[yellow]Store: {error.details['store_path']}[/yellow]")
    elif isinstance(error, ConfigurationError):
        if error.details.get("config_path"):
            console.print(f"[yellow]Config file: {error.details['config_path']}[/yellow]")

    logger.debug(
        "LimeError details - code=%s, details=%s, cause=%s",
        error.code.value,
        error.details,
        error.cause,
    )


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, set DEBUG level; otherwise WARNING.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def _preview(text: str) -> str:
    if len(text) > MESSAGE_PREVIEW_LENGTH:
        return text[:MESSAGE_PREVIEW_LENGTH] + "..."
    return text


def _format_timestamp(timestamp_ms: int) -> str:
    if not timestamp_ms:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def _load_config(args: argparse.Namespace) -> LimeConfig:
    config = get_config()
    if args.store is not None:
        config = config.model_copy(deep=True)
        config.storage.path = args.store
    return config


def _export_timezone(config: LimeConfig) -> ZoneInfo | None:
    if not config.export.timezone:
        return None
    try:
        return ZoneInfo(config.export.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            f"Unknown time zone: {config.export.timezone}",
            config_key="export.timezone",
            cause=e,
        ) from e


async def _import_media(session: BackupSession, source: Path, persist: bool) -> int:
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("[cyan]Importing media...", total=100)

        def on_progress(percent: int) -> None:
            progress.update(task, completed=percent)

        return await session.import_media(source, persist=persist, on_progress=on_progress)


async def _open_session(args: argparse.Namespace, persist: bool = False) -> BackupSession:
    """Build a session from --db/--contacts/--media, or from local storage.

    Without --db the previously saved backup is restored; --contacts and
    --media then replace the saved ones for this run without being stored.

    Raises:
        NotInitializedError: If there is neither a --db nor a saved backup.
    """
    config = _load_config(args)

    if args.db is None:
        session = BackupSession(config=config)
        persist = False
    else:
        session = BackupSession(config=config) if persist else BackupSession.in_memory(config)

    try:
        if args.db is None:
            if not await session.restore():
                raise backup_not_initialized("Backup")
        else:
            await session.open_database(args.db, persist=persist)
        if args.contacts is not None:
            text = args.contacts.read_text(encoding="utf-8-sig")
            await session.load_contacts(text, persist=persist)
        if args.media is not None:
            await _import_media(session, args.media, persist)
    except (LimeError, OSError):
        await session.aclose()
        raise
    return session


def _run(command: Callable[[argparse.Namespace], Awaitable[int]], args: argparse.Namespace) -> int:
    try:
        return asyncio.run(command(args))
    except LimeError as e:
        _format_lime_error(e)
        return 1
    except OSError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


# Commands


async def _chats(args: argparse.Namespace) -> int:
    async with await _open_session(args) as session:
        chats = await session.get_chats()

    if not chats:
        console.print("[yellow]No conversations found.[/yellow]")
        return 0

    table = Table(title=f"Conversations ({len(chats)})")
    table.add_column("Chat ID", style="dim")
    table.add_column("Name")
    table.add_column("Group")
    table.add_column("Last Message")
    table.add_column("Time", style="dim")
    table.add_column("Unread", justify="right")

    for chat in chats:
        table.add_row(
            chat.id,
            chat.name,
            "yes" if chat.is_group else "",
            _preview(chat.last_message),
            _format_timestamp(chat.last_message_time),
            str(chat.unread_count) if chat.unread_count else "",
        )

    console.print(table)
    return 0


def cmd_chats(args: argparse.Namespace) -> int:
    """List conversations, most recent first."""
    return _run(_chats, args)


async def _messages(args: argparse.Namespace) -> int:
    async with await _open_session(args) as session:
        messages = await session.get_messages(args.chat_id, limit=args.limit, offset=args.offset)
        self_name = session.config.export.self_name

    if not messages:
        console.print("[yellow]No messages found in this conversation.[/yellow]")
        return 0

    table = Table(title=f"{args.chat_id} ({len(messages)} messages)")
    table.add_column("Date", style="dim")
    table.add_column("Sender")
    table.add_column("Message")
    table.add_column("Attachment", style="dim")

    for message in messages:
        attachment = message.attachment.kind if message.attachment is not None else ""
        table.add_row(
            _format_timestamp(message.timestamp),
            get_sender_name(message, self_name),
            get_message_text(message),
            attachment,
        )

    console.print(table)
    return 0


def cmd_messages(args: argparse.Namespace) -> int:
    """Show a page of messages from one conversation."""
    return _run(_messages, args)


async def _search(args: argparse.Namespace) -> int:
    filters = {
        "message_type": args.message_type,
        "attachment_type": args.attachment_type,
        "chat_id": args.chat_id,
    }
    if not args.query.strip() and all(value is None for value in filters.values()):
        console.print("[red]Specify a search query or a --type/--att/--chat filter.[/red]")
        return 1

    async with await _open_session(args) as session:
        results = await session.search_messages(args.query, limit=args.limit, **filters)

    if not results:
        console.print("[yellow]No messages found.[/yellow]")
        return 0

    table = Table(title=f"Search Results ({len(results)} messages)")
    table.add_column("Date", style="dim")
    table.add_column("Chat ID", style="dim")
    table.add_column("Sender")
    table.add_column("Message")

    for result in results:
        sender = result.from_name or result.from_id or "Me"
        table.add_row(
            _format_timestamp(result.timestamp),
            result.chat_id,
            sender,
            _preview(result.content),
        )

    console.print(table)
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    """Case-sensitive substring search over all messages."""
    return _run(_search, args)


async def _types(args: argparse.Namespace) -> int:
    async with await _open_session(args) as session:
        breakdown = await run_in_thread(session.reader.get_type_breakdown)

    for title, counts, related in (
        ("Message Types", breakdown.message_types, "Attachment Types"),
        ("Attachment Types", breakdown.attachment_types, "Message Types"),
    ):
        table = Table(title=title)
        table.add_column("Value", justify="right")
        table.add_column("Count", justify="right")
        table.add_column(related, style="dim")
        for count in counts:
            table.add_row(
                "NULL" if count.value is None else str(count.value),
                str(count.count),
                ", ".join(str(value) for value in count.related),
            )
        console.print(table)
    return 0


def cmd_types(args: argparse.Namespace) -> int:
    """Show how rows spread over message and attachment types."""
    return _run(_types, args)


async def _schema(args: argparse.Namespace) -> int:
    async with await _open_session(args) as session:
        tables = await run_in_thread(session.reader.get_schema)

    for table in tables:
        console.print(f"[bold]{table.name}[/bold]")
        console.print(table.sql or "", markup=False, highlight=False)
        console.print()
    return 0


def cmd_schema(args: argparse.Namespace) -> int:
    """Print table definitions of the snapshot."""
    return _run(_schema, args)


async def _export(args: argparse.Namespace) -> int:
    if args.chat_id is None and not args.all:
        console.print("[red]Specify a chat ID or --all.[/red]")
        return 1

    export_format = ExportFormat(args.format)

    async with await _open_session(args) as session:
        tz = _export_timezone(session.config)
        self_name = args.self_name or session.config.export.self_name
        chats = await session.get_chats()
        output_dir: Path = args.output or Path.cwd()

        if args.all:
            history = {
                chat.id: await session.get_all_messages(chat.id, preload_media=False)
                for chat in chats
            }
            content = export_all_chats(
                chats, lambda chat_id: history.get(chat_id, []), export_format, self_name, tz=tz
            )
            filename = generate_all_export_filename(export_format)
            count = sum(len(messages) for messages in history.values())
        else:
            chat = next((c for c in chats if c.id == args.chat_id), None)
            if chat is None:
                console.print(f"[red]Conversation not found: {args.chat_id}[/red]")
                return 1
            messages = await session.get_all_messages(chat.id, preload_media=False)
            content = export_chat(chat, messages, export_format, self_name, tz=tz)
            filename = generate_export_filename(chat.name, export_format)
            count = len(messages)

    output_file = write_export(output_dir / filename, content)
    console.print(f"[green]Successfully exported to: {output_file}[/green]")
    console.print(f"Format: {export_format.value.upper()}")
    console.print(f"Messages: {count}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export one or all conversations as LINE-style TXT or CSV."""
    return _run(_export, args)


async def _load(args: argparse.Namespace) -> int:
    if args.db is None:
        console.print("[red]'load' needs --db.[/red]")
        return 1

    async with await _open_session(args, persist=True) as session:
        chats = await session.get_chats()
        console.print(f"[green]Saved backup to {session.config.storage.path}[/green]")
        console.print(f"Conversations: {len(chats)}")
        console.print(f"Contacts: {session.contacts.count}")
        console.print(f"Media files: {session.media.get_media_count()}")
    return 0


def cmd_load(args: argparse.Namespace) -> int:
    """Save the snapshot, contacts and media to local storage."""
    return _run(_load, args)


async def _clear(args: argparse.Namespace) -> int:
    async with BackupSession(config=_load_config(args)) as session:
        await session.reset()
    console.print("[green]Cleared saved backup.[/green]")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    """Delete everything saved by 'load'."""
    return _run(_clear, args)


def cmd_version(args: argparse.Namespace) -> int:
    """Display version information."""
    from lime import __version__

    console.print(f"LIME LINE backup viewer v{__version__}")
    return 0


class HelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom help formatter with improved argument formatting."""

    def __init__(self, prog: str) -> None:
        """Initialize formatter with wider help text."""
        super().__init__(prog, max_help_position=30, width=100)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="lime",
        description="LIME - read and export LINE chat backups locally",
        formatter_class=HelpFormatter,
        epilog="""
Quick Start:
  lime --db naver_line_backup.db chats           List conversations
  lime --db backup.db search "dinner"            Search messages about dinner
  lime --db backup.db export <chat_id> -f csv    Export to CSV
        """,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="enable debug logging for troubleshooting",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="show version information and exit",
    )
    parser.add_argument(
        "--db",
        type=Path,
        metavar="<path>",
        help="LINE backup database (default: the backup saved by 'lime load')",
    )
    parser.add_argument(
        "--contacts",
        type=Path,
        metavar="<path>",
        help="contacts CSV with mid,name rows",
    )
    parser.add_argument(
        "--media",
        type=Path,
        metavar="<path>",
        help="chats_backup folder or zip archive",
    )
    parser.add_argument(
        "--store",
        type=Path,
        metavar="<path>",
        help="local storage file (default: ~/.lime/storage.db)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Use 'lime <command> --help' for more information on a specific command.",
        metavar="<command>",
    )

    chats_parser = subparsers.add_parser("chats", help="list conversations")
    chats_parser.set_defaults(func=cmd_chats)

    messages_parser = subparsers.add_parser("messages", help="show messages of a conversation")
    messages_parser.add_argument("chat_id", metavar="<chat_id>", help="conversation ID")
    messages_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        metavar="<n>",
        help="number of messages (default: query.page_size from config)",
    )
    messages_parser.add_argument(
        "--offset",
        type=int,
        default=0,
        metavar="<n>",
        help="skip this many newer messages (default: 0)",
    )
    messages_parser.set_defaults(func=cmd_messages)

    search_parser = subparsers.add_parser("search", help="search message text")
    search_parser.add_argument(
        "query", metavar="<query>", nargs="?", default="", help="text to search for"
    )
    search_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        metavar="<n>",
        help="maximum results (default: query.search_limit from config)",
    )
    search_parser.add_argument(
        "--type",
        type=int,
        dest="message_type",
        metavar="<n>",
        help="only this message type (1=text, 4=call, 5=sticker, ...)",
    )
    search_parser.add_argument(
        "--att",
        type=int,
        dest="attachment_type",
        metavar="<n>",
        help="only this attachment type (3=voice, 14=file, 19=LINE Music, ...)",
    )
    search_parser.add_argument(
        "--chat", dest="chat_id", metavar="<chat_id>", help="only this conversation"
    )
    search_parser.set_defaults(func=cmd_search)

    types_parser = subparsers.add_parser("types", help="count rows per message/attachment type")
    types_parser.set_defaults(func=cmd_types)

    schema_parser = subparsers.add_parser("schema", help="print snapshot table definitions")
    schema_parser.set_defaults(func=cmd_schema)

    export_parser = subparsers.add_parser("export", help="export conversations to a file")
    export_parser.add_argument(
        "chat_id",
        nargs="?",
        metavar="<chat_id>",
        help="conversation ID to export",
    )
    export_parser.add_argument(
        "--all",
        action="store_true",
        help="export every conversation into one file",
    )
    export_parser.add_argument(
        "-f",
        "--format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.TXT.value,
        help="export format (default: txt)",
    )
    export_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        metavar="<dir>",
        help="output directory (default: current directory)",
    )
    export_parser.add_argument(
        "--self-name",
        dest="self_name",
        metavar="<name>",
        help="sender label for your own messages (default: export.self_name)",
    )
    export_parser.set_defaults(func=cmd_export)

    load_parser = subparsers.add_parser("load", help="save --db/--contacts/--media to storage")
    load_parser.set_defaults(func=cmd_load)

    clear_parser = subparsers.add_parser("clear", help="delete the saved backup")
    clear_parser.set_defaults(func=cmd_clear)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments. Uses sys.argv if None.

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        return cmd_version(args)

    setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    result: int = args.func(args)
    return result


def run() -> NoReturn:
    """Entry point that handles exit codes."""
    try:
        exit_code = main()
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")
        exit_code = 130
    except LimeError as e:
        _format_lime_error(e)
        logger.exception("LIME error")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    run()
