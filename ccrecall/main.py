#!/usr/bin/env python3
"""ccrecall - search and summarize Claude Code history.

Entry point for the CLI application.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .exceptions import CcrecallError

console = Console()


def format_timestamp(ms: Optional[int]) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def highlight_snippet(snippet: str) -> Text:
    """Render a search snippet with its matched spans highlighted."""
    from .index.search import split_snippet

    text = Text()
    for segment, is_match in split_snippet(snippet):
        text.append(segment, style="bold yellow" if is_match else None)
    return text


def open_database(args):
    from .config import default_db_path
    from .index import SessionDatabase

    return SessionDatabase(args.db or default_db_path())


def cmd_sync(args):
    """Sync new transcript content (and teams) into the database."""
    from .config import projects_dir, tasks_dirs, teams_dirs
    from .index import TranscriptSyncer, sync_teams

    projects = Path(args.projects_dir) if args.projects_dir else projects_dir()

    def progress_callback(current, total, path):
        if total >= 100 and current % 100 == 0:
            console.print(f"\r  Progress: {current}/{total}", end="")

    with open_database(args) as db:
        syncer = TranscriptSyncer(db, projects, progress_callback=progress_callback)
        result = syncer.sync()
        if result.files_scanned >= 100:
            console.print()

        if result.migrated:
            console.print("Migrated: re-scanned all transcripts to populate tool calls")
        console.print(
            f"✓ Synced {result.files_processed}/{result.files_scanned} files: "
            f"{result.messages_added} messages, {result.sessions_added} new sessions, "
            f"{result.tool_calls_added} tool calls, {result.tool_results_added} tool results "
            f"({result.time_ms}ms)"
        )

        if not args.skip_teams:
            teams = sync_teams(db, teams_dirs(), tasks_dirs())
            if teams.teams_synced or teams.tasks_synced:
                console.print(
                    f"✓ Teams: {teams.teams_synced} teams, "
                    f"{teams.members_synced} members, {teams.tasks_synced} tasks"
                )


def cmd_search(args):
    """Full-text search over message content and thinking."""
    from .index import MessageSearch

    with open_database(args) as db:
        search = MessageSearch(db)
        results = search.search(
            args.query, project=args.project, limit=args.limit, sort=args.sort
        )

        if not results:
            console.print(f"No matches found for: {escape(args.query)}")
            return

        console.print(f"Found {len(results)} matches:\n")
        for result in results:
            console.print(
                f"[bold]{escape(result.project_path or '?')}[/bold] "
                f"[dim]{format_timestamp(result.timestamp)} {escape(result.type)} "
                f"session {escape(result.session_id)}[/dim]"
            )
            if args.context:
                context = search.context(result, args.context)
                for message in context.before:
                    console.print(Text(f"   {message.type}: {(message.content_text or '')[:120]}", style="dim"))
                console.print(Text("   ").append(highlight_snippet(result.snippet)))
                for message in context.after:
                    console.print(Text(f"   {message.type}: {(message.content_text or '')[:120]}", style="dim"))
            else:
                console.print(Text("   ").append(highlight_snippet(result.snippet)))
            console.print()


def cmd_sessions(args):
    """List recent sessions with message and token totals."""
    with open_database(args) as db:
        sessions = db.get_sessions(project=args.project, limit=args.limit)

    if not sessions:
        console.print("No sessions found.")
        return

    table = Table(title="Sessions")
    table.add_column("Last Activity")
    table.add_column("Project")
    table.add_column("Session")
    table.add_column("Messages", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Summary")
    for s in sessions:
        table.add_row(
            format_timestamp(s.last_timestamp),
            escape(s.project_path),
            escape(s.id),
            str(s.message_count),
            f"{s.total_tokens:,}",
            escape((s.summary or "")[:60]),
        )
    console.print(table)


def cmd_stats(args):
    """Show database statistics."""
    with open_database(args) as db:
        stats = db.get_stats()
        db_path = db.db_path

    console.print("Database Statistics")
    console.print("=" * 60)
    console.print()
    console.print(f"Sessions: {stats.sessions:,}")
    console.print(f"Messages: {stats.messages:,}")
    console.print(f"Tool calls: {stats.tool_calls:,}")
    console.print(f"Tool results: {stats.tool_results:,}")
    console.print()
    console.print("Tokens:")
    console.print(f"  Input: {stats.tokens.input:,}")
    console.print(f"  Output: {stats.tokens.output:,}")
    console.print(f"  Cache read: {stats.tokens.cache_read:,}")
    console.print(f"  Cache creation: {stats.tokens.cache_creation:,}")
    console.print()
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        console.print(f"Database size: {size_mb:.2f} MB")


def cmd_tools(args):
    """Show tool usage counts."""
    with open_database(args) as db:
        tool_stats = db.get_tool_stats(project=args.project, limit=args.limit)

    if not tool_stats:
        console.print("No tool calls found.")
        return

    table = Table(title="Tool Usage")
    table.add_column("Tool")
    table.add_column("Calls", justify="right")
    table.add_column("Share", justify="right")
    for stat in tool_stats:
        table.add_row(escape(stat.tool_name), f"{stat.count:,}", f"{stat.percentage:.1f}%")
    console.print(table)


def cmd_schema(args):
    """Describe the database schema."""
    with open_database(args) as db:
        schema = db.get_schema(args.table)

    if not schema.tables:
        console.print(f"No such table: {escape(args.table)}" if args.table else "No tables.")
        return

    for table_info in schema.tables:
        table = Table(title=f"{escape(table_info.name)} ({table_info.row_count:,} rows)")
        table.add_column("Column")
        table.add_column("Type")
        table.add_column("PK")
        table.add_column("References")
        references = {
            fk.from_column: f"{fk.table}.{fk.to_column}" for fk in table_info.foreign_keys
        }
        for column in table_info.columns:
            table.add_row(
                escape(column.name),
                escape(column.type),
                "✓" if column.pk else "",
                escape(references.get(column.name, "")),
            )
        console.print(table)
        for index in table_info.indexes:
            unique = "unique " if index.unique else ""
            console.print(f"  {unique}index {escape(index.name)} ({escape(', '.join(index.columns))})")
        console.print()


def cmd_rebuild_index(args):
    """Regenerate the full-text index from stored messages."""
    from .index import MessageSearch

    with open_database(args) as db:
        MessageSearch(db).rebuild_index()
    console.print("✓ Full-text index rebuilt")


def cmd_teams(args):
    """List synced teams."""
    with open_database(args) as db:
        teams = db.get_teams()

    if not teams:
        console.print("No teams found.")
        return

    table = Table(title="Teams")
    table.add_column("Team")
    table.add_column("Name")
    table.add_column("Members", justify="right")
    table.add_column("Tasks", justify="right")
    table.add_column("Created")
    for team in teams:
        table.add_row(
            escape(team.id),
            escape(team.name),
            str(team.member_count),
            str(team.task_count),
            format_timestamp(team.created_at),
        )
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search and summarize Claude Code transcript history",
        prog="ccrecall",
    )
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Database path (default: $CCRECALL_DB or ~/.claude/cclog.db)")
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Log progress (-vv for per-file detail)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    sync_parser = subparsers.add_parser("sync", help="Import new transcript content")
    sync_parser.add_argument("--projects-dir", help="Transcript root (default: ~/.claude/projects)")
    sync_parser.add_argument("--skip-teams", action="store_true", help="Do not sync teams and tasks")

    search_parser = subparsers.add_parser("search", help="Full-text search")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--project", "-p", help="Filter to matching project paths")
    search_parser.add_argument("--limit", "-l", type=int, default=20, help="Max results")
    search_parser.add_argument(
        "--sort", "-s",
        choices=["relevance", "time", "time-asc"],
        default="relevance",
        help="Result order",
    )
    search_parser.add_argument(
        "--context", "-c", type=int, default=0, help="Messages of context around each match"
    )

    sessions_parser = subparsers.add_parser("sessions", help="List recent sessions")
    sessions_parser.add_argument("--project", "-p", help="Filter to matching project paths")
    sessions_parser.add_argument("--limit", "-l", type=int, default=20, help="Max sessions")

    subparsers.add_parser("stats", help="Database statistics")

    tools_parser = subparsers.add_parser("tools", help="Tool usage statistics")
    tools_parser.add_argument("--project", "-p", help="Filter to matching project paths")
    tools_parser.add_argument("--limit", "-l", type=int, default=20, help="Max tools")

    schema_parser = subparsers.add_parser("schema", help="Describe database tables")
    schema_parser.add_argument("table", nargs="?", help="Only this table")

    subparsers.add_parser("rebuild-index", help="Rebuild the full-text index")
    subparsers.add_parser("teams", help="List synced teams")

    return parser


COMMANDS = {
    "sync": cmd_sync,
    "search": cmd_search,
    "sessions": cmd_sessions,
    "stats": cmd_stats,
    "tools": cmd_tools,
    "schema": cmd_schema,
    "rebuild-index": cmd_rebuild_index,
    "teams": cmd_teams,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the ccrecall CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__
        console.print(f"ccrecall {__version__}")
        return 0

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        command(args)
    except CcrecallError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for note in getattr(e, "__notes__", []):
            print(f"  {note}", file=sys.stderr)
        return e.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
