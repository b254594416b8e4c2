"""Incremental transcript sync into the session database."""

import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..exceptions import StorageError, TranscriptReadError
from ..models import ParsedMessage
from ..transcripts.parser import TranscriptReader
from ..transcripts.scanner import discover_transcripts, project_path_for
from .database import MessageRow, SessionDatabase, ToolCallRow, ToolResultRow

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

# Tables whose new rows are reference-checked at commit
SYNCED_TABLES = ("messages", "tool_calls", "tool_results")


@dataclass
class SyncResult:
    files_scanned: int = 0
    files_processed: int = 0
    messages_added: int = 0
    sessions_added: int = 0
    tool_calls_added: int = 0
    tool_results_added: int = 0
    migrated: bool = False
    time_ms: int = 0


def file_mtime_ms(path: Path) -> int:
    try:
        return path.stat().st_mtime_ns // 1_000_000
    except OSError as e:
        raise TranscriptReadError(path, e) from e


class TranscriptSyncer:
    """Apply new transcript content to the database, one transaction per run.

    Each file is read from its stored byte offset, and only when its
    modification time moved past the stored one. Messages and tool entities
    are insert-once, so re-reading content already stored adds nothing.
    """

    def __init__(
        self,
        db: SessionDatabase,
        projects_dir: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.db = db
        self.projects_dir = Path(projects_dir)
        self.progress_callback = progress_callback

    def needs_migration(self) -> bool:
        """True when messages exist but no tool entity was ever extracted."""
        stats = self.db.get_stats()
        return stats.messages > 0 and stats.tool_calls + stats.tool_results == 0

    def sync(self) -> SyncResult:
        """
        Run one incremental pass over every transcript under the projects dir.

        Returns:
            SyncResult with file, session, message and tool entity counts

        Raises:
            TranscriptReadError: a transcript could not be read; nothing from
                this run is kept
            StorageError: the database rejected the run; nothing is kept
        """
        start_time = time.time()
        result = SyncResult()

        files = discover_transcripts(self.projects_dir)
        result.files_scanned = len(files)
        logger.info(f"Found {len(files)} transcript files")

        seen_sessions: set[str] = set()
        try:
            with self.db.transaction(foreign_keys=False, check_tables=SYNCED_TABLES):
                if self.needs_migration():
                    logger.info(
                        "Stored messages predate tool extraction, "
                        "resetting sync state to re-scan all transcripts"
                    )
                    self.db.reset_sync_state()
                    result.migrated = True

                for i, path in enumerate(files):
                    self._sync_file(path, seen_sessions, result)
                    if self.progress_callback:
                        self.progress_callback(i + 1, len(files), str(path))
        except sqlite3.IntegrityError as e:
            raise StorageError(f"Sync aborted by integrity violation: {e}") from e

        result.time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Sync complete: {result.files_processed}/{result.files_scanned} files, "
            f"{result.messages_added} messages, {result.sessions_added} new sessions, "
            f"{result.tool_calls_added} tool calls, {result.tool_results_added} tool results "
            f"in {result.time_ms}ms"
        )
        return result

    def _sync_file(self, path: Path, seen_sessions: set[str], result: SyncResult) -> None:
        last_modified = file_mtime_ms(path)
        state = self.db.get_sync_state(path)
        if state and state.last_modified >= last_modified:
            return

        start_offset = state.last_byte_offset if state else 0
        project_path = project_path_for(self.projects_dir, path)
        logger.debug(f"Processing {path} from byte {start_offset}")

        reader = TranscriptReader(path, start_offset)
        messages_added = 0
        for record, _offset in reader:
            messages_added += self._apply(record, project_path, seen_sessions, result)

        if messages_added:
            result.files_processed += 1
            result.messages_added += messages_added

        self.db.set_sync_state(path, last_modified, reader.offset)

    def _apply(
        self,
        record: ParsedMessage,
        project_path: str,
        seen_sessions: set[str],
        result: SyncResult,
    ) -> int:
        """Store one record. Returns the number of messages written (0 or 1)."""
        if record.session_id not in seen_sessions:
            if self.db.get_session(record.session_id) is None:
                result.sessions_added += 1
            seen_sessions.add(record.session_id)

        # Session first: messages and tool entities reference it
        self.db.upsert_session(
            record.session_id,
            project_path,
            record.timestamp,
            git_branch=record.git_branch,
            cwd=record.cwd,
            summary=record.summary,
        )
        if record.is_summary:
            return 0

        inserted = self.db.insert_message(MessageRow(
            uuid=record.uuid,
            session_id=record.session_id,
            type=record.type,
            timestamp=record.timestamp,
            parent_uuid=record.parent_uuid,
            model=record.model,
            content_text=record.content_text,
            content_json=record.content_json,
            thinking=record.thinking,
            input_tokens=record.input_tokens,
            output_tokens=record.output_tokens,
            cache_read_tokens=record.cache_read_tokens,
            cache_creation_tokens=record.cache_creation_tokens,
        ))

        # Tool entities are written even when the message already existed,
        # which is how a re-scan fills them in for older stores.
        for tool_call in record.tool_calls:
            if self.db.insert_tool_call(ToolCallRow(
                id=tool_call.id,
                message_uuid=record.uuid,
                session_id=record.session_id,
                tool_name=tool_call.tool_name,
                timestamp=record.timestamp,
                tool_input=tool_call.tool_input,
            )):
                result.tool_calls_added += 1

        for tool_result in record.tool_results:
            if self.db.insert_tool_result(ToolResultRow(
                tool_call_id=tool_result.tool_call_id,
                message_uuid=record.uuid,
                session_id=record.session_id,
                timestamp=record.timestamp,
                content=tool_result.content,
                is_error=tool_result.is_error,
            )):
                result.tool_results_added += 1

        return 1 if inserted else 0


def sync_transcripts(
    db: SessionDatabase,
    projects_dir: Path,
    progress_callback: Optional[ProgressCallback] = None,
) -> SyncResult:
    return TranscriptSyncer(db, projects_dir, progress_callback).sync()
