"""SQLite index for transcript sync, search and usage stats."""

from .database import (
    DatabaseStats,
    MessageContext,
    MessageRow,
    SchemaInfo,
    SearchResult,
    SessionDatabase,
    SessionListing,
    SessionRow,
    SyncState,
    ToolCallRow,
    ToolResultRow,
    ToolStat,
)
from .schema import SCHEMA, SchemaDefinition
from .search import MessageSearch, build_fts_query
from .sync import SyncResult, TranscriptSyncer, sync_transcripts
from .teams import TeamSyncResult, sync_teams

__all__ = [
    "SessionDatabase",
    "SessionRow",
    "SessionListing",
    "MessageRow",
    "ToolCallRow",
    "ToolResultRow",
    "SyncState",
    "MessageContext",
    "DatabaseStats",
    "ToolStat",
    "SchemaInfo",
    "SearchResult",
    "SCHEMA",
    "SchemaDefinition",
    "MessageSearch",
    "build_fts_query",
    "TranscriptSyncer",
    "SyncResult",
    "sync_transcripts",
    "sync_teams",
    "TeamSyncResult",
]
