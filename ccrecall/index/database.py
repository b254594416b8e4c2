import logging
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from ..exceptions import StorageError
from .schema import SCHEMA, SchemaDefinition

logger = logging.getLogger(__name__)

SNIPPET_START = ">>>"
SNIPPET_END = "<<<"
SNIPPET_ELLIPSIS = "..."
SNIPPET_TOKENS = 32

# bm25 column weights: content_text, thinking
CONTENT_WEIGHT = 10.0
THINKING_WEIGHT = 1.0

SORT_ORDERS = {
    "relevance": "relevance ASC",
    "time": "m.timestamp DESC",
    "time-asc": "m.timestamp ASC",
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class SessionRow:
    id: str
    project_path: str
    git_branch: Optional[str]
    cwd: Optional[str]
    first_timestamp: Optional[int]
    last_timestamp: Optional[int]
    summary: Optional[str]


@dataclass
class SessionListing(SessionRow):
    message_count: int = 0
    total_tokens: int = 0


@dataclass
class MessageRow:
    uuid: str
    session_id: str
    type: str
    timestamp: int
    parent_uuid: Optional[str] = None
    model: Optional[str] = None
    content_text: Optional[str] = None
    content_json: Optional[str] = None
    thinking: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0


@dataclass
class ToolCallRow:
    id: str
    message_uuid: str
    session_id: str
    tool_name: str
    timestamp: int
    tool_input: Optional[str] = None


@dataclass
class ToolResultRow:
    tool_call_id: str
    message_uuid: str
    session_id: str
    timestamp: int
    content: Optional[str] = None
    is_error: bool = False


@dataclass
class SyncState:
    file_path: str
    last_modified: int
    last_byte_offset: int


@dataclass
class MessageContext:
    before: list[MessageRow] = field(default_factory=list)
    after: list[MessageRow] = field(default_factory=list)


@dataclass
class TokenTotals:
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_creation: int = 0


@dataclass
class DatabaseStats:
    sessions: int
    messages: int
    tool_calls: int
    tool_results: int
    tokens: TokenTotals


@dataclass
class ToolStat:
    tool_name: str
    count: int
    percentage: float


@dataclass
class ColumnInfo:
    name: str
    type: str
    notnull: bool
    default: Optional[str]
    pk: bool


@dataclass
class ForeignKeyInfo:
    table: str
    from_column: str
    to_column: str


@dataclass
class IndexInfo:
    name: str
    unique: bool
    columns: list[str]


@dataclass
class TableInfo:
    name: str
    columns: list[ColumnInfo]
    foreign_keys: list[ForeignKeyInfo]
    indexes: list[IndexInfo]
    row_count: int


@dataclass
class SchemaInfo:
    tables: list[TableInfo] = field(default_factory=list)


@dataclass
class SearchResult:
    uuid: str
    session_id: str
    type: str
    timestamp: int
    project_path: Optional[str]
    model: Optional[str]
    content_text: Optional[str]
    thinking: Optional[str]
    snippet: str
    relevance: float


@dataclass
class TeamRow:
    id: str
    name: str
    description: Optional[str]
    lead_session_id: Optional[str]
    created_at: Optional[int]
    member_count: int = 0
    task_count: int = 0


def project_pattern(project: str) -> str:
    """LIKE pattern matching any project path containing ``project``."""
    escaped = (
        project.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


class SessionDatabase:
    """SQLite store for transcripts: sessions, messages, tool activity, sync cursors.

    The connection runs in autocommit mode; multi-statement units of work go
    through :meth:`transaction`.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        schema: SchemaDefinition = SCHEMA,
        *,
        timeout: float = 5.0,
    ):
        self._db_path = Path(db_path)
        self._schema = schema
        self._timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    def __enter__(self) -> "SessionDatabase":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                self._connection = sqlite3.connect(
                    str(self._db_path),
                    timeout=self._timeout,
                    isolation_level=None,
                )
                self._connection.row_factory = sqlite3.Row
                self._connection.execute("PRAGMA foreign_keys = ON")
                self._connection.execute("PRAGMA journal_mode = WAL")
            except (OSError, sqlite3.Error) as e:
                self._connection = None
                raise StorageError(f"Cannot open database {self._db_path}: {e}") from e
        return self._connection

    def _ensure_schema(self):
        if self._initialized:
            return
        conn = self._get_connection()
        current_version = self._get_schema_version(conn)
        if current_version < self._schema.version:
            self._create_schema(conn)
            self._set_schema_version(conn, self._schema.version)
        self._initialized = True

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        try:
            row = conn.execute(
                "SELECT MAX(version) as v FROM schema_meta"
            ).fetchone()
            return row["v"] if row and row["v"] else 0
        except sqlite3.OperationalError:
            return 0

    def _set_schema_version(self, conn: sqlite3.Connection, version: int):
        conn.execute(
            "INSERT OR IGNORE INTO schema_meta (version, description) VALUES (?, ?)",
            (version, f"Schema version {version}"),
        )

    def _create_schema(self, conn: sqlite3.Connection):
        for script in self._schema.scripts():
            conn.executescript(script)

    def initialize(self):
        self._ensure_schema()

    def close(self):
        if self._connection:
            self._connection.close()
            self._connection = None
            self._initialized = False

    @contextmanager
    def transaction(
        self,
        foreign_keys: bool = True,
        check_tables: Optional[Iterable[str]] = None,
    ) -> Iterator[sqlite3.Connection]:
        """Run a block as one transaction.

        With ``foreign_keys=False`` reference checks are suspended for the
        block (the pragma cannot change inside a transaction, so it is set
        around BEGIN/COMMIT) and verified once before committing. By default
        that is a full ``foreign_key_check``; with ``check_tables`` only rows
        added to those tables during the block are checked. Any exception
        rolls back everything.
        """
        self._ensure_schema()
        conn = self._get_connection()
        if not foreign_keys:
            conn.execute("PRAGMA foreign_keys = OFF")
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise StorageError(f"Cannot start transaction on {self._db_path}: {e}") from e
            try:
                start_rowids = {}
                if not foreign_keys and check_tables is not None:
                    start_rowids = {t: self._max_rowid(conn, t) for t in check_tables}
                yield conn
                if not foreign_keys:
                    if check_tables is None:
                        self._check_all_foreign_keys(conn)
                    else:
                        for table, since in start_rowids.items():
                            self._check_new_foreign_keys(conn, table, since)
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        finally:
            if not foreign_keys:
                conn.execute("PRAGMA foreign_keys = ON")

    def _max_rowid(self, conn: sqlite3.Connection, table: str) -> int:
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid identifier: {table!r}")
        row = conn.execute(f"SELECT COALESCE(MAX(rowid), 0) as r FROM {table}").fetchone()
        return row["r"]

    def _check_all_foreign_keys(self, conn: sqlite3.Connection) -> None:
        violations = conn.execute("PRAGMA foreign_key_check").fetchall()
        if violations:
            first = violations[0]
            raise StorageError(
                f"{len(violations)} foreign key violation(s), first in "
                f"{first['table']} referencing {first['parent']}"
            )

    def _check_new_foreign_keys(
        self, conn: sqlite3.Connection, table: str, since_rowid: int
    ) -> None:
        """Check references of rows in ``table`` with rowid above ``since_rowid``.

        Rows are only ever appended during a sync, so new rows sit above the
        rowid high-water mark taken at BEGIN.
        """
        for fk in conn.execute(
            "SELECT * FROM pragma_foreign_key_list(?)", (table,)
        ).fetchall():
            row = conn.execute(
                f"""
                SELECT COUNT(*) as c FROM "{table}" t
                LEFT JOIN "{fk['table']}" p ON p."{fk['to']}" = t."{fk['from']}"
                WHERE t.rowid > ? AND t."{fk['from']}" IS NOT NULL AND p.rowid IS NULL
                """,
                (since_rowid,),
            ).fetchone()
            if row["c"]:
                raise StorageError(
                    f"{row['c']} foreign key violation(s) in {table}.{fk['from']} "
                    f"referencing {fk['table']}"
                )

    def upsert(
        self,
        table: str,
        row: dict,
        key: Union[str, tuple[str, ...]] = "id",
        merge: Optional[dict[str, str]] = None,
    ) -> None:
        """Insert ``row`` or merge it into the existing row sharing ``key``.

        ``merge`` maps column names to SQL expressions evaluated against the
        existing row (bare column names) and the incoming row (``excluded.*``).
        By default every non-key column is replaced by the incoming value.
        """
        keys = (key,) if isinstance(key, str) else tuple(key)
        columns = list(row)
        if merge is None:
            merge = {c: f"excluded.{c}" for c in columns if c not in keys}
        for name in (table, *columns, *keys, *merge):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"Invalid identifier: {name!r}")

        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({', '.join(keys)}) "
        )
        if merge:
            assignments = ", ".join(f"{col} = {expr}" for col, expr in merge.items())
            sql += f"DO UPDATE SET {assignments}"
        else:
            sql += "DO NOTHING"

        self._ensure_schema()
        self._get_connection().execute(sql, [row[c] for c in columns])

    def upsert_session(
        self,
        session_id: str,
        project_path: str,
        timestamp: Optional[int] = None,
        *,
        git_branch: Optional[str] = None,
        cwd: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> None:
        self.upsert(
            "sessions",
            {
                "id": session_id,
                "project_path": project_path,
                "git_branch": git_branch,
                "cwd": cwd,
                "first_timestamp": timestamp,
                "last_timestamp": timestamp,
                "summary": summary,
            },
            merge={
                # scalar MIN/MAX return NULL if either side is NULL
                "first_timestamp": (
                    "COALESCE(MIN(first_timestamp, excluded.first_timestamp), "
                    "first_timestamp, excluded.first_timestamp)"
                ),
                "last_timestamp": (
                    "COALESCE(MAX(last_timestamp, excluded.last_timestamp), "
                    "last_timestamp, excluded.last_timestamp)"
                ),
                "summary": "COALESCE(excluded.summary, summary)",
                "git_branch": "COALESCE(git_branch, excluded.git_branch)",
                "cwd": "COALESCE(cwd, excluded.cwd)",
            },
        )

    def insert_message(self, message: MessageRow) -> bool:
        """Insert a message unless its uuid is already stored. Returns True if written."""
        self._ensure_schema()
        cursor = self._get_connection().execute(
            """
            INSERT OR IGNORE INTO messages (
                uuid, session_id, parent_uuid, type, model,
                content_text, content_json, thinking, timestamp,
                input_tokens, output_tokens, cache_read_tokens, cache_creation_tokens
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.uuid,
                message.session_id,
                message.parent_uuid,
                message.type,
                message.model,
                message.content_text,
                message.content_json,
                message.thinking,
                message.timestamp,
                message.input_tokens,
                message.output_tokens,
                message.cache_read_tokens,
                message.cache_creation_tokens,
            ),
        )
        return cursor.rowcount == 1

    def insert_tool_call(self, tool_call: ToolCallRow) -> bool:
        self._ensure_schema()
        cursor = self._get_connection().execute(
            """
            INSERT OR IGNORE INTO tool_calls (
                id, message_uuid, session_id, tool_name, tool_input, timestamp
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                tool_call.id,
                tool_call.message_uuid,
                tool_call.session_id,
                tool_call.tool_name,
                tool_call.tool_input,
                tool_call.timestamp,
            ),
        )
        return cursor.rowcount == 1

    def insert_tool_result(self, tool_result: ToolResultRow) -> bool:
        self._ensure_schema()
        cursor = self._get_connection().execute(
            """
            INSERT OR IGNORE INTO tool_results (
                tool_call_id, message_uuid, session_id, content, is_error, timestamp
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                tool_result.tool_call_id,
                tool_result.message_uuid,
                tool_result.session_id,
                tool_result.content,
                1 if tool_result.is_error else 0,
                tool_result.timestamp,
            ),
        )
        return cursor.rowcount == 1

    def get_sync_state(self, file_path: Union[str, Path]) -> Optional[SyncState]:
        self._ensure_schema()
        row = self._get_connection().execute(
            "SELECT * FROM sync_state WHERE file_path = ?", (str(file_path),)
        ).fetchone()
        if not row:
            return None
        return SyncState(
            file_path=row["file_path"],
            last_modified=row["last_modified"],
            last_byte_offset=row["last_byte_offset"],
        )

    def set_sync_state(
        self, file_path: Union[str, Path], last_modified: int, last_byte_offset: int
    ) -> None:
        self.upsert(
            "sync_state",
            {
                "file_path": str(file_path),
                "last_modified": last_modified,
                "last_byte_offset": last_byte_offset,
            },
            key="file_path",
        )

    def reset_sync_state(self) -> int:
        """Forget every cursor so the next sync re-reads all files. Rows are kept."""
        self._ensure_schema()
        cursor = self._get_connection().execute("DELETE FROM sync_state")
        return cursor.rowcount

    def _count(self, table: str) -> int:
        row = self._get_connection().execute(
            f"SELECT COUNT(*) as c FROM {table}"
        ).fetchone()
        return row["c"] if row else 0

    def get_stats(self) -> DatabaseStats:
        self._ensure_schema()
        conn = self._get_connection()
        tokens = conn.execute(
            """
            SELECT
                COALESCE(SUM(input_tokens), 0) as input,
                COALESCE(SUM(output_tokens), 0) as output,
                COALESCE(SUM(cache_read_tokens), 0) as cache_read,
                COALESCE(SUM(cache_creation_tokens), 0) as cache_creation
            FROM messages
            """
        ).fetchone()
        return DatabaseStats(
            sessions=self._count("sessions"),
            messages=self._count("messages"),
            tool_calls=self._count("tool_calls"),
            tool_results=self._count("tool_results"),
            tokens=TokenTotals(
                input=tokens["input"],
                output=tokens["output"],
                cache_read=tokens["cache_read"],
                cache_creation=tokens["cache_creation"],
            ),
        )

    def get_session(self, session_id: str) -> Optional[SessionRow]:
        self._ensure_schema()
        row = self._get_connection().execute(
            "SELECT * FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        if not row:
            return None
        return self._row_to_session(row)

    def get_sessions(
        self,
        *,
        project: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SessionListing]:
        """List sessions, most recently active first, with message and token totals."""
        self._ensure_schema()
        params: list = []
        where_clause = ""
        if project:
            where_clause = "WHERE s.project_path LIKE ? ESCAPE '\\'"
            params.append(project_pattern(project))
        params.append(limit if limit is not None else -1)

        rows = self._get_connection().execute(
            f"""
            SELECT s.*,
                COUNT(m.uuid) as message_count,
                COALESCE(SUM(m.input_tokens + m.output_tokens), 0) as total_tokens
            FROM sessions s
            LEFT JOIN messages m ON m.session_id = s.id
            {where_clause}
            GROUP BY s.id
            ORDER BY s.last_timestamp DESC
            LIMIT ?
            """,
            params,
        ).fetchall()

        return [
            SessionListing(
                **vars(self._row_to_session(r)),
                message_count=r["message_count"],
                total_tokens=r["total_tokens"],
            )
            for r in rows
        ]

    def get_session_messages(self, session_id: str) -> list[MessageRow]:
        self._ensure_schema()
        rows = self._get_connection().execute(
            """
            SELECT * FROM messages
            WHERE session_id = ?
            ORDER BY timestamp, rowid
            """,
            (session_id,),
        ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def get_messages_around(
        self, session_id: str, timestamp: int, count: int
    ) -> MessageContext:
        """Up to ``count`` messages strictly before and after ``timestamp`` in one session.

        Both lists are in chronological order.
        """
        if count <= 0:
            return MessageContext()
        self._ensure_schema()
        conn = self._get_connection()
        before = conn.execute(
            """
            SELECT * FROM messages
            WHERE session_id = ? AND timestamp < ?
            ORDER BY timestamp DESC, rowid DESC
            LIMIT ?
            """,
            (session_id, timestamp, count),
        ).fetchall()
        after = conn.execute(
            """
            SELECT * FROM messages
            WHERE session_id = ? AND timestamp > ?
            ORDER BY timestamp ASC, rowid ASC
            LIMIT ?
            """,
            (session_id, timestamp, count),
        ).fetchall()
        return MessageContext(
            before=[self._row_to_message(r) for r in reversed(before)],
            after=[self._row_to_message(r) for r in after],
        )

    def get_tool_stats(
        self,
        *,
        project: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ToolStat]:
        """Tool usage counts with their share of all (filtered) tool calls."""
        self._ensure_schema()
        conn = self._get_connection()
        join_clause = ""
        where_clause = ""
        params: list = []
        if project:
            join_clause = "JOIN sessions s ON s.id = tc.session_id"
            where_clause = "WHERE s.project_path LIKE ? ESCAPE '\\'"
            params.append(project_pattern(project))

        total_row = conn.execute(
            f"SELECT COUNT(*) as c FROM tool_calls tc {join_clause} {where_clause}",
            params,
        ).fetchone()
        total = total_row["c"] if total_row else 0
        if not total:
            return []

        rows = conn.execute(
            f"""
            SELECT tc.tool_name, COUNT(*) as count
            FROM tool_calls tc
            {join_clause}
            {where_clause}
            GROUP BY tc.tool_name
            ORDER BY count DESC, tc.tool_name ASC
            LIMIT ?
            """,
            [*params, limit if limit is not None else -1],
        ).fetchall()
        return [
            ToolStat(
                tool_name=r["tool_name"],
                count=r["count"],
                percentage=round(r["count"] * 100.0 / total, 1),
            )
            for r in rows
        ]

    def get_schema(self, table: Optional[str] = None) -> SchemaInfo:
        """Describe tables, columns, foreign keys, indexes and row counts.

        Full-text virtual tables and their shadow tables are left out.
        """
        self._ensure_schema()
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT name, sql FROM sqlite_master
            WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
            ORDER BY name
            """
        ).fetchall()
        virtual = [
            r["name"] for r in rows
            if (r["sql"] or "").upper().startswith("CREATE VIRTUAL TABLE")
        ]
        names = [
            r["name"] for r in rows
            if r["name"] not in virtual
            and not any(r["name"].startswith(f"{v}_") for v in virtual)
        ]
        if table is not None:
            names = [n for n in names if n == table]

        return SchemaInfo(tables=[self._describe_table(conn, n) for n in names])

    def _describe_table(self, conn: sqlite3.Connection, name: str) -> TableInfo:
        columns = [
            ColumnInfo(
                name=c["name"],
                type=c["type"],
                notnull=bool(c["notnull"]),
                default=c["dflt_value"],
                pk=bool(c["pk"]),
            )
            for c in conn.execute("SELECT * FROM pragma_table_info(?)", (name,))
        ]
        foreign_keys = [
            ForeignKeyInfo(table=f["table"], from_column=f["from"], to_column=f["to"])
            for f in conn.execute("SELECT * FROM pragma_foreign_key_list(?)", (name,))
        ]
        indexes = []
        for idx in conn.execute("SELECT * FROM pragma_index_list(?)", (name,)).fetchall():
            idx_columns = [
                c["name"]
                for c in conn.execute(
                    "SELECT * FROM pragma_index_info(?) ORDER BY seqno", (idx["name"],)
                )
            ]
            indexes.append(
                IndexInfo(name=idx["name"], unique=bool(idx["unique"]), columns=idx_columns)
            )
        return TableInfo(
            name=name,
            columns=columns,
            foreign_keys=foreign_keys,
            indexes=indexes,
            row_count=self._count(f'"{name}"'),
        )

    def search_messages(
        self,
        fts_query: str,
        *,
        project: Optional[str] = None,
        limit: int = 20,
        sort: str = "relevance",
    ) -> list[SearchResult]:
        """Run an already-escaped FTS5 query. bm25 relevance: lower is better."""
        if sort not in SORT_ORDERS:
            raise ValueError(f"Unknown sort order: {sort}")
        self._ensure_schema()
        params: list = [fts_query]
        project_clause = ""
        if project:
            project_clause = "AND s.project_path LIKE ? ESCAPE '\\'"
            params.append(project_pattern(project))
        params.append(limit)

        rows = self._get_connection().execute(
            f"""
            SELECT m.uuid, m.session_id, m.type, m.model, m.timestamp,
                m.content_text, m.thinking, s.project_path,
                snippet(messages_fts, -1, '{SNIPPET_START}', '{SNIPPET_END}',
                    '{SNIPPET_ELLIPSIS}', {SNIPPET_TOKENS}) as snippet,
                bm25(messages_fts, {CONTENT_WEIGHT}, {THINKING_WEIGHT}) as relevance
            FROM messages_fts
            JOIN messages m ON m.rowid = messages_fts.rowid
            LEFT JOIN sessions s ON s.id = m.session_id
            WHERE messages_fts MATCH ?
            {project_clause}
            ORDER BY {SORT_ORDERS[sort]}
            LIMIT ?
            """,
            params,
        ).fetchall()
        return [
            SearchResult(
                uuid=r["uuid"],
                session_id=r["session_id"],
                type=r["type"],
                timestamp=r["timestamp"],
                project_path=r["project_path"],
                model=r["model"],
                content_text=r["content_text"],
                thinking=r["thinking"],
                snippet=r["snippet"] or "",
                relevance=r["relevance"],
            )
            for r in rows
        ]

    def rebuild_fts(self) -> None:
        """Regenerate the full-text index from the current message rows."""
        self._ensure_schema()
        try:
            self._get_connection().execute(
                "INSERT INTO messages_fts(messages_fts) VALUES ('rebuild')"
            )
        except sqlite3.OperationalError as e:
            raise StorageError(f"Full-text index rebuild failed: {e}") from e

    def upsert_team(
        self,
        team_id: str,
        name: str,
        *,
        description: Optional[str] = None,
        lead_session_id: Optional[str] = None,
        created_at: Optional[int] = None,
    ) -> None:
        self.upsert(
            "teams",
            {
                "id": team_id,
                "name": name,
                "description": description,
                "lead_session_id": lead_session_id,
                "created_at": created_at,
            },
        )

    def upsert_team_member(
        self,
        member_id: str,
        team_id: str,
        name: str,
        *,
        agent_type: Optional[str] = None,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
        color: Optional[str] = None,
        cwd: Optional[str] = None,
        joined_at: Optional[int] = None,
    ) -> None:
        self.upsert(
            "team_members",
            {
                "id": member_id,
                "team_id": team_id,
                "name": name,
                "agent_type": agent_type,
                "model": model,
                "prompt": prompt,
                "color": color,
                "cwd": cwd,
                "joined_at": joined_at,
            },
        )

    def upsert_team_task(
        self,
        task_id: str,
        team_id: str,
        subject: str,
        *,
        owner_name: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
    ) -> None:
        self.upsert(
            "team_tasks",
            {
                "id": task_id,
                "team_id": team_id,
                "owner_name": owner_name,
                "subject": subject,
                "description": description,
                "status": status,
            },
        )

    def get_teams(self) -> list[TeamRow]:
        self._ensure_schema()
        rows = self._get_connection().execute(
            """
            SELECT t.*,
                (SELECT COUNT(*) FROM team_members tm WHERE tm.team_id = t.id) as member_count,
                (SELECT COUNT(*) FROM team_tasks tt WHERE tt.team_id = t.id) as task_count
            FROM teams t
            ORDER BY t.created_at DESC, t.id
            """
        ).fetchall()
        return [
            TeamRow(
                id=r["id"],
                name=r["name"],
                description=r["description"],
                lead_session_id=r["lead_session_id"],
                created_at=r["created_at"],
                member_count=r["member_count"],
                task_count=r["task_count"],
            )
            for r in rows
        ]

    def _row_to_session(self, row: sqlite3.Row) -> SessionRow:
        return SessionRow(
            id=row["id"],
            project_path=row["project_path"],
            git_branch=row["git_branch"],
            cwd=row["cwd"],
            first_timestamp=row["first_timestamp"],
            last_timestamp=row["last_timestamp"],
            summary=row["summary"],
        )

    def _row_to_message(self, row: sqlite3.Row) -> MessageRow:
        return MessageRow(
            uuid=row["uuid"],
            session_id=row["session_id"],
            type=row["type"],
            timestamp=row["timestamp"],
            parent_uuid=row["parent_uuid"],
            model=row["model"],
            content_text=row["content_text"],
            content_json=row["content_json"],
            thinking=row["thinking"],
            input_tokens=row["input_tokens"],
            output_tokens=row["output_tokens"],
            cache_read_tokens=row["cache_read_tokens"],
            cache_creation_tokens=row["cache_creation_tokens"],
        )
