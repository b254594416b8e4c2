"""Versioned schema definition for the ccrecall store."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SchemaDefinition:
    version: int
    tables_sql: str
    fts_sql: str
    triggers_sql: str

    def scripts(self) -> tuple[str, str, str]:
        return (self.tables_sql, self.fts_sql, self.triggers_sql)


TABLES_SQL = """
    CREATE TABLE IF NOT EXISTS schema_meta (
        version INTEGER PRIMARY KEY,
        applied_at INTEGER DEFAULT (strftime('%s', 'now')),
        description TEXT
    );

    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        project_path TEXT NOT NULL,
        git_branch TEXT,
        cwd TEXT,
        first_timestamp INTEGER,
        last_timestamp INTEGER,
        summary TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_path);
    CREATE INDEX IF NOT EXISTS idx_sessions_last_timestamp ON sessions(last_timestamp DESC);

    CREATE TABLE IF NOT EXISTS messages (
        uuid TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        parent_uuid TEXT,
        type TEXT NOT NULL,
        model TEXT,
        content_text TEXT,
        content_json TEXT,
        thinking TEXT,
        timestamp INTEGER NOT NULL,
        input_tokens INTEGER DEFAULT 0,
        output_tokens INTEGER DEFAULT 0,
        cache_read_tokens INTEGER DEFAULT 0,
        cache_creation_tokens INTEGER DEFAULT 0,
        FOREIGN KEY (session_id) REFERENCES sessions(id)
    );

    CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);
    CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp);
    CREATE INDEX IF NOT EXISTS idx_messages_session_timestamp ON messages(session_id, timestamp);

    CREATE TABLE IF NOT EXISTS tool_calls (
        id TEXT PRIMARY KEY,
        message_uuid TEXT NOT NULL,
        session_id TEXT NOT NULL,
        tool_name TEXT NOT NULL,
        tool_input TEXT,
        timestamp INTEGER NOT NULL,
        FOREIGN KEY (message_uuid) REFERENCES messages(uuid),
        FOREIGN KEY (session_id) REFERENCES sessions(id)
    );

    CREATE INDEX IF NOT EXISTS idx_tool_calls_session ON tool_calls(session_id);
    CREATE INDEX IF NOT EXISTS idx_tool_calls_name ON tool_calls(tool_name);

    CREATE TABLE IF NOT EXISTS tool_results (
        tool_call_id TEXT PRIMARY KEY,
        message_uuid TEXT NOT NULL,
        session_id TEXT NOT NULL,
        content TEXT,
        is_error INTEGER DEFAULT 0,
        timestamp INTEGER NOT NULL,
        FOREIGN KEY (message_uuid) REFERENCES messages(uuid),
        FOREIGN KEY (session_id) REFERENCES sessions(id)
    );

    CREATE INDEX IF NOT EXISTS idx_tool_results_session ON tool_results(session_id);

    CREATE TABLE IF NOT EXISTS sync_state (
        file_path TEXT PRIMARY KEY,
        last_modified INTEGER NOT NULL,
        last_byte_offset INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        lead_session_id TEXT,
        created_at INTEGER
    );

    CREATE TABLE IF NOT EXISTS team_members (
        id TEXT PRIMARY KEY,
        team_id TEXT NOT NULL,
        name TEXT NOT NULL,
        agent_type TEXT,
        model TEXT,
        prompt TEXT,
        color TEXT,
        cwd TEXT,
        joined_at INTEGER,
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );

    CREATE INDEX IF NOT EXISTS idx_team_members_team ON team_members(team_id);

    CREATE TABLE IF NOT EXISTS team_tasks (
        id TEXT PRIMARY KEY,
        team_id TEXT NOT NULL,
        owner_name TEXT,
        subject TEXT NOT NULL,
        description TEXT,
        status TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_team_tasks_team ON team_tasks(team_id);
"""

FTS_SQL = """
    CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
        content_text,
        thinking,
        content='messages',
        content_rowid='rowid',
        tokenize='porter unicode61'
    );
"""

TRIGGERS_SQL = """
    CREATE TRIGGER IF NOT EXISTS messages_ai AFTER INSERT ON messages BEGIN
        INSERT INTO messages_fts(rowid, content_text, thinking)
        VALUES (NEW.rowid, NEW.content_text, NEW.thinking);
    END;

    CREATE TRIGGER IF NOT EXISTS messages_ad AFTER DELETE ON messages BEGIN
        INSERT INTO messages_fts(messages_fts, rowid, content_text, thinking)
        VALUES ('delete', OLD.rowid, OLD.content_text, OLD.thinking);
    END;

    CREATE TRIGGER IF NOT EXISTS messages_au AFTER UPDATE ON messages BEGIN
        INSERT INTO messages_fts(messages_fts, rowid, content_text, thinking)
        VALUES ('delete', OLD.rowid, OLD.content_text, OLD.thinking);
        INSERT INTO messages_fts(rowid, content_text, thinking)
        VALUES (NEW.rowid, NEW.content_text, NEW.thinking);
    END;
"""

SCHEMA = SchemaDefinition(
    version=1,
    tables_sql=TABLES_SQL,
    fts_sql=FTS_SQL,
    triggers_sql=TRIGGERS_SQL,
)
