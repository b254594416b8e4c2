"""Tests for the session database."""

import sqlite3

import pytest

from ccrecall.exceptions import StorageError
from ccrecall.index.database import (
    MessageRow,
    SessionDatabase,
    ToolCallRow,
    ToolResultRow,
    project_pattern,
)

NOW = 1_700_000_000_000


def add_message(db, uuid, session_id="s1", ts=NOW, text="hello", type="user", **kwargs):
    return db.insert_message(
        MessageRow(uuid=uuid, session_id=session_id, type=type, timestamp=ts,
                   content_text=text, **kwargs)
    )


class TestSchema:
    """Tests for schema creation and introspection."""

    def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "store.db"
        with SessionDatabase(path) as db:
            db.upsert_session("s1", "/p", NOW)
        with SessionDatabase(path) as db:
            assert db.get_session("s1") is not None

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(StorageError):
            SessionDatabase(blocker / "store.db").initialize()

    def test_get_schema_table(self, db):
        schema = db.get_schema("sessions")
        assert len(schema.tables) == 1
        columns = {c.name: c for c in schema.tables[0].columns}
        assert columns["id"].type == "TEXT"
        assert columns["id"].pk is True
        assert columns["project_path"].notnull is True

    def test_get_schema_foreign_keys_and_indexes(self, db):
        """Test reference and index metadata is reported."""
        messages = db.get_schema("messages").tables[0]
        fk = messages.foreign_keys[0]
        assert (fk.table, fk.from_column, fk.to_column) == ("sessions", "session_id", "id")
        indexes = {i.name: i for i in messages.indexes}
        assert indexes["idx_messages_session_timestamp"].columns == ["session_id", "timestamp"]

    def test_get_schema_unknown_table(self, db):
        assert db.get_schema("nope").tables == []

    def test_get_schema_hides_fts_tables(self, db):
        names = [t.name for t in db.get_schema().tables]
        assert "messages" in names
        assert "sync_state" in names
        assert not any(n.startswith("messages_fts") for n in names)

    def test_row_counts(self, db):
        db.upsert_session("s1", "/p", NOW)
        add_message(db, "m1")
        assert db.get_schema("messages").tables[0].row_count == 1


class TestSessionUpsert:
    """Tests for session merge rules."""

    def test_timestamps_widen(self, db):
        """Test first/last timestamps only ever move outward."""
        db.upsert_session("s1", "/p", NOW)
        db.upsert_session("s1", "/p", NOW + 5000)
        db.upsert_session("s1", "/p", NOW - 5000)
        db.upsert_session("s1", "/p", NOW + 1000)
        session = db.get_session("s1")
        assert session.first_timestamp == NOW - 5000
        assert session.last_timestamp == NOW + 5000

    def test_null_timestamp_keeps_bounds(self, db):
        db.upsert_session("s1", "/p", None, summary="Early summary")
        db.upsert_session("s1", "/p", NOW)
        db.upsert_session("s1", "/p", None)
        session = db.get_session("s1")
        assert session.first_timestamp == NOW
        assert session.last_timestamp == NOW

    def test_summary_latest_non_null_wins(self, db):
        db.upsert_session("s1", "/p", NOW, summary="first")
        db.upsert_session("s1", "/p", NOW, summary="second")
        db.upsert_session("s1", "/p", NOW)
        assert db.get_session("s1").summary == "second"

    def test_branch_and_cwd_fill_once(self, db):
        db.upsert_session("s1", "/p", NOW)
        db.upsert_session("s1", "/p", NOW, git_branch="main", cwd="/p")
        db.upsert_session("s1", "/p", NOW, git_branch="feature", cwd="/other")
        session = db.get_session("s1")
        assert session.git_branch == "main"
        assert session.cwd == "/p"

    def test_upsert_rejects_bad_identifier(self, db):
        with pytest.raises(ValueError):
            db.upsert("sessions; DROP TABLE sessions", {"id": "x"})


class TestInsertOnce:
    """Tests for insert-or-ignore semantics."""

    def test_message_inserted_once(self, db):
        db.upsert_session("s1", "/p", NOW)
        assert add_message(db, "m1", text="original") is True
        assert add_message(db, "m1", text="changed") is False
        messages = db.get_session_messages("s1")
        assert len(messages) == 1
        assert messages[0].content_text == "original"

    def test_tool_entities_inserted_once(self, db):
        db.upsert_session("s1", "/p", NOW)
        add_message(db, "m1")
        call = ToolCallRow(id="c1", message_uuid="m1", session_id="s1",
                           tool_name="Bash", timestamp=NOW)
        result = ToolResultRow(tool_call_id="c1", message_uuid="m1", session_id="s1",
                               timestamp=NOW, content="ok")
        assert db.insert_tool_call(call) is True
        assert db.insert_tool_call(call) is False
        assert db.insert_tool_result(result) is True
        assert db.insert_tool_result(result) is False
        stats = db.get_stats()
        assert stats.tool_calls == 1
        assert stats.tool_results == 1

    def test_message_requires_session(self, db):
        """Test references are enforced outside of deferred transactions."""
        with pytest.raises(sqlite3.IntegrityError):
            add_message(db, "orphan", session_id="missing")


class TestTransaction:
    """Tests for transaction handling."""

    def test_rollback_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.upsert_session("s1", "/p", NOW)
                raise RuntimeError("boom")
        assert db.get_session("s1") is None

    def test_deferred_check_rejects_orphans(self, db):
        """Test dangling references fail the commit and roll back."""
        with pytest.raises(StorageError):
            with db.transaction(foreign_keys=False):
                db.upsert_session("s1", "/p", NOW)
                add_message(db, "m1", session_id="missing")
        assert db.get_stats().messages == 0
        assert db.get_session("s1") is None

    def test_deferred_check_allows_any_order(self, db):
        with db.transaction(foreign_keys=False):
            add_message(db, "m1")
            db.upsert_session("s1", "/p", NOW)
        assert db.get_stats().messages == 1

    def test_table_check_rejects_new_orphans(self, db):
        with pytest.raises(StorageError):
            with db.transaction(foreign_keys=False, check_tables=("messages",)):
                add_message(db, "m1", session_id="missing")
        assert db.get_stats().messages == 0

    def test_table_check_ignores_existing_rows(self, db):
        """Test only rows written inside the transaction are checked."""
        conn = db._get_connection()
        conn.execute("PRAGMA foreign_keys = OFF")
        add_message(db, "old-orphan", session_id="missing")
        conn.execute("PRAGMA foreign_keys = ON")

        with db.transaction(foreign_keys=False, check_tables=("messages",)):
            db.upsert_session("s1", "/p", NOW)
            add_message(db, "m1")
        assert db.get_stats().messages == 2


class TestSyncState:
    """Tests for per-file sync cursors."""

    def test_set_and_get(self, db):
        assert db.get_sync_state("/t/a.jsonl") is None
        db.set_sync_state("/t/a.jsonl", 100, 2048)
        db.set_sync_state("/t/a.jsonl", 200, 4096)
        state = db.get_sync_state("/t/a.jsonl")
        assert state.last_modified == 200
        assert state.last_byte_offset == 4096

    def test_reset(self, db):
        db.set_sync_state("/t/a.jsonl", 100, 2048)
        db.set_sync_state("/t/b.jsonl", 100, 2048)
        assert db.reset_sync_state() == 2
        assert db.get_sync_state("/t/a.jsonl") is None


class TestQueries:
    """Tests for read queries and statistics."""

    @pytest.fixture
    def populated(self, db):
        db.upsert_session("s1", "/home/user/project-alpha", NOW)
        db.upsert_session("s2", "/home/user/project-beta", NOW + 60_000)
        add_message(db, "m1", "s1", NOW, input_tokens=100, output_tokens=200)
        add_message(db, "m2", "s1", NOW + 1000, type="assistant",
                    input_tokens=150, output_tokens=300,
                    cache_read_tokens=40, cache_creation_tokens=8)
        add_message(db, "m3", "s2", NOW + 60_000)
        for call_id, name, message, session in [
            ("c1", "Read", "m2", "s1"),
            ("c2", "Read", "m2", "s1"),
            ("c3", "Bash", "m2", "s1"),
            ("c4", "Edit", "m3", "s2"),
        ]:
            db.insert_tool_call(ToolCallRow(id=call_id, message_uuid=message,
                                            session_id=session, tool_name=name,
                                            timestamp=NOW))
        return db

    def test_stats(self, populated):
        stats = populated.get_stats()
        assert stats.sessions == 2
        assert stats.messages == 3
        assert stats.tool_calls == 4
        assert stats.tokens.input == 250
        assert stats.tokens.output == 500
        assert stats.tokens.cache_read == 40
        assert stats.tokens.cache_creation == 8

    def test_empty_stats(self, db):
        stats = db.get_stats()
        assert stats.messages == 0
        assert stats.tokens.input == 0

    def test_get_sessions(self, populated):
        """Test sessions come newest first with message and token totals."""
        sessions = populated.get_sessions()
        assert [s.id for s in sessions] == ["s2", "s1"]
        s1 = sessions[1]
        assert s1.message_count == 2
        assert s1.total_tokens == 750

    def test_get_sessions_project_filter(self, populated):
        sessions = populated.get_sessions(project="project-alpha")
        assert [s.id for s in sessions] == ["s1"]

    def test_get_sessions_limit(self, populated):
        assert len(populated.get_sessions(limit=1)) == 1

    def test_project_pattern_escapes_wildcards(self):
        assert project_pattern("my_app%") == "%my\\_app\\%%"

    def test_tool_stats(self, populated):
        stats = populated.get_tool_stats()
        assert [(s.tool_name, s.count, s.percentage) for s in stats] == [
            ("Read", 2, 50.0),
            ("Bash", 1, 25.0),
            ("Edit", 1, 25.0),
        ]
        assert sum(s.percentage for s in stats) == 100.0

    def test_tool_stats_project_filter(self, populated):
        """Test percentages are relative to the filtered total."""
        stats = populated.get_tool_stats(project="project-alpha")
        assert [s.tool_name for s in stats] == ["Read", "Bash"]
        assert stats[0].percentage == pytest.approx(66.7)

    def test_tool_stats_empty(self, db):
        assert db.get_tool_stats() == []


class TestMessagesAround:
    """Tests for context windows."""

    @pytest.fixture
    def conversation(self, db):
        db.upsert_session("s1", "/p", NOW)
        db.upsert_session("s2", "/p", NOW)
        for i in range(5):
            add_message(db, f"m{i}", "s1", NOW + i * 1000, text=f"message {i}")
        add_message(db, "other", "s2", NOW + 1500)
        return db

    def test_window(self, conversation):
        context = conversation.get_messages_around("s1", NOW + 2000, 2)
        assert [m.uuid for m in context.before] == ["m0", "m1"]
        assert [m.uuid for m in context.after] == ["m3", "m4"]

    def test_window_clipped(self, conversation):
        context = conversation.get_messages_around("s1", NOW, 3)
        assert context.before == []
        assert [m.uuid for m in context.after] == ["m1", "m2", "m3"]

    def test_after_last_message(self, conversation):
        context = conversation.get_messages_around("s1", NOW + 9999, 10)
        assert len(context.before) == 5
        assert context.after == []

    def test_zero_count(self, conversation):
        context = conversation.get_messages_around("s1", NOW + 2000, 0)
        assert context.before == [] and context.after == []

    def test_unknown_session(self, conversation):
        context = conversation.get_messages_around("nope", NOW, 2)
        assert context.before == []
        assert context.after == []
