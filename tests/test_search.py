"""Tests for search functionality."""

import pytest

from ccrecall.exceptions import InvalidQueryError
from ccrecall.index.database import MessageRow
from ccrecall.index.search import (
    MessageSearch,
    build_fts_query,
    literal_query,
    split_snippet,
)

NOW = 1_700_000_000_000


class TestBuildFtsQuery:
    """Tests for free-text to FTS5 translation."""

    def test_plain_terms(self):
        assert build_fts_query("sqlite migration") == "sqlite migration"

    def test_prefix(self):
        assert build_fts_query("auth*") == "auth*"

    def test_phrase_passes_through(self):
        assert build_fts_query('"authentication bug"') == '"authentication bug"'

    def test_punctuation_is_quoted(self):
        """Test characters with FTS5 meaning are neutralized."""
        assert build_fts_query("meeting-notes.txt") == '"meeting-notes.txt"'
        assert build_fts_query("don't") == '"don\'t"'
        assert build_fts_query("foo:bar") == '"foo:bar"'

    def test_prefix_on_punctuated_term(self):
        assert build_fts_query("Downloads/*") == '"Downloads/"*'

    def test_operators_are_quoted(self):
        assert build_fts_query("cats AND dogs") == 'cats "AND" dogs'
        assert build_fts_query("NOT") == '"NOT"'

    def test_lowercase_operator_words_pass(self):
        assert build_fts_query("and or") == "and or"

    def test_embedded_quote_doubled(self):
        assert build_fts_query('say"hi') == '"say""hi"'

    @pytest.mark.parametrize("query", ["", "   ", "***", "(((", '""', "- + ^"])
    def test_nothing_searchable(self, query):
        assert build_fts_query(query) is None

    def test_literal_query(self):
        assert literal_query('a "b" c') == '"a ""b"" c"'
        assert literal_query("!!!") is None


class TestSplitSnippet:
    """Tests for snippet marker parsing."""

    def test_markers(self):
        assert split_snippet("fix the >>>login<<< bug") == [
            ("fix the ", False),
            ("login", True),
            (" bug", False),
        ]

    def test_no_markers(self):
        assert split_snippet("plain") == [("plain", False)]

    def test_unclosed_marker(self):
        assert split_snippet("a >>>b") == [("a >>>b", False)]


class TestMessageSearch:
    """Tests for ranked search over stored messages."""

    @pytest.fixture
    def search(self, db):
        db.upsert_session("s1", "/home/user/project-alpha", NOW)
        db.upsert_session("s2", "/home/user/project-beta", NOW)
        rows = [
            ("m1", "s1", NOW, "Found a bug in the authentication flow", None),
            ("m2", "s1", NOW + 1000, "Saved it to ~/Downloads/report.pdf", None),
            ("m3", "s1", NOW + 2000, "Updated meeting-notes.txt with the plan", None),
            ("m4", "s2", NOW + 3000, "I don't think that works", None),
            ("m5", "s2", NOW + 4000, "Implemented a sorting algorithm here", None),
            ("m6", "s2", NOW + 5000, "Let me check the tests", "a sorting algorithm is needed"),
            ("m7", "s2", NOW + 6000, "Authorization headers are missing", None),
        ]
        for uuid, session_id, ts, text, thinking in rows:
            db.insert_message(MessageRow(
                uuid=uuid, session_id=session_id, type="assistant", timestamp=ts,
                content_text=text, thinking=thinking,
            ))
        return MessageSearch(db)

    def test_simple_match(self, search):
        results = search.search("authentication")
        assert [r.uuid for r in results] == ["m1"]
        assert results[0].project_path == "/home/user/project-alpha"
        assert ">>>authentication<<<" in results[0].snippet

    def test_phrase(self, search):
        assert [r.uuid for r in search.search('"authentication flow"')] == ["m1"]
        assert search.search('"flow authentication"') == []

    def test_prefix(self, search):
        uuids = {r.uuid for r in search.search("auth*")}
        assert uuids == {"m1", "m7"}

    def test_path_prefix(self, search):
        assert [r.uuid for r in search.search("Downloads/*")] == ["m2"]

    def test_filename(self, search):
        assert [r.uuid for r in search.search("meeting-notes.txt")] == ["m3"]

    def test_apostrophe(self, search):
        assert [r.uuid for r in search.search("don't")] == ["m4"]

    def test_unbalanced_quote_does_not_raise(self, search):
        assert isinstance(search.search('"sorting'), list)

    def test_nothing_searchable(self, search):
        assert search.search("((( ***") == []

    def test_content_outranks_thinking(self, search):
        """Test matches in message text rank above matches in thinking."""
        results = search.search("sorting algorithm")
        assert [r.uuid for r in results] == ["m5", "m6"]
        assert results[0].relevance < results[1].relevance

    def test_sort_by_time(self, search):
        newest = search.search("sorting algorithm", sort="time")
        oldest = search.search("sorting algorithm", sort="time-asc")
        assert [r.uuid for r in newest] == ["m6", "m5"]
        assert [r.uuid for r in oldest] == ["m5", "m6"]

    def test_unknown_sort(self, search):
        with pytest.raises(InvalidQueryError):
            search.search("bug", sort="random")

    def test_project_filter(self, search):
        assert search.search("authentication OR sorting", project="alpha") == []
        results = search.search("sorting", project="project-beta")
        assert {r.session_id for r in results} == {"s2"}

    def test_limit(self, search):
        assert len(search.search("sorting", limit=1)) == 1
        assert search.search("sorting", limit=0) == []

    def test_context(self, search):
        result = search.search("meeting-notes.txt")[0]
        context = search.context(result, 1)
        assert [m.uuid for m in context.before] == ["m2"]
        assert context.after == []

    def test_rebuild_index(self, db, search):
        """Test a rebuild leaves the index consistent with stored messages."""
        search.rebuild_index()
        assert [r.uuid for r in search.search("authentication")] == ["m1"]

    def test_new_messages_are_searchable(self, db, search):
        db.insert_message(MessageRow(
            uuid="m8", session_id="s1", type="user", timestamp=NOW + 7000,
            content_text="Please add pagination",
        ))
        assert [r.uuid for r in search.search("pagination")] == ["m8"]
