"""Full-text search over indexed messages.

Query syntax accepted by :func:`build_fts_query`:

    sqlite migration        both terms required
    "authentication bug"    adjacent terms (phrase)
    auth*                   prefix match
    Downloads/*             prefix match on a term with punctuation
    meeting-notes.txt       literal text; punctuation never acts as an operator
"""

import logging
import re
import sqlite3
from typing import Optional

from ..exceptions import InvalidQueryError
from .database import (
    SNIPPET_END,
    SNIPPET_START,
    SORT_ORDERS,
    MessageContext,
    SearchResult,
    SessionDatabase,
)

logger = logging.getLogger(__name__)

FTS_OPERATORS = frozenset({"AND", "OR", "NOT", "NEAR"})

_TOKEN = re.compile(r'"[^"]*"\*?|\S+')
_PHRASE = re.compile(r'^"([^"]*)"\*?$')
_BAREWORD = re.compile(r"^\w+$")
_WORD_CHAR = re.compile(r"\w")


def quote_term(text: str) -> str:
    """Wrap text in double quotes so FTS5 reads it as a literal phrase."""
    return '"' + text.replace('"', '""') + '"'


def build_fts_query(query: str) -> Optional[str]:
    """Translate free text into a safe FTS5 MATCH expression.

    Quoted phrases and a trailing ``*`` keep their FTS5 meaning. Every other
    term is passed through only if it is a plain word; anything containing
    punctuation (``. / - : ( ) ^ + '`` and the rest) or spelling an operator
    keyword is quoted. Terms are joined with spaces, so all are required.

    Returns None when the query has nothing searchable in it.
    """
    terms = []
    for token in _TOKEN.findall(query or ""):
        phrase = _PHRASE.match(token)
        if phrase:
            if _WORD_CHAR.search(phrase.group(1)):
                terms.append(token)
            continue

        is_prefix = token.endswith("*")
        base = token.rstrip("*")
        if not _WORD_CHAR.search(base):
            continue
        if _BAREWORD.match(base) and base not in FTS_OPERATORS:
            term = base
        else:
            term = quote_term(base)
        terms.append(term + "*" if is_prefix else term)

    if not terms:
        return None
    return " ".join(terms)


def literal_query(query: str) -> Optional[str]:
    """The whole query as one quoted phrase."""
    cleaned = (query or "").strip()
    if not _WORD_CHAR.search(cleaned):
        return None
    return quote_term(cleaned)


def split_snippet(snippet: str) -> list[tuple[str, bool]]:
    """Split a snippet into ``(text, is_match)`` segments using its markers."""
    segments = []
    rest = snippet
    while rest:
        start = rest.find(SNIPPET_START)
        if start == -1:
            segments.append((rest, False))
            break
        end = rest.find(SNIPPET_END, start + len(SNIPPET_START))
        if end == -1:
            segments.append((rest, False))
            break
        if start:
            segments.append((rest[:start], False))
        segments.append((rest[start + len(SNIPPET_START):end], True))
        rest = rest[end + len(SNIPPET_END):]
    return segments


class MessageSearch:
    """Ranked search, context windows and index maintenance on a SessionDatabase."""

    def __init__(self, db: SessionDatabase):
        self._db = db

    def search(
        self,
        query: str,
        *,
        project: Optional[str] = None,
        limit: int = 20,
        sort: str = "relevance",
    ) -> list[SearchResult]:
        """Search message content and thinking text.

        Args:
            query: free text, see module docstring for syntax
            project: only sessions whose project path contains this string
            limit: maximum number of results
            sort: "relevance" (bm25, best first), "time" (newest first) or
                "time-asc" (oldest first)

        Returns:
            Results with ``>>>``/``<<<`` delimited snippets; empty when nothing matches.
        """
        if sort not in SORT_ORDERS:
            raise InvalidQueryError(
                f"Unknown sort order: {sort}",
                hint=f"Use one of: {', '.join(SORT_ORDERS)}",
            )
        if limit <= 0:
            return []

        fts_query = build_fts_query(query)
        if fts_query is None:
            return []

        try:
            return self._db.search_messages(fts_query, project=project, limit=limit, sort=sort)
        except sqlite3.OperationalError as e:
            logger.warning(f"FTS query {fts_query!r} rejected ({e}), retrying as literal text")

        fallback = literal_query(query)
        if fallback is None:
            return []
        try:
            return self._db.search_messages(fallback, project=project, limit=limit, sort=sort)
        except sqlite3.OperationalError as e:
            raise InvalidQueryError(f"Cannot search for {query!r}: {e}") from e

    def context(self, result: SearchResult, count: int = 3) -> MessageContext:
        """Messages surrounding a search hit in its own session."""
        return self._db.get_messages_around(result.session_id, result.timestamp, count)

    def rebuild_index(self) -> None:
        self._db.rebuild_fts()
