"""Full-text message search with a substring fallback.

The primary path runs an FTS5 ``MATCH`` over subject and body and orders by
bm25 relevance. FTS5 has its own query language, so user input such as
``foo(`` or ``"unterminated`` is rejected by the index. Only that kind of
failure degrades to the ``LIKE`` scan; any other database error propagates.
Both paths apply the same approval and archival filters.
"""

from __future__ import annotations

import sqlite3

import structlog

from mailvault.exceptions import InvalidInputError, UpstreamError
from mailvault.models import Message
from mailvault.storage.database import Database
from mailvault.storage.messages import MESSAGE_COLUMNS, row_to_message
from mailvault.utils import escape_like

logger = structlog.get_logger()


# Error text SQLite produces for queries the FTS5 parser rejects.
_FTS_SYNTAX_MARKERS = (
    "fts5: syntax error",
    "unterminated string",
    "no such column",
    "unknown special query",
    "malformed match expression",
)


class QuerySyntaxError(Exception):
    """The index rejected the query text itself."""


def is_fts_syntax_error(exc: sqlite3.Error) -> bool:
    """Tell a malformed FTS5 query apart from an infrastructure failure."""

    if not isinstance(exc, sqlite3.OperationalError):
        return False
    text = str(exc).lower()
    return any(marker in text for marker in _FTS_SYNTAX_MARKERS)


class SearchEngine:
    """Searches visible messages by subject and body text."""

    def __init__(self, db: Database, default_limit: int = 20) -> None:
        self._db = db
        self._default_limit = default_limit

    def search(
        self,
        query: str,
        limit: int | None = None,
        include_archived: bool = False,
    ) -> list[Message]:
        """Search approved messages.

        Args:
            query: FTS5 query text. Malformed queries fall back to a
                case-insensitive substring match ordered newest first.
            limit: Max results (defaults to the engine's default limit).
            include_archived: Whether archived messages may match.

        Returns:
            Matching messages.

        Raises:
            InvalidInputError: If the query is empty or the limit is not positive.
            UpstreamError: If the database fails for any reason other than
                query syntax.
        """

        if not query or not query.strip():
            raise InvalidInputError("Search query must not be empty")
        resolved_limit = self._default_limit if limit is None else limit
        if resolved_limit < 1:
            raise InvalidInputError("Search limit must be positive")

        try:
            try:
                return self._fulltext(query, resolved_limit, include_archived)
            except QuerySyntaxError as exc:
                logger.info("search_fallback", query=query, reason=str(exc))
                return self._substring(query, resolved_limit, include_archived)
        except sqlite3.Error as exc:
            logger.exception("search_failed", query=query, error=str(exc))
            raise UpstreamError(str(exc)) from exc

    def _fulltext(self, query: str, limit: int, include_archived: bool) -> list[Message]:
        archived_filter = "" if include_archived else "AND m.archived = 0"
        with self._db.connect() as conn:
            try:
                rows = conn.execute(
                    f"""
                    SELECT {MESSAGE_COLUMNS}
                    FROM messages_fts
                    JOIN messages m ON m.id = messages_fts.message_id
                    WHERE messages_fts MATCH ?
                      AND m.approved = 1
                      {archived_filter}
                    ORDER BY bm25(messages_fts)
                    LIMIT ?
                    """,
                    (query, limit),
                ).fetchall()
            except sqlite3.OperationalError as exc:
                if is_fts_syntax_error(exc):
                    raise QuerySyntaxError(str(exc)) from exc
                raise

        return [row_to_message(r) for r in rows]

    def _substring(self, query: str, limit: int, include_archived: bool) -> list[Message]:
        pattern = f"%{escape_like(query)}%"
        archived_filter = "" if include_archived else "AND m.archived = 0"
        with self._db.connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {MESSAGE_COLUMNS}
                FROM messages m
                WHERE m.approved = 1
                  {archived_filter}
                  AND (
                      m.subject LIKE ? ESCAPE '\\'
                      OR m.body_text LIKE ? ESCAPE '\\'
                  )
                ORDER BY m.created_at DESC, m.rowid DESC
                LIMIT ?
                """,
                (pattern, pattern, limit),
            ).fetchall()

        return [row_to_message(r) for r in rows]
