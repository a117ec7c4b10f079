"""SQLite database holding the mailbox relations and the message search index.

The full-text index (``messages_fts``) is maintained by triggers, so it is
updated inside the same transaction as the row it mirrors and can never lag
a committed message.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from mailvault.exceptions import ConfigurationError

logger = structlog.get_logger()


_SCHEMA_VERSION = 1


class Database:
    """Connection factory and schema owner for the mailbox store."""

    def __init__(self, db_path: Path) -> None:
        """Create a database handle.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = Path(db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    def initialize(self) -> None:
        """Create the schema, or check that an existing one is supported."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                with self.transaction(conn):
                    self._create_schema_v1(conn)
                    self._set_schema_version(conn, _SCHEMA_VERSION)
                logger.info("mailbox_schema_created", version=_SCHEMA_VERSION)
                return

            if current_version != _SCHEMA_VERSION:
                raise ConfigurationError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection in autocommit mode; use ``transaction`` for writes."""

        conn = sqlite3.connect(self._db_path, isolation_level=None)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        """Run a block as one write transaction.

        ``BEGIN IMMEDIATE`` takes the write lock up front, so two writers
        never interleave their reads and writes.
        """

        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?)",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        # executescript() would commit the open transaction, so run statements one by one.
        for statement in _SCHEMA_V1:
            conn.execute(statement)


_SCHEMA_V1 = (
    """
    CREATE TABLE IF NOT EXISTS threads (
        id TEXT PRIMARY KEY,
        subject TEXT NOT NULL DEFAULT '',
        last_message_at INTEGER NOT NULL,
        message_count INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_threads_last_message_at
        ON threads(last_message_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        thread_id TEXT NOT NULL REFERENCES threads(id),
        message_id TEXT,
        in_reply_to TEXT,
        refs TEXT,
        from_address TEXT NOT NULL,
        to_address TEXT NOT NULL DEFAULT '',
        cc TEXT,
        bcc TEXT,
        subject TEXT NOT NULL DEFAULT '',
        body_text TEXT,
        body_html TEXT,
        headers TEXT,
        direction TEXT NOT NULL CHECK (direction IN ('inbound', 'outbound')),
        approved INTEGER NOT NULL DEFAULT 0,
        status TEXT,
        archived INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_messages_message_id ON messages(message_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_from ON messages(from_address, approved)",
    "CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_messages_archived ON messages(archived)",
    """
    CREATE TABLE IF NOT EXISTS attachments (
        id TEXT PRIMARY KEY,
        message_id TEXT NOT NULL REFERENCES messages(id),
        filename TEXT,
        content_type TEXT,
        size INTEGER,
        blob_key TEXT NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_attachments_message ON attachments(message_id)",
    """
    CREATE TABLE IF NOT EXISTS approved_senders (
        email TEXT PRIMARY KEY,
        name TEXT,
        created_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS message_labels (
        message_id TEXT NOT NULL REFERENCES messages(id),
        label TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        PRIMARY KEY (message_id, label)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_message_labels_label ON message_labels(label)",
    """
    CREATE TABLE IF NOT EXISTS drafts (
        id TEXT PRIMARY KEY,
        thread_id TEXT,
        to_address TEXT,
        cc TEXT,
        bcc TEXT,
        subject TEXT NOT NULL DEFAULT '',
        body_text TEXT NOT NULL DEFAULT '',
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
        message_id UNINDEXED,
        subject,
        body_text
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_fts_insert
    AFTER INSERT ON messages
    BEGIN
        INSERT INTO messages_fts(message_id, subject, body_text)
        VALUES (new.id, new.subject, new.body_text);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_fts_delete
    AFTER DELETE ON messages
    BEGIN
        DELETE FROM messages_fts WHERE message_id = old.id;
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_fts_update
    AFTER UPDATE OF subject, body_text ON messages
    BEGIN
        DELETE FROM messages_fts WHERE message_id = old.id;
        INSERT INTO messages_fts(message_id, subject, body_text)
        VALUES (new.id, new.subject, new.body_text);
    END
    """,
)
