"""Durable record of every inbound and outbound message.

Every read-facing query here filters on ``approved = 1``. A message that is
missing and a message that is still pending both surface as
``NotFoundError`` so that callers cannot tell pending mail exists.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import structlog

from mailvault.events import MESSAGE_RECEIVED, EventDispatcher, message_event_data, notify
from mailvault.exceptions import InvalidInputError, NotFoundError
from mailvault.models import (
    Attachment,
    DeliveryStatus,
    Direction,
    Message,
    MessageDetail,
    MessageFilters,
    NewMessage,
    PendingMessage,
    Thread,
    ThreadDetail,
)
from mailvault.storage.database import Database
from mailvault.utils import new_id, now_ms, parse_address

if TYPE_CHECKING:
    from mailvault.approval import ApprovalGate

logger = structlog.get_logger()


MESSAGE_COLUMNS = """
    m.id,
    m.thread_id,
    m.message_id,
    m.in_reply_to,
    m.refs,
    m.from_address,
    m.to_address,
    m.cc,
    m.bcc,
    m.subject,
    m.body_text,
    m.body_html,
    m.headers,
    m.direction,
    m.approved,
    m.status,
    m.archived,
    m.created_at
"""

# Statuses a delivery event may still move away from.
_OPEN_STATUSES = (DeliveryStatus.SENT.value,)


def row_to_message(row: sqlite3.Row) -> Message:
    """Convert a row selected with ``MESSAGE_COLUMNS`` into a Message."""

    return Message(
        id=row["id"],
        thread_id=row["thread_id"],
        message_id=row["message_id"],
        in_reply_to=row["in_reply_to"],
        references=row["refs"],
        from_address=row["from_address"],
        to=row["to_address"] or "",
        cc=row["cc"],
        bcc=row["bcc"],
        subject=row["subject"] or "",
        body_text=row["body_text"],
        body_html=row["body_html"],
        headers=row["headers"],
        direction=Direction(row["direction"]),
        approved=bool(row["approved"]),
        status=DeliveryStatus(row["status"]) if row["status"] else None,
        archived=bool(row["archived"]),
        created_at=row["created_at"],
    )


def _row_to_thread(row: sqlite3.Row) -> Thread:
    return Thread(
        id=row["id"],
        subject=row["subject"] or "",
        last_message_at=row["last_message_at"],
        message_count=row["message_count"],
        created_at=row["created_at"],
    )


def _row_to_attachment(row: sqlite3.Row) -> Attachment:
    return Attachment(
        id=row["id"],
        message_id=row["message_id"],
        filename=row["filename"],
        content_type=row["content_type"],
        size=row["size"],
        blob_key=row["blob_key"],
        created_at=row["created_at"],
    )


class MessageStore:
    """Repository for messages, threads, attachments and labels."""

    def __init__(
        self,
        db: Database,
        gate: ApprovalGate,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        """Create a store.

        Args:
            db: Initialized database.
            gate: Approval gate consulted when inbound mail is recorded.
            dispatcher: Optional receiver of ``message.received`` events.
        """

        self._db = db
        self._gate = gate
        self._dispatcher = dispatcher

    # -- writes -----------------------------------------------------------

    def ingest(self, new: NewMessage) -> Message:
        """Record a message, creating or extending its thread.

        The allow-list is read inside the same write transaction that
        inserts the row. ``ApprovalGate.approve`` takes the same write lock,
        so an inbound message is either caught by the bulk approval or
        sees the updated allow-list here.

        Returns:
            The stored message.
        """

        now = now_ms()
        sender = parse_address(new.from_address)
        message_pk = new_id()

        with self._db.connect() as conn, self._db.transaction(conn):
            thread_id = self._resolve_thread(conn, new, now)

            if new.direction is Direction.OUTBOUND:
                approved = True
            else:
                approved = self._gate.is_approved(sender, conn=conn)

            conn.execute(
                """
                INSERT INTO messages (
                    id, thread_id, message_id, in_reply_to, refs,
                    from_address, to_address, cc, bcc,
                    subject, body_text, body_html, headers,
                    direction, approved, status, archived, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    message_pk,
                    thread_id,
                    new.message_id,
                    new.in_reply_to,
                    new.references,
                    sender,
                    new.to,
                    new.cc,
                    new.bcc,
                    new.subject,
                    new.body_text,
                    new.body_html,
                    new.headers,
                    new.direction.value,
                    1 if approved else 0,
                    new.status.value if new.status else None,
                    now,
                ),
            )
            conn.execute(
                """
                UPDATE threads
                SET last_message_at = MAX(last_message_at, ?),
                    message_count = message_count + 1
                WHERE id = ?
                """,
                (now, thread_id),
            )
            if new.attachments:
                conn.executemany(
                    """
                    INSERT INTO attachments (
                        id, message_id, filename, content_type, size, blob_key, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (new_id(), message_pk, a.filename, a.content_type, a.size, a.blob_key, now)
                        for a in new.attachments
                    ],
                )

            row = conn.execute(
                f"SELECT {MESSAGE_COLUMNS} FROM messages m WHERE m.id = ?",
                (message_pk,),
            ).fetchone()

        message = row_to_message(row)
        logger.info(
            "message_ingested",
            id=message.id,
            thread_id=message.thread_id,
            direction=message.direction.value,
            approved=message.approved,
            attachment_count=len(new.attachments),
        )
        if message.direction is Direction.INBOUND:
            notify(self._dispatcher, MESSAGE_RECEIVED, message_event_data(message))
        return message

    def set_approved(self, message_id: str, approved: bool) -> bool:
        """Flip a single message's approval flag directly.

        Returns:
            False if no message has this id.
        """

        with self._db.connect() as conn, self._db.transaction(conn):
            cur = conn.execute(
                "UPDATE messages SET approved = ? WHERE id = ?",
                (1 if approved else 0, message_id),
            )
        logger.info("message_approval_set", id=message_id, approved=approved, found=cur.rowcount > 0)
        return cur.rowcount > 0

    def set_archived(self, message_id: str, archived: bool) -> bool:
        """Archive or unarchive a visible message.

        Returns:
            False if the message is absent (or pending).
        """

        with self._db.connect() as conn, self._db.transaction(conn):
            cur = conn.execute(
                "UPDATE messages SET archived = ? WHERE id = ? AND approved = 1",
                (1 if archived else 0, message_id),
            )
        return cur.rowcount > 0

    def set_status(self, provider_message_id: str, status: DeliveryStatus) -> int:
        """Record a delivery status for an outbound message.

        Status only moves forward: a message that is already delivered,
        bounced or complained keeps that status.

        Returns:
            Number of rows updated (0 or 1).
        """

        placeholders = ", ".join("?" for _ in _OPEN_STATUSES)
        with self._db.connect() as conn, self._db.transaction(conn):
            cur = conn.execute(
                f"""
                UPDATE messages
                SET status = ?
                WHERE message_id = ?
                  AND direction = 'outbound'
                  AND (status IS NULL OR status IN ({placeholders}))
                """,
                (status.value, provider_message_id, *_OPEN_STATUSES),
            )
        logger.info(
            "message_status_updated",
            provider_message_id=provider_message_id,
            status=status.value,
            updated=cur.rowcount,
        )
        return cur.rowcount

    # -- labels -----------------------------------------------------------

    def add_labels(self, message_id: str, labels: list[str]) -> list[str]:
        """Add labels to a visible message; labels already present are ignored.

        Returns:
            The message's full label set, sorted.
        """

        cleaned = [label.strip() for label in labels]
        if not cleaned or any(not label for label in cleaned):
            raise InvalidInputError("Labels must be non-empty strings")

        now = now_ms()
        with self._db.connect() as conn, self._db.transaction(conn):
            self._require_visible(conn, message_id)
            conn.executemany(
                """
                INSERT INTO message_labels (message_id, label, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(message_id, label) DO NOTHING
                """,
                [(message_id, label, now) for label in cleaned],
            )
            return self._labels(conn, message_id)

    def remove_label(self, message_id: str, label: str) -> bool:
        """Remove a label from a visible message.

        Returns:
            True if the label was present.
        """

        with self._db.connect() as conn, self._db.transaction(conn):
            self._require_visible(conn, message_id)
            cur = conn.execute(
                "DELETE FROM message_labels WHERE message_id = ? AND label = ?",
                (message_id, label),
            )
        return cur.rowcount > 0

    # -- reads ------------------------------------------------------------

    def get(self, message_id: str) -> MessageDetail:
        """Fetch a visible message with its attachments and labels."""

        with self._db.connect() as conn:
            message = self._require_visible(conn, message_id)
            attachments = conn.execute(
                """
                SELECT id, message_id, filename, content_type, size, blob_key, created_at
                FROM attachments
                WHERE message_id = ?
                ORDER BY created_at, id
                """,
                (message_id,),
            ).fetchall()
            labels = self._labels(conn, message_id)

        return MessageDetail(
            **message.model_dump(),
            attachments=[_row_to_attachment(r) for r in attachments],
            labels=labels,
        )

    def get_visible(self, message_id: str) -> Message:
        """Fetch a visible message without its attachments and labels."""

        with self._db.connect() as conn:
            return self._require_visible(conn, message_id)

    def list(self, filters: MessageFilters | None = None) -> list[Message]:
        """List visible messages, newest first."""

        filters = filters or MessageFilters()
        clauses = ["m.approved = 1"]
        params: list[object] = []

        if not filters.include_archived:
            clauses.append("m.archived = 0")
        if filters.direction is not None:
            clauses.append("m.direction = ?")
            params.append(filters.direction.value)
        if filters.sender:
            clauses.append("m.from_address = ?")
            params.append(parse_address(filters.sender))
        if filters.label:
            clauses.append("m.id IN (SELECT message_id FROM message_labels WHERE label = ?)")
            params.append(filters.label)

        with self._db.connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {MESSAGE_COLUMNS}
                FROM messages m
                WHERE {" AND ".join(clauses)}
                ORDER BY m.created_at DESC, m.rowid DESC
                LIMIT ? OFFSET ?
                """,
                (*params, filters.limit, filters.offset),
            ).fetchall()

        return [row_to_message(r) for r in rows]

    def list_pending(self, limit: int = 50, offset: int = 0) -> list[PendingMessage]:
        """List messages awaiting sender approval (metadata only, no bodies)."""

        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT id, from_address, subject, direction, created_at
                FROM messages
                WHERE approved = 0
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()

        return [
            PendingMessage(
                id=r["id"],
                from_address=r["from_address"],
                subject=r["subject"] or "",
                direction=Direction(r["direction"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def list_threads(self, limit: int = 50, offset: int = 0) -> list[Thread]:
        """List threads that contain at least one visible message."""

        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT t.id, t.subject, t.last_message_at, t.message_count, t.created_at
                FROM threads t
                WHERE EXISTS (
                    SELECT 1 FROM messages m WHERE m.thread_id = t.id AND m.approved = 1
                )
                ORDER BY t.last_message_at DESC, t.rowid DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()

        return [_row_to_thread(r) for r in rows]

    def get_thread(self, thread_id: str) -> ThreadDetail:
        """Fetch a thread with its visible messages, oldest first."""

        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT id, subject, last_message_at, message_count, created_at
                FROM threads
                WHERE id = ?
                """,
                (thread_id,),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Thread {thread_id} not found")

            rows = conn.execute(
                f"""
                SELECT {MESSAGE_COLUMNS}
                FROM messages m
                WHERE m.thread_id = ? AND m.approved = 1
                ORDER BY m.created_at ASC, m.rowid ASC
                """,
                (thread_id,),
            ).fetchall()

        if not rows:
            raise NotFoundError(f"Thread {thread_id} not found")

        return ThreadDetail(
            **_row_to_thread(row).model_dump(),
            messages=[row_to_message(r) for r in rows],
        )

    def latest_in_thread(self, thread_id: str) -> Message | None:
        """Return the most recently created message in a thread, approved or not."""

        with self._db.connect() as conn:
            row = conn.execute(
                f"""
                SELECT {MESSAGE_COLUMNS}
                FROM messages m
                WHERE m.thread_id = ?
                ORDER BY m.created_at DESC, m.rowid DESC
                LIMIT 1
                """,
                (thread_id,),
            ).fetchone()

        return row_to_message(row) if row is not None else None

    def get_attachment(self, attachment_id: str) -> Attachment:
        """Fetch attachment metadata whose parent message is visible."""

        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT a.id, a.message_id, a.filename, a.content_type, a.size, a.blob_key,
                       a.created_at
                FROM attachments a
                JOIN messages m ON m.id = a.message_id
                WHERE a.id = ? AND m.approved = 1
                """,
                (attachment_id,),
            ).fetchone()

        if row is None:
            raise NotFoundError(f"Attachment {attachment_id} not found")
        return _row_to_attachment(row)

    # -- helpers ----------------------------------------------------------

    def _require_visible(self, conn: sqlite3.Connection, message_id: str) -> Message:
        row = conn.execute(
            f"SELECT {MESSAGE_COLUMNS} FROM messages m WHERE m.id = ? AND m.approved = 1",
            (message_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Message {message_id} not found")
        return row_to_message(row)

    def _labels(self, conn: sqlite3.Connection, message_id: str) -> list[str]:
        rows = conn.execute(
            "SELECT label FROM message_labels WHERE message_id = ? ORDER BY label",
            (message_id,),
        ).fetchall()
        return [r["label"] for r in rows]

    def _resolve_thread(self, conn: sqlite3.Connection, new: NewMessage, now: int) -> str:
        if new.thread_id:
            row = conn.execute("SELECT id FROM threads WHERE id = ?", (new.thread_id,)).fetchone()
            if row is not None:
                return row["id"]
            return self._create_thread(conn, new.thread_id, new.subject, now)

        if new.in_reply_to:
            row = conn.execute(
                """
                SELECT thread_id FROM messages
                WHERE message_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (new.in_reply_to,),
            ).fetchone()
            if row is not None:
                return row["thread_id"]

        return self._create_thread(conn, new_id(), new.subject, now)

    def _create_thread(self, conn: sqlite3.Connection, thread_id: str, subject: str, now: int) -> str:
        conn.execute(
            """
            INSERT INTO threads (id, subject, last_message_at, message_count, created_at)
            VALUES (?, ?, ?, 0, ?)
            """,
            (thread_id, subject, now, now),
        )
        logger.info("thread_created", thread_id=thread_id)
        return thread_id
