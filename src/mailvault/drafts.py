"""Draft lifecycle: create, edit, send or delete.

A draft is open until it is sent or deleted; both remove the row. Sending
records the outbound message first and deletes the draft afterwards, so a
failed send never loses the draft. A crash between the two steps can leave
a stale draft next to the sent message; re-sending it is up to the caller.
"""

from __future__ import annotations

import sqlite3

import structlog

from mailvault.exceptions import ConfigurationError, NoRecipientError, NotFoundError
from mailvault.linker import ThreadLink, ThreadLinker
from mailvault.models import Draft, DraftParams, Message
from mailvault.outbound import OutboundMailer
from mailvault.storage.database import Database
from mailvault.utils import new_id, now_ms

logger = structlog.get_logger()


_DRAFT_COLUMNS = {
    "to": "to_address",
    "cc": "cc",
    "bcc": "bcc",
    "subject": "subject",
    "body_text": "body_text",
    "thread_id": "thread_id",
}


def _row_to_draft(row: sqlite3.Row) -> Draft:
    return Draft(
        id=row["id"],
        thread_id=row["thread_id"],
        to=row["to_address"],
        cc=row["cc"],
        bcc=row["bcc"],
        subject=row["subject"],
        body_text=row["body_text"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DraftManager:
    """CRUD over drafts plus the draft-to-message send transition."""

    def __init__(
        self,
        db: Database,
        linker: ThreadLinker,
        mailer: OutboundMailer | None = None,
    ) -> None:
        self._db = db
        self._linker = linker
        self._mailer = mailer

    def create(self, params: DraftParams | None = None) -> Draft:
        """Create a draft; every field is optional.

        Subject and body default to empty strings, everything else to None.
        """

        params = params or DraftParams()
        now = now_ms()
        draft = Draft(
            id=new_id(),
            thread_id=params.thread_id,
            to=params.to,
            cc=params.cc,
            bcc=params.bcc,
            subject=params.subject or "",
            body_text=params.body_text or "",
            created_at=now,
            updated_at=now,
        )

        with self._db.connect() as conn, self._db.transaction(conn):
            conn.execute(
                """
                INSERT INTO drafts (
                    id, thread_id, to_address, cc, bcc, subject, body_text, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    draft.id,
                    draft.thread_id,
                    draft.to,
                    draft.cc,
                    draft.bcc,
                    draft.subject,
                    draft.body_text,
                    draft.created_at,
                    draft.updated_at,
                ),
            )

        logger.info("draft_created", id=draft.id, thread_id=draft.thread_id)
        return draft

    def get(self, draft_id: str) -> Draft:
        with self._db.connect() as conn:
            return self._require(conn, draft_id)

    def list(self, limit: int = 50, offset: int = 0) -> list[Draft]:
        """List drafts, most recently edited first."""

        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT id, thread_id, to_address, cc, bcc, subject, body_text, created_at, updated_at
                FROM drafts
                ORDER BY updated_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()

        return [_row_to_draft(r) for r in rows]

    def update(self, draft_id: str, params: DraftParams) -> Draft:
        """Apply the fields the caller set; omitted fields are left as they are.

        ``updated_at`` is refreshed even when no field is set.
        """

        changes = params.model_dump(exclude_unset=True)
        # Subject and body are NOT NULL; an explicit None clears them to "".
        for field in ("subject", "body_text"):
            if field in changes and changes[field] is None:
                changes[field] = ""

        assignments = ["updated_at = ?"]
        values: list[object] = [now_ms()]
        for field, value in changes.items():
            assignments.append(f"{_DRAFT_COLUMNS[field]} = ?")
            values.append(value)

        with self._db.connect() as conn, self._db.transaction(conn):
            self._require(conn, draft_id)
            conn.execute(
                f"UPDATE drafts SET {', '.join(assignments)} WHERE id = ?",
                (*values, draft_id),
            )
            draft = self._require(conn, draft_id)

        logger.info("draft_updated", id=draft_id, fields=sorted(changes))
        return draft

    async def send(self, draft_id: str) -> Message:
        """Send a draft and delete it.

        Raises:
            NotFoundError: If the draft does not exist.
            NoRecipientError: If the draft has no recipient; the draft is kept.
            UpstreamError: If the transport fails; the draft is kept.
        """

        draft = self.get(draft_id)
        if not draft.to or not draft.to.strip():
            raise NoRecipientError("Draft has no recipient")
        if self._mailer is None:
            raise ConfigurationError("No mail sender configured")

        link = self._linker.link(draft.thread_id) if draft.thread_id else ThreadLink()

        message = await self._mailer.send(
            to=draft.to,
            cc=draft.cc,
            bcc=draft.bcc,
            subject=draft.subject,
            body=draft.body_text,
            thread_id=draft.thread_id,
            in_reply_to=link.in_reply_to,
            references=link.references,
        )

        with self._db.connect() as conn, self._db.transaction(conn):
            conn.execute("DELETE FROM drafts WHERE id = ?", (draft_id,))

        logger.info("draft_sent", id=draft_id, message_id=message.id, thread_id=message.thread_id)
        return message

    def delete(self, draft_id: str) -> None:
        """Delete a draft.

        Raises:
            NotFoundError: If the draft is already gone.
        """

        with self._db.connect() as conn, self._db.transaction(conn):
            cur = conn.execute("DELETE FROM drafts WHERE id = ?", (draft_id,))
        if cur.rowcount == 0:
            raise NotFoundError(f"Draft {draft_id} not found")
        logger.info("draft_deleted", id=draft_id)

    def _require(self, conn: sqlite3.Connection, draft_id: str) -> Draft:
        row = conn.execute(
            """
            SELECT id, thread_id, to_address, cc, bcc, subject, body_text, created_at, updated_at
            FROM drafts
            WHERE id = ?
            """,
            (draft_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Draft {draft_id} not found")
        return _row_to_draft(row)
