"""Sender allow-list and message visibility gate.

Inbound mail from a sender that is not on the allow-list is stored with
``approved = 0`` and stays invisible to every read path until the sender is
approved (or the message is approved directly).
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

import structlog

from mailvault.exceptions import InvalidInputError
from mailvault.models import ApprovedSender
from mailvault.storage.database import Database
from mailvault.utils import normalize_email, now_ms

logger = structlog.get_logger()


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of approving a sender."""

    email: str
    approved_count: int


class ApprovalGate:
    """Maintains approved senders and retroactively releases their messages."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def approve(self, email: str, name: str | None = None) -> ApprovalResult:
        """Allow-list a sender and approve their pending messages.

        The upsert and the bulk update commit together. Re-approving a
        sender only replaces the stored name.

        Args:
            email: Sender address; normalized to lowercase.
            name: Optional display name.

        Returns:
            The normalized email and the number of messages newly approved.
        """

        normalized = normalize_email(email)
        if not normalized:
            raise InvalidInputError("Sender email must not be empty")

        with self._db.connect() as conn, self._db.transaction(conn):
            conn.execute(
                """
                INSERT INTO approved_senders (email, name, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(email) DO UPDATE SET name = excluded.name
                """,
                (normalized, name, now_ms()),
            )
            cur = conn.execute(
                "UPDATE messages SET approved = 1 WHERE from_address = ? AND approved = 0",
                (normalized,),
            )
            approved_count = cur.rowcount

        logger.info("sender_approved", email=normalized, approved_count=approved_count)
        return ApprovalResult(email=normalized, approved_count=approved_count)

    def revoke(self, email: str) -> bool:
        """Remove a sender from the allow-list.

        Messages that were already approved stay approved; only mail that
        arrives afterwards starts out pending again.

        Returns:
            True if the sender was on the allow-list.
        """

        normalized = normalize_email(email)
        with self._db.connect() as conn, self._db.transaction(conn):
            cur = conn.execute("DELETE FROM approved_senders WHERE email = ?", (normalized,))

        logger.info("sender_revoked", email=normalized, found=cur.rowcount > 0)
        return cur.rowcount > 0

    def is_approved(self, email: str, *, conn: sqlite3.Connection | None = None) -> bool:
        """Check allow-list membership.

        Pass ``conn`` to read within a caller's open transaction.
        """

        normalized = normalize_email(email)
        if conn is not None:
            return self._lookup(conn, normalized)
        with self._db.connect() as own_conn:
            return self._lookup(own_conn, normalized)

    def list_senders(self) -> list[ApprovedSender]:
        """List approved senders, most recently added first."""

        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT email, name, created_at
                FROM approved_senders
                ORDER BY created_at DESC, rowid DESC
                """
            ).fetchall()

        return [
            ApprovedSender(email=r["email"], name=r["name"], created_at=r["created_at"])
            for r in rows
        ]

    def _lookup(self, conn: sqlite3.Connection, email: str) -> bool:
        row = conn.execute("SELECT 1 FROM approved_senders WHERE email = ?", (email,)).fetchone()
        return row is not None
