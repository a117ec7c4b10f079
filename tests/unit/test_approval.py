"""Unit tests for the sender approval gate."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from mailvault.exceptions import InvalidInputError, NotFoundError
from mailvault.models import NewMessage


def test_approve_releases_pending_messages(mailbox, ingest) -> None:
    m1 = ingest()
    m2 = ingest()
    other = ingest(from_address="bob@example.com")

    result = mailbox.approval.approve("Alice@Example.com", name="Alice")

    assert result.email == "alice@example.com"
    assert result.approved_count == 2
    assert mailbox.messages.get(m1.id).approved is True
    assert mailbox.messages.get(m2.id).approved is True
    with pytest.raises(NotFoundError):
        mailbox.messages.get(other.id)


def test_approve_is_idempotent_and_keeps_last_name(mailbox, ingest) -> None:
    ingest()

    first = mailbox.approval.approve("alice@example.com", name="Alice")
    second = mailbox.approval.approve("alice@example.com", name="Alice S.")

    assert first.approved_count == 1
    assert second.approved_count == 0
    senders = mailbox.approval.list_senders()
    assert [(s.email, s.name) for s in senders] == [("alice@example.com", "Alice S.")]


def test_approve_rejects_blank_email(mailbox) -> None:
    with pytest.raises(InvalidInputError):
        mailbox.approval.approve("   ")


def test_revoke_is_not_retroactive(mailbox, ingest) -> None:
    mailbox.approval.approve("alice@example.com")
    before = ingest()

    assert mailbox.approval.revoke("ALICE@example.com") is True
    after = ingest()

    assert mailbox.messages.get(before.id).approved is True
    assert after.approved is False
    assert mailbox.approval.is_approved("alice@example.com") is False
    assert mailbox.approval.revoke("alice@example.com") is False


def test_is_approved_is_case_insensitive(mailbox) -> None:
    mailbox.approval.approve("alice@example.com")

    assert mailbox.approval.is_approved("ALICE@EXAMPLE.COM") is True
    assert mailbox.approval.is_approved("bob@example.com") is False


def test_list_senders_newest_first(mailbox) -> None:
    mailbox.approval.approve("a@example.com")
    mailbox.approval.approve("b@example.com")

    assert [s.email for s in mailbox.approval.list_senders()] == ["b@example.com", "a@example.com"]


def test_concurrent_ingestion_ends_consistent_with_allow_list(mailbox) -> None:
    def _ingest(i: int) -> str:
        msg = mailbox.messages.ingest(
            NewMessage(from_address="racer@example.com", subject=f"m{i}", body_text="x")
        )
        return msg.id

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [pool.submit(_ingest, i) for i in range(20)]
        approve_future = pool.submit(mailbox.approval.approve, "racer@example.com")
        ids = [f.result() for f in futures]
        approve_future.result()

    assert mailbox.messages.list_pending() == []
    for message_id in ids:
        assert mailbox.messages.get(message_id).approved is True
