"""Unit tests for approval-gated attachment download."""

from __future__ import annotations

import pytest

from mailvault.attachments import FilesystemBlobStore, content_key
from mailvault.exceptions import InvalidInputError, NotFoundError
from mailvault.models import NewAttachment


def _with_attachment(ingest, from_address: str, blob_key: str = "blobs/k1"):
    msg = ingest(
        from_address=from_address,
        attachments=[
            NewAttachment(filename="report.pdf", content_type="application/pdf", size=3, blob_key=blob_key)
        ],
    )
    return msg


def test_download_from_approved_message(mailbox, ingest, blobs) -> None:
    mailbox.approval.approve("alice@example.com")
    blobs.blobs["blobs/k1"] = b"pdf"
    msg = _with_attachment(ingest, "alice@example.com")
    attachment_id = mailbox.messages.get(msg.id).attachments[0].id

    content = mailbox.attachments.download(attachment_id)

    assert content.content == b"pdf"
    assert content.filename == "report.pdf"
    assert content.content_type == "application/pdf"


def test_pending_message_blocks_download_before_blob_read(mailbox, ingest, blobs) -> None:
    blobs.blobs["blobs/k1"] = b"pdf"
    msg = _with_attachment(ingest, "stranger@example.com")
    with mailbox.db.connect() as conn:
        (attachment_id,) = conn.execute(
            "SELECT id FROM attachments WHERE message_id = ?", (msg.id,)
        ).fetchone()

    with pytest.raises(NotFoundError):
        mailbox.attachments.download(attachment_id)
    assert blobs.reads == []

    mailbox.approval.approve("stranger@example.com")
    assert mailbox.attachments.download(attachment_id).content == b"pdf"


def test_missing_blob_is_not_found(mailbox, ingest) -> None:
    mailbox.approval.approve("alice@example.com")
    msg = _with_attachment(ingest, "alice@example.com", blob_key="gone")
    attachment_id = mailbox.messages.get(msg.id).attachments[0].id

    with pytest.raises(NotFoundError):
        mailbox.attachments.download(attachment_id)


def test_unknown_attachment(mailbox) -> None:
    with pytest.raises(NotFoundError):
        mailbox.attachments.download("missing")


def test_filesystem_blob_store(tmp_path) -> None:
    (tmp_path / "ab").mkdir()
    (tmp_path / "ab" / "cdef").write_bytes(b"data")
    store = FilesystemBlobStore(tmp_path)

    assert store.get("ab/cdef") == b"data"
    assert store.get("ab/missing") is None
    with pytest.raises(InvalidInputError):
        store.get("../outside")


def test_filesystem_blob_store_put(tmp_path) -> None:
    store = FilesystemBlobStore(tmp_path / "blobs")

    store.put("ab/cdef", b"data")

    assert store.get("ab/cdef") == b"data"
    with pytest.raises(InvalidInputError):
        store.put("../outside", b"data")


def test_store_is_content_addressed(mailbox, blobs) -> None:
    key = mailbox.attachments.store(b"hello")

    assert key == content_key(b"hello")
    prefix, digest = key.split("/")
    assert digest.startswith(prefix)
    assert mailbox.attachments.store(b"hello") == key
    assert blobs.blobs == {key: b"hello"}
