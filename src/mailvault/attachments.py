"""Approval-gated attachment access.

Attachment bytes live in an external content-addressed blob store; the
database only holds the key. On download the blob store is consulted after
the parent message has been checked for visibility. Outbound mail stores
inline attachment content here before it is handed to the transport.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog
from pydantic import BaseModel

from mailvault.exceptions import InvalidInputError, MailVaultError, NotFoundError, UpstreamError
from mailvault.models import Attachment
from mailvault.storage import MessageStore

logger = structlog.get_logger()


@runtime_checkable
class BlobStore(Protocol):
    """External blob storage keyed by an opaque locator."""

    def get(self, key: str) -> bytes | None:
        """Return the stored bytes, or None when the key is unknown."""
        ...

    def put(self, key: str, data: bytes) -> None:
        """Store bytes under a key, replacing any previous content."""
        ...


def content_key(data: bytes) -> str:
    """Content-addressed blob key: identical bytes share one blob."""

    digest = hashlib.sha256(data).hexdigest()
    return f"{digest[:2]}/{digest}"


class FilesystemBlobStore:
    """Blob store backed by a directory; keys are relative paths below it."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).resolve()

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise InvalidInputError(f"Blob key escapes the store root: {key}")
        return path


class AttachmentContent(BaseModel):
    """Attachment metadata with its bytes."""

    attachment: Attachment
    content: bytes

    @property
    def content_type(self) -> str:
        return self.attachment.content_type or "application/octet-stream"

    @property
    def filename(self) -> str:
        return self.attachment.filename or "attachment"


class AttachmentService:
    """Serves attachment content for visible messages only."""

    def __init__(self, store: MessageStore, blobs: BlobStore) -> None:
        self._store = store
        self._blobs = blobs

    def download(self, attachment_id: str) -> AttachmentContent:
        """Fetch an attachment's bytes.

        Raises:
            NotFoundError: If the attachment is unknown, its message is
                pending, or the blob store has no data for it.
            UpstreamError: If the blob store fails.
        """

        attachment = self._store.get_attachment(attachment_id)

        try:
            content = self._blobs.get(attachment.blob_key)
        except MailVaultError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("blob_fetch_failed", attachment_id=attachment_id, error=str(exc))
            raise UpstreamError(str(exc)) from exc

        if content is None:
            logger.warning("blob_missing", attachment_id=attachment_id, blob_key=attachment.blob_key)
            raise NotFoundError(f"Attachment data for {attachment_id} not found")

        return AttachmentContent(attachment=attachment, content=content)

    def store(self, content: bytes) -> str:
        """Write content to the blob store and return its key.

        Raises:
            UpstreamError: If the blob store fails.
        """

        key = content_key(content)
        try:
            self._blobs.put(key, content)
        except MailVaultError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("blob_store_failed", blob_key=key, error=str(exc))
            raise UpstreamError(str(exc)) from exc

        logger.debug("blob_stored", blob_key=key, size=len(content))
        return key
