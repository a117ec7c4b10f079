"""Message, thread and attachment models.

Rows read from the store are converted into these models at the repository
boundary; the rest of the package never sees raw sqlite rows.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Direction(str, Enum):
    """Message direction enumeration."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class DeliveryStatus(str, Enum):
    """Delivery status of an outbound message."""

    SENT = "sent"
    DELIVERED = "delivered"
    BOUNCED = "bounced"
    COMPLAINED = "complained"


class Thread(BaseModel):
    """A conversation grouping of messages."""

    id: str = Field(description="Thread ID")
    subject: str = Field(default="", description="Subject of the first message")
    last_message_at: int = Field(description="Timestamp (ms) of the newest message")
    message_count: int = Field(default=0, description="Number of messages in the thread")
    created_at: int = Field(description="Creation timestamp (ms)")


class Attachment(BaseModel):
    """Attachment metadata; content lives in the blob store under blob_key."""

    id: str
    message_id: str
    filename: str | None = None
    content_type: str | None = None
    size: int | None = None
    blob_key: str
    created_at: int


class Message(BaseModel):
    """A stored email message."""

    id: str = Field(description="Message ID")
    thread_id: str = Field(description="Owning thread ID")
    message_id: str | None = Field(default=None, description="Provider message identifier")
    in_reply_to: str | None = Field(default=None, description="Provider id this message replies to")
    references: str | None = Field(
        default=None, description="Space-separated References chain of provider ids"
    )

    from_address: str = Field(description="Sender address")
    to: str = Field(default="", description="Recipient addresses")
    cc: str | None = None
    bcc: str | None = None

    subject: str = Field(default="")
    body_text: str | None = None
    body_html: str | None = None
    headers: str | None = Field(default=None, description="Raw serialized header blob")

    direction: Direction
    approved: bool = False
    status: DeliveryStatus | None = None
    archived: bool = False
    created_at: int


class MessageDetail(Message):
    """A message together with its attachments and labels."""

    attachments: list[Attachment] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)


class ThreadDetail(Thread):
    """A thread together with its visible messages, oldest first."""

    messages: list[Message] = Field(default_factory=list)


class PendingMessage(BaseModel):
    """Metadata-only view of a message awaiting sender approval."""

    id: str
    from_address: str
    subject: str
    direction: Direction
    created_at: int


class ApprovedSender(BaseModel):
    """An allow-listed sender."""

    email: str
    name: str | None = None
    created_at: int


class NewAttachment(BaseModel):
    """Attachment metadata supplied at ingestion time."""

    filename: str | None = None
    content_type: str | None = None
    size: int | None = Field(default=None, ge=0)
    blob_key: str


class NewMessage(BaseModel):
    """Input for recording an inbound or outbound message."""

    thread_id: str | None = None
    message_id: str | None = None
    in_reply_to: str | None = None
    references: str | None = None

    from_address: str
    to: str = ""
    cc: str | None = None
    bcc: str | None = None

    subject: str = ""
    body_text: str | None = None
    body_html: str | None = None
    headers: str | None = None

    direction: Direction = Direction.INBOUND
    status: DeliveryStatus | None = None
    attachments: list[NewAttachment] = Field(default_factory=list)


class MessageFilters(BaseModel):
    """Filters for listing messages."""

    limit: int = Field(default=50, ge=1)
    offset: int = Field(default=0, ge=0)
    direction: Direction | None = None
    sender: str | None = None
    label: str | None = None
    include_archived: bool = False
