"""Contract for the external mail transport.

MailVault never talks SMTP itself. A ``MailSender`` hands the message to a
provider and returns the identifier the provider assigned, which is later
used for threading and for correlating delivery-status webhooks.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from mailvault.models import DeliveryStatus


class EmailAttachment(BaseModel):
    """A file carried by an outbound email."""

    filename: str
    content_type: str = "application/octet-stream"
    content: bytes


class OutgoingEmail(BaseModel):
    """A fully resolved outbound email handed to the transport."""

    from_address: str = Field(description="Sender address")
    from_name: str | None = Field(default=None, description="Sender display name")
    reply_to: str | None = None
    to: str = Field(description="Recipient addresses")
    cc: str | None = None
    bcc: str | None = None
    subject: str = ""
    body: str = ""
    in_reply_to: str | None = Field(default=None, description="In-Reply-To provider id")
    references: str | None = Field(default=None, description="Space-separated References chain")
    attachments: list[EmailAttachment] = Field(default_factory=list)


class SendReceipt(BaseModel):
    """What the transport reports back after accepting a message."""

    provider_message_id: str
    status: DeliveryStatus = DeliveryStatus.SENT


@runtime_checkable
class MailSender(Protocol):
    """External mail transport."""

    async def send(self, email: OutgoingEmail) -> SendReceipt:
        """Hand the email to the provider; raise on any transport failure."""
        ...
