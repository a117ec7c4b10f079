"""Sending new mail and replies, and recording what was sent."""

from __future__ import annotations

import mimetypes

import structlog
from pydantic import BaseModel

from mailvault.attachments import AttachmentService
from mailvault.config import Settings
from mailvault.events import MESSAGE_SENT, EventDispatcher, message_event_data, notify
from mailvault.exceptions import (
    ConfigurationError,
    InvalidInputError,
    MailVaultError,
    NoRecipientError,
    UpstreamError,
)
from mailvault.linker import link_to
from mailvault.models import Direction, Message, NewAttachment, NewMessage
from mailvault.outbound.sender import EmailAttachment, MailSender, OutgoingEmail, SendReceipt
from mailvault.storage import MessageStore

logger = structlog.get_logger()


class AttachmentRequest(BaseModel):
    """An attachment to send: inline content, or an existing attachment to forward."""

    filename: str | None = None
    content_type: str | None = None
    content: bytes | None = None
    attachment_id: str | None = None


def reply_subject(subject: str) -> str:
    """Prefix a subject with ``Re:`` unless it already carries one."""

    stripped = subject.strip()
    if stripped.lower().startswith("re:"):
        return stripped
    return f"Re: {stripped}" if stripped else "Re:"


class OutboundMailer:
    """Hands mail to the transport and records it as an outbound message.

    A message is only recorded after the transport accepted it. Transport
    failures surface as ``UpstreamError`` and no message is written.
    """

    def __init__(
        self,
        store: MessageStore,
        sender: MailSender,
        settings: Settings | None = None,
        attachments: AttachmentService | None = None,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        """Initialize the mailer.

        Args:
            store: Message store that records sent mail.
            sender: External mail transport.
            settings: Application settings. If None, uses default settings.
            attachments: Attachment service used to forward and store
                attachment content. Without one, attachments are rejected.
            dispatcher: Optional receiver of ``message.sent`` events.
        """
        from mailvault.config import get_settings

        self.settings = settings or get_settings()
        self._store = store
        self._sender = sender
        self._attachments = attachments
        self._dispatcher = dispatcher

    async def send(
        self,
        *,
        to: str | None,
        subject: str = "",
        body: str = "",
        cc: str | None = None,
        bcc: str | None = None,
        thread_id: str | None = None,
        in_reply_to: str | None = None,
        references: str | None = None,
        attachments: list[AttachmentRequest] | None = None,
    ) -> Message:
        """Send an email and record it.

        Attachments are resolved before anything is handed to the
        transport, so forwarding an attachment of a pending message fails
        without sending.

        Raises:
            NoRecipientError: If ``to`` is empty.
            NotFoundError: If a forwarded attachment is unknown or pending.
            InvalidInputError: If an attachment has neither or both of
                ``content`` and ``attachment_id``.
            UpstreamError: If the transport or the blob store fails.
        """

        if not to or not to.strip():
            raise NoRecipientError("Email has no recipient")

        files, records = self._resolve_attachments(attachments or [])

        email = OutgoingEmail(
            from_address=self.settings.from_email,
            from_name=self.settings.from_name,
            reply_to=self.settings.reply_to_email,
            to=to,
            cc=cc,
            bcc=bcc,
            subject=subject,
            body=body,
            in_reply_to=in_reply_to,
            references=references,
            attachments=files,
        )
        receipt = await self._deliver(email)

        message = self._store.ingest(
            NewMessage(
                thread_id=thread_id,
                message_id=receipt.provider_message_id,
                in_reply_to=in_reply_to,
                references=references,
                from_address=self.settings.from_email,
                to=to,
                cc=cc,
                bcc=bcc,
                subject=subject,
                body_text=body,
                direction=Direction.OUTBOUND,
                status=receipt.status,
                attachments=records,
            )
        )
        logger.info(
            "email_sent",
            id=message.id,
            thread_id=message.thread_id,
            provider_message_id=receipt.provider_message_id,
            attachment_count=len(records),
        )
        notify(self._dispatcher, MESSAGE_SENT, message_event_data(message))
        return message

    async def reply(
        self,
        message_id: str,
        body: str,
        attachments: list[AttachmentRequest] | None = None,
    ) -> Message:
        """Reply to a visible message within its thread.

        Inbound messages are answered to their sender; replying to one of
        our own outbound messages goes to its original recipients.
        """

        parent = self._store.get_visible(message_id)
        if parent.direction is Direction.INBOUND:
            to = parent.from_address
            cc = None
        else:
            to = parent.to
            cc = parent.cc

        link = link_to(parent)
        return await self.send(
            to=to,
            cc=cc,
            subject=reply_subject(parent.subject),
            body=body,
            thread_id=parent.thread_id,
            in_reply_to=link.in_reply_to,
            references=link.references,
            attachments=attachments,
        )

    def _resolve_attachments(
        self, requests: list[AttachmentRequest]
    ) -> tuple[list[EmailAttachment], list[NewAttachment]]:
        if not requests:
            return [], []
        if self._attachments is None:
            raise ConfigurationError("No blob store configured for attachments")

        files: list[EmailAttachment] = []
        records: list[NewAttachment] = []
        for req in requests:
            if (req.content is None) == (req.attachment_id is None):
                raise InvalidInputError(
                    "Attachment needs exactly one of content or attachment_id"
                )

            if req.attachment_id is not None:
                # Visibility of the source message is checked here.
                source = self._attachments.download(req.attachment_id)
                content = source.content
                filename = req.filename or source.filename
                content_type = req.content_type or source.content_type
                blob_key = source.attachment.blob_key
            else:
                content = req.content
                filename = req.filename or "attachment"
                content_type = (
                    req.content_type
                    or mimetypes.guess_type(filename)[0]
                    or "application/octet-stream"
                )
                blob_key = self._attachments.store(content)

            files.append(
                EmailAttachment(filename=filename, content_type=content_type, content=content)
            )
            records.append(
                NewAttachment(
                    filename=filename,
                    content_type=content_type,
                    size=len(content),
                    blob_key=blob_key,
                )
            )

        return files, records

    async def _deliver(self, email: OutgoingEmail) -> SendReceipt:
        try:
            return await self._sender.send(email)
        except MailVaultError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("email_send_failed", to=email.to, error=str(exc))
            raise UpstreamError(str(exc)) from exc
