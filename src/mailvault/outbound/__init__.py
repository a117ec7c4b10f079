"""Outbound mail: transport contract and the mailer that records sends."""

from .mailer import AttachmentRequest, OutboundMailer, reply_subject
from .sender import EmailAttachment, MailSender, OutgoingEmail, SendReceipt

__all__ = [
    "AttachmentRequest",
    "EmailAttachment",
    "MailSender",
    "OutboundMailer",
    "OutgoingEmail",
    "SendReceipt",
    "reply_subject",
]
