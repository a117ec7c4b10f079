"""Data models for MailVault.

This module contains Pydantic models for data validation and serialization.
"""

from mailvault.models.draft import Draft, DraftParams
from mailvault.models.message import (
    ApprovedSender,
    Attachment,
    DeliveryStatus,
    Direction,
    Message,
    MessageDetail,
    MessageFilters,
    NewAttachment,
    NewMessage,
    PendingMessage,
    Thread,
    ThreadDetail,
)

__all__ = [
    "ApprovedSender",
    "Attachment",
    "DeliveryStatus",
    "Direction",
    "Draft",
    "DraftParams",
    "Message",
    "MessageDetail",
    "MessageFilters",
    "NewAttachment",
    "NewMessage",
    "PendingMessage",
    "Thread",
    "ThreadDetail",
]
