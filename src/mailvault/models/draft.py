"""Draft models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Draft(BaseModel):
    """A mutable, not-yet-sent message."""

    id: str
    thread_id: str | None = None
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    subject: str = ""
    body_text: str = ""
    created_at: int
    updated_at: int


class DraftParams(BaseModel):
    """Draft fields supplied by a caller.

    Only fields the caller actually set are applied on update; use
    ``model_dump(exclude_unset=True)`` to get them.
    """

    to: str | None = Field(default=None, description="Recipient addresses")
    cc: str | None = None
    bcc: str | None = None
    subject: str | None = None
    body_text: str | None = None
    thread_id: str | None = Field(default=None, description="Thread to reply into when sent")
