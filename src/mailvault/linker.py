"""Reply-chain linkage for outbound mail sent into an existing thread."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from mailvault.models import Message
from mailvault.storage import MessageStore
from mailvault.utils import extend_references

logger = structlog.get_logger()


@dataclass(frozen=True)
class ThreadLink:
    """Threading headers for a new message; both are None for a fresh thread."""

    in_reply_to: str | None = None
    references: str | None = None


def link_to(parent: Message) -> ThreadLink:
    """Build the headers for a message that replies to ``parent``.

    A parent without a provider id (not yet sent) cannot be referenced.
    """

    if not parent.message_id:
        return ThreadLink()
    return ThreadLink(
        in_reply_to=parent.message_id,
        references=extend_references(parent.references, parent.message_id),
    )


class ThreadLinker:
    """Computes In-Reply-To / References from the newest message in a thread."""

    def __init__(self, store: MessageStore) -> None:
        self._store = store

    def link(self, thread_id: str) -> ThreadLink:
        latest = self._store.latest_in_thread(thread_id)
        if latest is None:
            logger.debug("thread_link_empty", thread_id=thread_id)
            return ThreadLink()

        link = link_to(latest)
        logger.debug(
            "thread_link_resolved",
            thread_id=thread_id,
            in_reply_to=link.in_reply_to,
        )
        return link
