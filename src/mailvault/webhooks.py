"""Delivery-status webhook handling.

The mail provider posts events such as ``email.delivered`` carrying the
provider message id. Known events update the matching outbound message;
anything else is acknowledged and ignored.
"""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import BaseModel

from mailvault.exceptions import InvalidInputError, UnauthorizedError
from mailvault.models import DeliveryStatus
from mailvault.storage import MessageStore

logger = structlog.get_logger()


EVENT_STATUS_MAP: dict[str, DeliveryStatus] = {
    "email.sent": DeliveryStatus.SENT,
    "email.delivered": DeliveryStatus.DELIVERED,
    "email.bounced": DeliveryStatus.BOUNCED,
    "email.complained": DeliveryStatus.COMPLAINED,
}


class DeliveryEvent(BaseModel):
    """Webhook payload; unknown fields are ignored.

    Fields are typed loosely: a missing or oddly typed event type, ``data``
    or id is an event we do not act on, not a malformed request.
    """

    type: Any = None
    data: Any = None

    @property
    def provider_message_id(self) -> str | None:
        if not isinstance(self.data, Mapping):
            return None
        email_id = self.data.get("email_id")
        if not isinstance(email_id, str) or not email_id:
            return None
        return email_id

    @property
    def status(self) -> DeliveryStatus | None:
        if not isinstance(self.type, str):
            return None
        return EVENT_STATUS_MAP.get(self.type)


class DeliveryWebhookHandler:
    """Verifies the shared token and applies delivery events to the store."""

    def __init__(self, store: MessageStore, token: str | None = None) -> None:
        """Create a handler.

        Args:
            store: Message store to update.
            token: Expected shared token; None disables the check.
        """

        self._store = store
        self._token = token

    def handle(self, payload: Mapping[str, Any], token: str | None = None) -> int:
        """Apply one webhook event.

        Returns:
            Number of messages updated (0 for ignored events).

        Raises:
            UnauthorizedError: If a token is configured and does not match.
            InvalidInputError: If the payload is not an object.
        """

        self._verify(token)

        if not isinstance(payload, Mapping):
            raise InvalidInputError("Malformed delivery event: expected an object")
        event = DeliveryEvent.model_validate(dict(payload))

        status = event.status
        provider_message_id = event.provider_message_id
        if status is None or provider_message_id is None:
            logger.debug("delivery_event_ignored", type=str(event.type))
            return 0

        return self._store.set_status(provider_message_id, status)

    def _verify(self, token: str | None) -> None:
        if self._token is None:
            return
        if token is None or not hmac.compare_digest(token.encode(), self._token.encode()):
            logger.warning("delivery_webhook_rejected")
            raise UnauthorizedError("Invalid webhook token")
