"""Outbound event notifications.

When mail arrives or is sent, an ``EventDispatcher`` is told about it.
Notifications are best-effort: a failing dispatcher is logged and never
fails the operation that triggered it.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import urllib.error
import urllib.request
from typing import Any, Protocol, runtime_checkable

import structlog

from mailvault.models import Message
from mailvault.utils import now_ms

logger = structlog.get_logger()


MESSAGE_RECEIVED = "message.received"
MESSAGE_SENT = "message.sent"

SIGNATURE_HEADER = "X-Webhook-Signature"


@runtime_checkable
class EventDispatcher(Protocol):
    """Receiver of message events."""

    def dispatch(self, event: str, data: dict[str, Any]) -> None:
        ...


def message_event_data(message: Message) -> dict[str, Any]:
    """Metadata describing a message; bodies are never included."""

    return {
        "id": message.id,
        "thread_id": message.thread_id,
        "message_id": message.message_id,
        "from": message.from_address,
        "to": message.to,
        "subject": message.subject,
        "direction": message.direction.value,
        "approved": message.approved,
    }


def notify(dispatcher: EventDispatcher | None, event: str, data: dict[str, Any]) -> None:
    """Hand an event to the dispatcher, logging instead of raising on failure."""

    if dispatcher is None:
        return
    try:
        dispatcher.dispatch(event, data)
    except Exception as exc:  # noqa: BLE001
        logger.warning("event_dispatch_failed", event_name=event, error=str(exc))


def sign(body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the request body."""

    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class HttpEventDispatcher:
    """Posts ``{event, data, timestamp}`` as JSON to a configured URL.

    With a secret configured, the body is signed and the signature sent in
    the ``X-Webhook-Signature`` header. Delivery errors are logged.
    """

    def __init__(self, url: str, secret: str | None = None, timeout: float = 10.0) -> None:
        self._url = url
        self._secret = secret
        self._timeout = timeout

    def build_request(self, event: str, data: dict[str, Any]) -> urllib.request.Request:
        body = json.dumps({"event": event, "data": data, "timestamp": now_ms()}).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers[SIGNATURE_HEADER] = sign(body, self._secret)
        return urllib.request.Request(url=self._url, data=body, headers=headers, method="POST")

    def dispatch(self, event: str, data: dict[str, Any]) -> None:
        req = self.build_request(event, data)
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                status = resp.status
        except urllib.error.HTTPError as e:
            logger.error("event_webhook_rejected", event_name=event, status=e.code, reason=e.reason)
            return
        except (urllib.error.URLError, OSError) as e:
            logger.error("event_webhook_error", event_name=event, error=str(e))
            return

        logger.debug("event_webhook_delivered", event_name=event, status=status)
