"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import itertools

import pytest

from mailvault.config import Settings
from mailvault.mailbox import Mailbox
from mailvault.models import Direction, Message, NewMessage
from mailvault.outbound import OutgoingEmail, SendReceipt


class FakeSender:
    """Mail transport that records what it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[OutgoingEmail] = []
        self._ids = itertools.count(1)

    async def send(self, email: OutgoingEmail) -> SendReceipt:
        self.sent.append(email)
        return SendReceipt(provider_message_id=f"<prov-{next(self._ids)}@example.com>")


class FailingSender:
    """Mail transport that always fails."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or ConnectionError("provider unreachable")
        self.attempts = 0

    async def send(self, email: OutgoingEmail) -> SendReceipt:
        self.attempts += 1
        raise self.exc


class InMemoryBlobStore:
    def __init__(self, blobs: dict[str, bytes] | None = None) -> None:
        self.blobs = dict(blobs or {})
        self.reads: list[str] = []

    def get(self, key: str) -> bytes | None:
        self.reads.append(key)
        return self.blobs.get(key)

    def put(self, key: str, data: bytes) -> None:
        self.blobs[key] = data


class RecordingDispatcher:
    """Event dispatcher that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def dispatch(self, event: str, data: dict) -> None:
        self.events.append((event, data))


class FailingDispatcher:
    def __init__(self) -> None:
        self.attempts = 0

    def dispatch(self, event: str, data: dict) -> None:
        self.attempts += 1
        raise ConnectionError("webhook endpoint unreachable")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway database."""
    return Settings(
        db_path=tmp_path / "mailvault.sqlite3",
        blob_dir=tmp_path / "blobs",
        from_email="relay@example.com",
        from_name="Relay",
        log_level="DEBUG",
    )


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher() -> FailingDispatcher:
    return FailingDispatcher()


@pytest.fixture
def mailbox(settings, sender, blobs, dispatcher) -> Mailbox:
    return Mailbox(settings, sender=sender, blobs=blobs, dispatcher=dispatcher)


@pytest.fixture
def ingest(mailbox):
    """Record an inbound message with sensible defaults."""

    def _ingest(from_address: str = "alice@example.com", **overrides) -> Message:
        fields = {
            "from_address": from_address,
            "to": "relay@example.com",
            "subject": "Hello",
            "body_text": "Just saying hi",
            "direction": Direction.INBOUND,
        }
        fields.update(overrides)
        return mailbox.messages.ingest(NewMessage(**fields))

    return _ingest


@pytest.fixture
def failing_sender() -> FailingSender:
    return FailingSender()


@pytest.fixture
def failing_mailbox(settings, failing_sender, blobs) -> Mailbox:
    """Mailbox over the same database whose transport always fails."""
    return Mailbox(settings, sender=failing_sender, blobs=blobs)
