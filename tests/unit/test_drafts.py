"""Unit tests for the draft lifecycle."""

from __future__ import annotations

import pytest

from mailvault.exceptions import ConfigurationError, NoRecipientError, NotFoundError, UpstreamError
from mailvault.mailbox import Mailbox
from mailvault.models import DeliveryStatus, Direction, DraftParams, NewMessage


class TestDraftCrud:
    def test_create_then_get_round_trip(self, mailbox) -> None:
        params = DraftParams(
            to="bob@example.com",
            cc="carol@example.com",
            bcc="dave@example.com",
            subject="Plans",
            body_text="See you",
            thread_id="t-1",
        )

        draft = mailbox.drafts.create(params)
        fetched = mailbox.drafts.get(draft.id)

        assert fetched == draft
        assert fetched.model_dump(include=set(DraftParams.model_fields)) == params.model_dump()

    def test_create_applies_defaults(self, mailbox) -> None:
        draft = mailbox.drafts.create()

        fetched = mailbox.drafts.get(draft.id)
        assert fetched.subject == ""
        assert fetched.body_text == ""
        assert fetched.to is None
        assert fetched.thread_id is None
        assert fetched.created_at == fetched.updated_at

    def test_update_is_partial(self, mailbox) -> None:
        draft = mailbox.drafts.create(DraftParams(to="bob@example.com", subject="Old", body_text="Body"))

        updated = mailbox.drafts.update(draft.id, DraftParams(subject="New"))

        assert updated.subject == "New"
        assert updated.to == "bob@example.com"
        assert updated.body_text == "Body"
        assert updated.updated_at >= draft.updated_at

    def test_update_can_clear_a_field(self, mailbox) -> None:
        draft = mailbox.drafts.create(DraftParams(to="bob@example.com", cc="carol@example.com"))

        updated = mailbox.drafts.update(draft.id, DraftParams(cc=None))

        assert updated.cc is None
        assert updated.to == "bob@example.com"

    def test_update_missing_draft(self, mailbox) -> None:
        with pytest.raises(NotFoundError):
            mailbox.drafts.update("missing", DraftParams(subject="x"))

    def test_list_most_recently_updated_first(self, mailbox) -> None:
        a = mailbox.drafts.create(DraftParams(subject="a"))
        b = mailbox.drafts.create(DraftParams(subject="b"))
        mailbox.drafts.update(a.id, DraftParams(body_text="edited"))

        ids = [d.id for d in mailbox.drafts.list()]

        assert set(ids) == {a.id, b.id}
        assert mailbox.drafts.get(a.id).updated_at >= mailbox.drafts.get(b.id).updated_at

    def test_delete(self, mailbox) -> None:
        draft = mailbox.drafts.create()

        mailbox.drafts.delete(draft.id)

        with pytest.raises(NotFoundError):
            mailbox.drafts.get(draft.id)
        with pytest.raises(NotFoundError):
            mailbox.drafts.delete(draft.id)


class TestDraftSend:
    @pytest.mark.asyncio
    async def test_send_records_message_and_deletes_draft(self, mailbox, sender) -> None:
        draft = mailbox.drafts.create(
            DraftParams(to="bob@example.com", subject="Hi", body_text="Hello Bob")
        )

        message = await mailbox.drafts.send(draft.id)

        assert message.direction is Direction.OUTBOUND
        assert message.approved is True
        assert message.status is DeliveryStatus.SENT
        assert message.message_id == "<prov-1@example.com>"
        assert message.to == "bob@example.com"
        assert message.from_address == "relay@example.com"
        assert message.in_reply_to is None
        assert sender.sent[0].body == "Hello Bob"
        assert mailbox.messages.get(message.id).subject == "Hi"
        with pytest.raises(NotFoundError):
            mailbox.drafts.get(draft.id)

    @pytest.mark.asyncio
    async def test_send_into_thread_sets_reply_headers(self, mailbox, sender) -> None:
        first = mailbox.messages.ingest(
            NewMessage(
                from_address="relay@example.com",
                to="bob@example.com",
                message_id="a",
                direction=Direction.OUTBOUND,
            )
        )
        mailbox.messages.ingest(
            NewMessage(
                from_address="relay@example.com",
                to="bob@example.com",
                message_id="b",
                in_reply_to="a",
                references="a",
                thread_id=first.thread_id,
                direction=Direction.OUTBOUND,
            )
        )
        draft = mailbox.drafts.create(
            DraftParams(to="bob@example.com", subject="Re: Plans", thread_id=first.thread_id)
        )

        message = await mailbox.drafts.send(draft.id)

        assert sender.sent[0].in_reply_to == "b"
        assert sender.sent[0].references == "a b"
        assert message.thread_id == first.thread_id
        assert message.in_reply_to == "b"
        assert message.references == "a b"
        assert mailbox.messages.get_thread(first.thread_id).message_count == 3

    @pytest.mark.asyncio
    async def test_send_without_recipient_keeps_draft(self, mailbox, sender) -> None:
        draft = mailbox.drafts.create(DraftParams(subject="No one", to="  "))

        with pytest.raises(NoRecipientError):
            await mailbox.drafts.send(draft.id)

        assert mailbox.drafts.get(draft.id) == draft
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_transport_failure_keeps_draft_and_records_nothing(
        self, failing_mailbox, failing_sender
    ) -> None:
        draft = failing_mailbox.drafts.create(DraftParams(to="bob@example.com", subject="Hi"))

        with pytest.raises(UpstreamError):
            await failing_mailbox.drafts.send(draft.id)

        assert failing_sender.attempts == 1
        assert failing_mailbox.drafts.get(draft.id) == draft
        assert failing_mailbox.messages.list() == []

    @pytest.mark.asyncio
    async def test_send_missing_draft(self, mailbox) -> None:
        with pytest.raises(NotFoundError):
            await mailbox.drafts.send("missing")

    @pytest.mark.asyncio
    async def test_send_without_configured_sender(self, settings) -> None:
        mailbox = Mailbox(settings)
        draft = mailbox.drafts.create(DraftParams(to="bob@example.com"))

        with pytest.raises(ConfigurationError):
            await mailbox.drafts.send(draft.id)

        assert mailbox.drafts.get(draft.id) == draft
