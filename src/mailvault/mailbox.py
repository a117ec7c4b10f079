"""Wires the mailbox components together over one database.

This is the object an HTTP layer or the CLI holds on to.
"""

from __future__ import annotations

import structlog

from mailvault.approval import ApprovalGate
from mailvault.attachments import AttachmentService, BlobStore, FilesystemBlobStore
from mailvault.config import Settings
from mailvault.drafts import DraftManager
from mailvault.events import EventDispatcher, HttpEventDispatcher
from mailvault.exceptions import ConfigurationError
from mailvault.linker import ThreadLinker
from mailvault.outbound import MailSender, OutboundMailer
from mailvault.search import SearchEngine
from mailvault.storage import Database, MessageStore
from mailvault.webhooks import DeliveryWebhookHandler

logger = structlog.get_logger()


class Mailbox:
    """Main entry point to the mailbox store.

    The mail sender is optional; without one, everything except sending,
    replying and sending drafts works.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        sender: MailSender | None = None,
        blobs: BlobStore | None = None,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        """Initialize the mailbox.

        Args:
            settings: Application settings. If None, uses default settings.
            sender: External mail transport.
            blobs: Attachment blob store. If None, a filesystem store rooted
                at ``settings.blob_dir`` is used.
            dispatcher: Receiver of message events. If None and
                ``settings.webhook_url`` is set, events are posted there.
        """
        from mailvault.config import get_settings

        self.settings = settings or get_settings()
        self.db = Database(self.settings.db_path)
        self.db.initialize()

        if dispatcher is None and self.settings.webhook_url:
            dispatcher = HttpEventDispatcher(
                self.settings.webhook_url,
                secret=self.settings.webhook_secret,
                timeout=self.settings.webhook_timeout_seconds,
            )
        self.dispatcher = dispatcher

        self.approval = ApprovalGate(self.db)
        self.messages = MessageStore(self.db, self.approval, dispatcher)
        self.linker = ThreadLinker(self.messages)
        self.search = SearchEngine(self.db, default_limit=self.settings.search_limit)
        self.attachments = AttachmentService(
            self.messages, blobs or FilesystemBlobStore(self.settings.blob_dir)
        )
        self.webhooks = DeliveryWebhookHandler(self.messages, token=self.settings.webhook_token)

        self._mailer = (
            OutboundMailer(
                self.messages,
                sender,
                self.settings,
                attachments=self.attachments,
                dispatcher=dispatcher,
            )
            if sender is not None
            else None
        )
        self.drafts = DraftManager(self.db, self.linker, self._mailer)
        logger.info("mailbox_initialized", db_path=str(self.settings.db_path))

    @property
    def mailer(self) -> OutboundMailer:
        if self._mailer is None:
            raise ConfigurationError("No mail sender configured")
        return self._mailer
