"""MailVault - moderated, threaded mailbox store.

This package records inbound and outbound email, groups it into threads,
hides messages from unknown senders until they are approved, offers
full-text search and manages drafts through to send.
"""

__version__ = "0.1.0"

from mailvault.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
