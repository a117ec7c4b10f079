"""SQLite persistence for threads, messages, labels, senders and drafts."""

from .database import Database
from .messages import MessageStore

__all__ = ["Database", "MessageStore"]
