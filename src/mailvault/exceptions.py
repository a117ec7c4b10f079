"""Custom exceptions for MailVault."""


class MailVaultError(Exception):
    """Base exception for all MailVault errors."""


class NotFoundError(MailVaultError):
    """Entity is absent or not visible to the caller.

    Pending (unapproved) messages raise this too, so callers cannot tell
    a hidden message from a missing one.
    """


class InvalidInputError(MailVaultError):
    """Exception raised for caller errors such as an empty search query."""


class NoRecipientError(InvalidInputError):
    """Exception raised when sending a draft that has no recipient."""


class UnauthorizedError(MailVaultError):
    """Exception raised when a webhook token does not match."""


class UpstreamError(MailVaultError):
    """Exception raised when the mail sender, blob store or index fails."""


class ConfigurationError(MailVaultError):
    """Exception raised for configuration related errors."""
