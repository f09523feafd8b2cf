"""Exceptions raised by the import pipeline and its collaborators."""


class MailImportError(Exception):
    """Base exception for all sent-mail import errors."""


class InvalidJobError(MailImportError):
    """Month, year or work address of an import job is unusable."""


class LockContention(MailImportError):
    """Another invocation holds the run-lock for this user."""


class SearchFailure(MailImportError):
    """The message store query failed."""


class TableWriteError(MailImportError):
    """The bulk append to the table store failed."""


class UnknownProgressField(MailImportError):
    """A progress patch named a field that ProgressState does not have."""


class TokenExpiredError(MailImportError):
    """OAuth token cannot be refreshed and needs re-authorization."""
