"""Exception types raised by the email lead import pipeline."""


class EmailImportError(Exception):
    """Base exception for email import failures."""


class AuthError(EmailImportError):
    """Raised when the mail connector is not configured or the token exchange fails."""


class MailApiError(EmailImportError):
    """Raised when a mail API call still fails after retries."""
