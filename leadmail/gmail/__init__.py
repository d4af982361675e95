"""Gmail access for the import pipeline: connector credentials, API client, MIME decoding."""

from .client import GmailClient, MailMessage, build_search_query  # noqa: F401
from .credentials import CredentialCache, get_credential_cache  # noqa: F401
from .decoding import decode_payload  # noqa: F401
