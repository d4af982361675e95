from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from leadmail.errors import MailApiError
from leadmail.gmail.credentials import CredentialCache, get_credential_cache
from leadmail.gmail.decoding import decode_payload, get_header, parse_date_header
from leadmail.ingestion.config import EmailImportSettings, email_import_settings

logger = logging.getLogger("leadmail.gmail.client")

_TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


@dataclass
class MailMessage:
    """A fetched Gmail message reduced to what the parsers need."""

    id: str
    thread_id: Optional[str]
    subject: str
    from_address: str
    date: Optional[datetime]
    body: str


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, HttpError):
        return getattr(exc.resp, "status", None) in _TRANSIENT_STATUSES
    return isinstance(exc, (httplib2.HttpLib2Error, socket.timeout, ConnectionError, TimeoutError))


def build_search_query(sender_emails: Sequence[str], since: datetime) -> str:
    """`(from:a OR from:b) after:<epoch seconds>`"""
    senders = " OR ".join(f"from:{address}" for address in sender_emails)
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return f"({senders}) after:{int(since.timestamp())}"


class GmailClient:
    """Read-only Gmail adapter used by the import pipeline.

    The underlying API service is built lazily with a fresh connector token,
    so one client should live for one import cycle.
    """

    def __init__(
        self,
        *,
        service: Any = None,
        credential_cache: Optional[CredentialCache] = None,
        settings: Optional[EmailImportSettings] = None,
        retry_wait_multiplier: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._service = service
        self._credentials = credential_cache
        self._settings = settings or email_import_settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        multiplier = (
            self._settings.retry_backoff_seconds
            if retry_wait_multiplier is None
            else retry_wait_multiplier
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(multiplier=multiplier, max=30),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )

    @property
    def service(self) -> Any:
        if self._service is None:
            cache = self._credentials or get_credential_cache()
            credentials = Credentials(token=cache.get_access_token())
            http = AuthorizedHttp(
                credentials,
                http=httplib2.Http(timeout=self._settings.request_timeout_seconds),
            )
            self._service = build("gmail", "v1", http=http, cache_discovery=False)
        return self._service

    def _execute(self, request: Any, what: str) -> dict:
        try:
            return self._retrying(request.execute)
        except HttpError as exc:
            raise MailApiError(f"Gmail {what} failed: {exc}") from exc
        except (httplib2.HttpLib2Error, OSError) as exc:
            raise MailApiError(f"Gmail {what} failed: {exc}") from exc

    def list_candidate_messages(
        self,
        sender_emails: Sequence[str],
        since: Optional[datetime] = None,
        stop_at: Optional[str] = None,
    ) -> List[str]:
        """Message ids from the trusted senders, newest first.

        Listing stops before `stop_at` (the previous watermark) or after
        `max_pages` pages, whichever comes first.
        """
        if not sender_emails:
            return []
        if since is None:
            since = self._clock() - timedelta(minutes=self._settings.lookback_minutes)

        query = build_search_query(sender_emails, since)
        messages_api = self.service.users().messages()
        request = messages_api.list(
            userId="me",
            q=query,
            maxResults=self._settings.max_results,
        )

        message_ids: List[str] = []
        pages = 0
        while request is not None:
            response = self._execute(request, "messages.list")
            pages += 1
            for item in response.get("messages") or []:
                message_id = item.get("id")
                if not message_id:
                    continue
                if stop_at and message_id == stop_at:
                    logger.debug("Reached watermark %s after %d page(s)", stop_at, pages)
                    return message_ids
                message_ids.append(message_id)

            if pages >= self._settings.max_pages:
                if stop_at and response.get("nextPageToken"):
                    logger.warning(
                        "Watermark %s not found within %d page(s); older messages "
                        "past this window are left to the ledger check",
                        stop_at,
                        pages,
                    )
                break
            request = messages_api.list_next(request, response)

        return message_ids

    def fetch_message(self, message_id: str) -> MailMessage:
        request = self.service.users().messages().get(
            userId="me",
            id=message_id,
            format="full",
        )
        data = self._execute(request, f"messages.get({message_id})")
        payload = data.get("payload") or {}

        return MailMessage(
            id=message_id,
            thread_id=data.get("threadId"),
            subject=get_header(payload, "Subject"),
            from_address=get_header(payload, "From"),
            date=parse_date_header(get_header(payload, "Date")),
            body=decode_payload(payload),
        )

    def get_profile_address(self) -> Optional[str]:
        request = self.service.users().getProfile(userId="me")
        profile = self._execute(request, "users.getProfile")
        return profile.get("emailAddress")
