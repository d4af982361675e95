"""
Access-token cache for the Gmail connector.

The hosting platform brokers the OAuth grant: we exchange our deployment
identity for a connector record that carries a short-lived access token and
its expiry, and reuse that token until it expires.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import requests
from dateutil import parser as date_parser

from leadmail.config import Settings, settings as default_settings
from leadmail.errors import AuthError

logger = logging.getLogger("leadmail.gmail.credentials")

CONNECTION_PATH = "/api/v2/connection"


def _extract_access_token(record: Dict[str, Any]) -> Optional[str]:
    conn_settings = record.get("settings") or {}
    token = conn_settings.get("access_token")
    if token:
        return token
    oauth = conn_settings.get("oauth") or {}
    return (oauth.get("credentials") or {}).get("access_token")


def _extract_expiry(record: Dict[str, Any]) -> Optional[datetime]:
    raw = (record.get("settings") or {}).get("expires_at")
    if not raw:
        return None
    try:
        expires_at = date_parser.isoparse(str(raw))
    except (TypeError, ValueError):
        logger.warning("Ignoring unparseable connector expires_at=%r", raw)
        return None
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at


class CredentialCache:
    """Holds the last connector token in memory and refreshes it once expired.

    Refreshes are single-flight: concurrent callers wait on the same lock and
    reuse the token fetched by whoever got there first.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_get: Optional[Callable[..., Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or default_settings
        self._http_get = http_get or requests.get
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def _cached_token(self) -> Optional[str]:
        if self._token and self._expires_at and self._clock() < self._expires_at:
            return self._token
        return None

    def get_access_token(self) -> str:
        token = self._cached_token()
        if token:
            return token

        with self._lock:
            token = self._cached_token()
            if token:
                return token
            record = self._fetch_connection()
            token = _extract_access_token(record)
            if not token:
                raise AuthError("Gmail not connected: connector record has no access token")
            self._token = token
            self._expires_at = _extract_expiry(record)
            logger.info("Fetched Gmail access token (expires_at=%s)", self._expires_at)
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = None

    def _fetch_connection(self) -> Dict[str, Any]:
        hostname = self._settings.connectors_hostname
        identity = self._settings.connector_token
        if not identity:
            raise AuthError("Connector identity token not found for repl/depl")
        if not hostname:
            raise AuthError("REPLIT_CONNECTORS_HOSTNAME is not configured")

        url = f"https://{hostname}{CONNECTION_PATH}"
        try:
            response = self._http_get(
                url,
                params={
                    "include_secrets": "true",
                    "connector_names": self._settings.connector_name,
                },
                headers={
                    "Accept": "application/json",
                    self._settings.connector_token_header: identity,
                },
                timeout=self._settings.connector_timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise AuthError(f"Connector token exchange failed: {exc}") from exc
        except ValueError as exc:
            raise AuthError("Connector returned a non-JSON response") from exc

        items = (payload or {}).get("items") or []
        if not items:
            raise AuthError("Gmail not connected: no connector record returned")
        return items[0]


_cache: Optional[CredentialCache] = None
_cache_lock = threading.Lock()


def get_credential_cache() -> CredentialCache:
    """Process-wide credential cache shared by every mail client."""
    global _cache

    with _cache_lock:
        if _cache is None:
            _cache = CredentialCache()
        return _cache
