"""Turn Gmail API message payloads into plain text and header values."""
from __future__ import annotations

import base64
import codecs
import html
import logging
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger("leadmail.gmail.decoding")

_CHARSET_RE = re.compile(r"charset\s*=\s*\"?([^\";\s]+)", re.IGNORECASE)


def decode_base64url(data: str, charset: str = "utf-8") -> str:
    """Decode Gmail's unpadded base64url body data, replacing bad bytes."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (ValueError, TypeError):
        logger.warning("Could not base64-decode message body part (%d chars)", len(data))
        return ""
    return raw.decode(charset, errors="replace")


def part_charset(part: Dict[str, Any]) -> str:
    """Charset named in the part's Content-Type header, UTF-8 otherwise."""
    match = _CHARSET_RE.search(get_header(part, "Content-Type"))
    if not match:
        return "utf-8"
    try:
        return codecs.lookup(match.group(1)).name
    except LookupError:
        logger.warning("Unknown body charset %r, decoding as UTF-8", match.group(1))
        return "utf-8"


def strip_html(text: str) -> str:
    """Convert HTML to plain text."""
    text = re.sub(r"<style[^>]*>.*?</style>", "", text, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<script[^>]*>.*?</script>", "", text, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(p|div|tr|li|h[1-6]|table)>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</t[dh]>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text).replace("\xa0", " ")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n", text)
    return text.strip()


def _collect_text(part: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return (plain_text, html_text) found in this part or below it.

    Descent stops at the first usable text/plain part; the first HTML part is
    remembered as a fallback.
    """
    mime_type = (part.get("mimeType") or "").lower()
    data = (part.get("body") or {}).get("data")
    sub_parts = part.get("parts") or []

    if data and not sub_parts:
        charset = part_charset(part)
        if mime_type == "text/html":
            return None, strip_html(decode_base64url(data, charset))
        if mime_type in ("text/plain", ""):
            text = decode_base64url(data, charset)
            return (text or None), None

    html_text: Optional[str] = None
    for sub_part in sub_parts:
        plain, sub_html = _collect_text(sub_part)
        if plain:
            return plain, html_text or sub_html
        if html_text is None and sub_html:
            html_text = sub_html
    return None, html_text


def decode_payload(payload: Optional[Dict[str, Any]]) -> str:
    """Best plain-text rendering of a Gmail `payload` (format=full)."""
    if not payload:
        return ""
    plain, html_text = _collect_text(payload)
    return plain or html_text or ""


def get_header(payload: Optional[Dict[str, Any]], name: str) -> str:
    wanted = name.lower()
    for header in (payload or {}).get("headers") or []:
        if (header.get("name") or "").lower() == wanted:
            return header.get("value") or ""
    return ""


def parse_date_header(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        logger.debug("Unparseable Date header: %r", value)
        return None
