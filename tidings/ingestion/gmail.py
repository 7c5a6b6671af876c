"""
Tidings Gmail Connector
-----------------------
Source connector over the Gmail REST API (``users.messages.list`` and
``users.messages.get``) using an httpx AsyncClient with a Bearer token.

Incremental listing uses the ``after:<epoch seconds>`` search operator built
from the cursor's last sync time. Message ids are hex strings that grow with
delivery order, so they are ordered numerically.

HTTP 401/403 surface as ``ConnectorAuthError`` so the caller can re-authenticate;
every other HTTP or transport failure is a ``ConnectorError``.
"""

import base64
import html
import logging
import re
import time
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import httpx

from tidings.core.types import RecordSource, SyncCursor
from tidings.errors import ConnectorAuthError, ConnectorError
from tidings.ingestion.connectors import SourceConnector
from tidings.ingestion.models import RawMessage

logger = logging.getLogger("Tidings.Gmail")

DEFAULT_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
METADATA_HEADERS = ["Subject", "Date", "From", "To"]
MAX_PAGES = 10

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"[ \t\r\f\v]+")

TokenProvider = Callable[[], Awaitable[str]]


def decode_body_data(data: Optional[str]) -> str:
    """Decode Gmail's unpadded urlsafe base64 body data."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")
    except (ValueError, UnicodeEncodeError):
        return ""


def strip_html(text: str) -> str:
    text = re.sub(r"(?is)<(script|style)[^>]*>.*?</\1>", " ", text)
    text = re.sub(r"(?i)<br\s*/?>|</p>|</div>", "\n", text)
    text = html.unescape(_TAG_RE.sub(" ", text))
    lines = [_SPACE_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def _find_part(payload: Dict[str, Any], mime_type: str) -> Optional[str]:
    if payload.get("mimeType") == mime_type:
        data = (payload.get("body") or {}).get("data")
        if data:
            return decode_body_data(data)
    for part in payload.get("parts") or []:
        found = _find_part(part, mime_type)
        if found:
            return found
    return None


def extract_body(payload: Dict[str, Any], snippet: str = "") -> str:
    """
    Plain-text body of a message payload.

    Prefers a ``text/plain`` part anywhere in the MIME tree, then ``text/html``
    with markup removed, then a single-part body, then the snippet.
    """
    plain = _find_part(payload, "text/plain")
    if plain:
        return plain.strip()
    rich = _find_part(payload, "text/html")
    if rich:
        return strip_html(rich)
    direct = decode_body_data((payload.get("body") or {}).get("data"))
    if direct:
        if payload.get("mimeType") == "text/html":
            return strip_html(direct)
        return direct.strip()
    return html.unescape(snippet or "")


def headers_of(payload: Dict[str, Any]) -> Dict[str, str]:
    return {h.get("name", "").lower(): h.get("value", "") for h in payload.get("headers") or []}


def message_timestamp(internal_date: Optional[str], date_header: Optional[str]) -> float:
    """``internalDate`` (epoch ms) first, then the Date header, then now."""
    if internal_date:
        try:
            return int(internal_date) / 1000.0
        except ValueError:
            pass
    if date_header:
        try:
            return parsedate_to_datetime(date_header).timestamp()
        except (TypeError, ValueError):
            logger.debug("Unparseable Date header: %r", date_header)
    return time.time()


def gmail_sort_key(external_id: str) -> Tuple[int, Union[int, str]]:
    try:
        return (0, int(external_id, 16))
    except ValueError:
        return (1, external_id)


class GmailConnector(SourceConnector):
    source = RecordSource.EMAIL.value

    def __init__(
        self,
        access_token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        base_url: str = DEFAULT_BASE_URL,
        max_results: int = 50,
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            access_token: Static OAuth access token.
            token_provider: Async callable returning a fresh token; wins over ``access_token``.
            base_url: Users endpoint, ``.../gmail/v1/users/me``.
            max_results: Page size for message listing.
            timeout: Per-request timeout in seconds.
            client: Pre-built AsyncClient (tests pass one with a MockTransport).
        """
        self.access_token = access_token
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.max_results = max_results
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _auth_headers(self) -> Dict[str, str]:
        token = await self.token_provider() if self.token_provider is not None else self.access_token
        if not token:
            raise ConnectorAuthError("no Gmail access token available", source=self.source)
        return {"Authorization": f"Bearer {token}"}

    async def _get(self, path: str, params: Any) -> Dict[str, Any]:
        headers = await self._auth_headers()
        try:
            response = await self._client.get(f"{self.base_url}{path}", headers=headers, params=params)
        except httpx.HTTPError as e:
            raise ConnectorError(f"Gmail request failed: {e}", source=self.source) from e

        if response.status_code in (401, 403):
            raise ConnectorAuthError(
                f"Gmail rejected credentials ({response.status_code})",
                source=self.source,
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise ConnectorError(
                f"Gmail returned {response.status_code} for {path}",
                source=self.source,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ConnectorError(f"Gmail returned invalid JSON for {path}", source=self.source) from e

    async def list_since(self, cursor: SyncCursor) -> List[str]:
        params: Dict[str, Any] = {"maxResults": self.max_results}
        if cursor.last_sync_at is not None:
            params["q"] = f"after:{int(cursor.last_sync_at)}"

        ids: List[str] = []
        for _ in range(MAX_PAGES):
            data = await self._get("/messages", params)
            ids.extend(m["id"] for m in data.get("messages") or [] if m.get("id"))
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}
        logger.info("Gmail listed %d message(s) (query=%s)", len(ids), params.get("q", "<all>"))
        return ids

    async def fetch_detail(self, external_id: str, full: bool = True) -> RawMessage:
        if full:
            params: Any = {"format": "full"}
        else:
            params = [("format", "metadata")] + [("metadataHeaders", h) for h in METADATA_HEADERS]
        data = await self._get(f"/messages/{external_id}", params)

        payload = data.get("payload") or {}
        headers = headers_of(payload)
        snippet = data.get("snippet") or ""
        subject = headers.get("subject", "").strip()
        text = extract_body(payload, snippet) if full else html.unescape(snippet)

        lines = []
        if headers.get("from"):
            lines.append(f"From: {headers['from']}")
        if headers.get("to"):
            lines.append(f"To: {headers['to']}")
        if subject:
            lines.append(f"Subject: {subject}")
        if text:
            lines.append("")
            lines.append(text)

        return RawMessage(
            title=subject or html.unescape(snippet)[:80],
            body="\n".join(lines).strip(),
            external_id=data.get("id") or external_id,
            timestamp=message_timestamp(data.get("internalDate"), headers.get("date")),
            metadata={
                "thread_id": data.get("threadId"),
                "labels": data.get("labelIds") or [],
                "from": headers.get("from"),
            },
        )

    def sort_key(self, external_id: str):
        return gmail_sort_key(external_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
