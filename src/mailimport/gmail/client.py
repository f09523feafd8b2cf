from __future__ import annotations
import base64
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional, Protocol, Tuple

from googleapiclient.errors import HttpError

from mailimport.logging import logger
from mailimport.utils.retry import retry_with_backoff


# -----------------------------
# Message store capabilities
# -----------------------------
class Message(Protocol):
    id: str
    sender: str
    to: str
    subject: str
    date: datetime
    body: str
    def get_raw_content(self) -> str: ...


class Thread(Protocol):
    id: str
    def get_messages(self) -> List[Message]: ...


class MessageStore(Protocol):
    def search(self, query: str) -> List[Thread]: ...


def _decode_b64(data: str) -> str:
    """
    Decode Gmail's URL-safe base64 payload into UTF-8 text.

    Gmail sometimes omits padding, so it is restored before decoding.
    Invalid byte sequences are replaced.
    """
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("utf-8")).decode("utf-8", errors="replace")


def _extract_bodies(payload: dict) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract plain and HTML bodies from a Gmail payload tree.

    Recurses through multipart structures; attachments (parts with a
    filename) are ignored.

    Returns:
        (plain_text, html_text); either may be None.
    """
    if not payload or payload.get("filename"):
        return None, None

    mime = payload.get("mimeType") or ""
    data = (payload.get("body") or {}).get("data")

    if data and isinstance(data, str):
        decoded = _decode_b64(data)
        if mime == "text/html":
            return None, decoded
        if mime.startswith("text/"):
            return decoded, None

    plain_best, html_best = None, None
    for part in payload.get("parts") or []:
        p_plain, p_html = _extract_bodies(part)
        if p_plain and not plain_best:
            plain_best = p_plain
        if p_html and not html_best:
            html_best = p_html
        if plain_best and html_best:
            break
    return plain_best, html_best


class GmailMessage:
    """
    One message of a thread, built from a `format="full"` payload.

    The raw RFC 822 source is fetched lazily, only when sender verification
    asks for it.
    """

    def __init__(self, store: "GmailMessageStore", data: Dict) -> None:
        self._store = store
        self._data = data
        self._raw: Optional[str] = None
        payload = data.get("payload") or {}
        self._headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}
        self.id: str = data.get("id", "")
        self.thread_id: str = data.get("threadId", "")
        self.sender: str = self._headers.get("from", "")
        self.to: str = self._headers.get("to", "")
        self.subject: str = self._headers.get("subject", "")
        plain, html_raw = _extract_bodies(payload)
        self.body: str = html_raw or plain or ""

    @property
    def date(self) -> datetime:
        """
        Send time as an aware datetime.

        Uses Gmail's `internalDate` (epoch millis) and falls back to the Date
        header. Raises ValueError when neither is usable.
        """
        internal = self._data.get("internalDate")
        if internal:
            return datetime.fromtimestamp(int(internal) / 1000, tz=timezone.utc)
        header = self._headers.get("date")
        if header:
            parsed = parsedate_to_datetime(header)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        raise ValueError(f"Message {self.id} has no usable date")

    def get_raw_content(self) -> str:
        if self._raw is None:
            self._raw = self._store.fetch_raw(self.id)
        return self._raw


class GmailThread:
    def __init__(self, store: "GmailMessageStore", thread_id: str) -> None:
        self._store = store
        self.id = thread_id

    def get_messages(self) -> List[GmailMessage]:
        data = self._store.fetch_thread(self.id)
        return [GmailMessage(self._store, m) for m in data.get("messages", [])]


class GmailMessageStore:
    """
    Gmail-backed message store.

    Wraps an authorized googleapiclient Gmail service. Every request is rate
    limited (when a limiter is configured) and retried on HttpError.
    """

    #: OAuth scope used for read-only access to Gmail.
    SCOPES_READONLY = ["https://www.googleapis.com/auth/gmail.readonly"]

    def __init__(
        self,
        gmail_service,
        user_id: str = "me",
        page_size: int = 100,
        rate_limiter=None,
    ) -> None:
        """
        Args:
            gmail_service: googleapiclient Gmail service, authorized read-only
            user_id: Gmail user ID (typically "me")
            page_size: Threads requested per list page (max 500)
            rate_limiter: Optional RateLimiter shared by all calls
        """
        self.svc = gmail_service
        self.user_id = user_id
        self.page_size = page_size
        self.rate_limiter = rate_limiter

    def _throttle(self) -> None:
        if self.rate_limiter:
            self.rate_limiter.acquire()

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(HttpError,))
    def _list_threads_page(self, query: str, page_token: Optional[str] = None) -> Dict:
        self._throttle()
        return self.svc.users().threads().list(
            userId=self.user_id,
            q=query,
            maxResults=self.page_size,
            pageToken=page_token,
        ).execute()

    def search(self, query: str) -> List[GmailThread]:
        """
        All threads matching `query`, in the order Gmail lists them.

        Raises:
            HttpError: If a list page still fails after retries
        """
        threads: List[GmailThread] = []
        page_token: Optional[str] = None
        while True:
            resp = self._list_threads_page(query, page_token)
            for item in resp.get("threads", []):
                threads.append(GmailThread(self, item["id"]))
            page_token = resp.get("nextPageToken")
            if not page_token:
                break
        logger.info(f"Gmail search '{query}' returned {len(threads)} threads")
        return threads

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(HttpError,))
    def fetch_thread(self, thread_id: str) -> Dict:
        self._throttle()
        return self.svc.users().threads().get(
            userId=self.user_id,
            id=thread_id,
            format="full",
        ).execute()

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(HttpError,))
    def fetch_raw(self, message_id: str) -> str:
        """RFC 822 source of a message, decoded to text."""
        self._throttle()
        resp = self.svc.users().messages().get(
            userId=self.user_id,
            id=message_id,
            format="raw",
        ).execute()
        return _decode_b64(resp.get("raw", ""))
