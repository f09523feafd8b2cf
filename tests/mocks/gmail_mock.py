"""
Mock Gmail API service and in-memory message store for testing.
"""

import base64
from datetime import datetime
from typing import Dict, List, Optional


def encode_b64(text: str) -> str:
    """URL-safe base64 without padding, the way Gmail returns payloads."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def raw_source(sender: str, to: str = "client@example.com", subject: str = "Hello", body: str = "Hi") -> str:
    """Minimal RFC 822 message source."""
    return f"From: {sender}\r\nTo: {to}\r\nSubject: {subject}\r\n\r\n{body}\r\n"


# -----------------------------
# googleapiclient-shaped service
# -----------------------------
class MockGmailService:
    """
    Mock Gmail API service.

    Args:
        threads: thread id -> list of `format="full"` message dicts
        raw: message id -> RFC 822 source served by messages().get(format="raw")
        page_size: threads per list page, to exercise pagination
    """

    def __init__(self, threads: Optional[Dict[str, List[Dict]]] = None, raw: Optional[Dict[str, str]] = None, page_size: int = 100):
        self.threads = threads or {}
        self.raw = raw or {}
        self.page_size = page_size
        self.list_calls: List[Dict] = []
        self.get_calls: List[Dict] = []
        self.raw_calls: List[Dict] = []

    def users(self):
        return MockUsersResource(self)


class MockUsersResource:
    def __init__(self, service: MockGmailService):
        self.service = service

    def threads(self):
        return MockThreadsResource(self.service)

    def messages(self):
        return MockMessagesResource(self.service)


class MockThreadsResource:
    def __init__(self, service: MockGmailService):
        self.service = service

    def list(self, **kwargs):
        self.service.list_calls.append(kwargs)
        ids = list(self.service.threads)
        start = int(kwargs.get("pageToken") or 0)
        end = start + self.service.page_size
        resp = {"threads": [{"id": tid} for tid in ids[start:end]]}
        if end < len(ids):
            resp["nextPageToken"] = str(end)
        return MockRequest(resp)

    def get(self, **kwargs):
        self.service.get_calls.append(kwargs)
        tid = kwargs.get("id")
        return MockRequest({"id": tid, "messages": self.service.threads.get(tid, [])})


class MockMessagesResource:
    def __init__(self, service: MockGmailService):
        self.service = service

    def get(self, **kwargs):
        self.service.raw_calls.append(kwargs)
        msg_id = kwargs.get("id")
        return MockRequest({"id": msg_id, "raw": encode_b64(self.service.raw.get(msg_id, ""))})


class MockRequest:
    """Mock request object that returns data when execute() is called."""

    def __init__(self, data: Dict):
        self.data = data

    def execute(self):
        return self.data


def full_message(
    msg_id: str,
    sender: str,
    html: Optional[str] = None,
    plain: Optional[str] = None,
    internal_ms: Optional[int] = None,
    date_header: Optional[str] = None,
    to: str = "client@example.com",
    subject: str = "Hello",
) -> Dict:
    """A `format="full"` message dict with a multipart/alternative payload."""
    headers = [
        {"name": "From", "value": sender},
        {"name": "To", "value": to},
        {"name": "Subject", "value": subject},
    ]
    if date_header:
        headers.append({"name": "Date", "value": date_header})
    parts = []
    if plain is not None:
        parts.append({"mimeType": "text/plain", "body": {"data": encode_b64(plain)}})
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": encode_b64(html)}})
    data = {
        "id": msg_id,
        "threadId": f"t-{msg_id}",
        "payload": {"mimeType": "multipart/alternative", "headers": headers, "parts": parts},
    }
    if internal_ms is not None:
        data["internalDate"] = str(internal_ms)
    return data


# -----------------------------
# In-memory MessageStore
# -----------------------------
class FakeMessage:
    """
    Message with fixed fields.

    `raw` may be an exception instance, raised by get_raw_content(); a
    `date` of None makes the date property raise.
    """

    def __init__(self, msg_id: str, sender: str, date: Optional[datetime], body: str = "<p>Hi</p>", raw=None, to: str = "client@example.com", subject: str = "Hello"):
        self.id = msg_id
        self.sender = sender
        self.to = to
        self.subject = subject
        self.body = body
        self._date = date
        self._raw = raw_source(sender, to, subject) if raw is None else raw
        self.raw_reads = 0

    @property
    def date(self) -> datetime:
        if self._date is None:
            raise ValueError(f"Message {self.id} has no usable date")
        return self._date

    def get_raw_content(self) -> str:
        self.raw_reads += 1
        if isinstance(self._raw, Exception):
            raise self._raw
        return self._raw


class FakeThread:
    def __init__(self, thread_id: str, messages: List[FakeMessage], error: Optional[Exception] = None):
        self.id = thread_id
        self.messages = messages
        self.error = error

    def get_messages(self) -> List[FakeMessage]:
        if self.error:
            raise self.error
        return list(self.messages)


class FakeMessageStore:
    """MessageStore returning a fixed thread list; records every query."""

    def __init__(self, threads: Optional[List[FakeThread]] = None, error: Optional[Exception] = None):
        self.threads = threads or []
        self.error = error
        self.queries: List[str] = []

    def search(self, query: str) -> List[FakeThread]:
        self.queries.append(query)
        if self.error:
            raise self.error
        return list(self.threads)
