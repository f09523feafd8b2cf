"""
Sender verification against the raw protocol source.

The client-rendered "From" can show a display alias, or belong to another
participant of a thread the user only replied in. The `From:` header of the
RFC 822 source is the authoritative sender; the client field is used only
when the raw source cannot be read.
"""

from __future__ import annotations
import re

from mailimport.logging import logger

_ANGLE_ADDRESS = re.compile(r"<([^<>]+)>")
_FROM_HEADER = re.compile(r"^From:[ \t]*(.*(?:\r?\n[ \t]+.*)*)", re.IGNORECASE | re.MULTILINE)
_HEADER_END = re.compile(r"\r?\n\r?\n")


class SenderParseError(ValueError):
    """Raw source has no usable From: header."""


def extract_address(value: str) -> str:
    """
    Bare address from a header value.

    `Alias Name <real@address.com>` gives `real@address.com`; a value without
    angle brackets is returned trimmed.
    """
    value = value or ""
    match = _ANGLE_ADDRESS.search(value)
    if match:
        return match.group(1).strip()
    return value.strip()


def sender_from_raw(raw: str) -> str:
    """
    Parse the `From:` header out of an RFC 822 message source.

    Only the header section (up to the first blank line) is searched, so a
    quoted "From:" line in the body is never picked up. Folded header lines
    are unfolded.

    Raises:
        SenderParseError: If the header section has no From: header
    """
    raw = raw or ""
    end = _HEADER_END.search(raw)
    headers = raw[:end.start()] if end else raw
    match = _FROM_HEADER.search(headers)
    if not match:
        raise SenderParseError("no From: header in raw source")
    value = re.sub(r"\r?\n[ \t]+", " ", match.group(1))
    address = extract_address(value)
    if not address:
        raise SenderParseError("empty From: header in raw source")
    return address


def authoritative_sender(message) -> str:
    """
    Sender address of `message`, preferring its raw protocol source.

    Read or parse failures of the raw source are logged and the client
    reported sender is used instead.
    """
    try:
        return sender_from_raw(message.get_raw_content())
    except Exception as e:
        logger.warning(f"Raw header unavailable for message {getattr(message, 'id', '?')}: {e}; using client sender")
        return extract_address(message.sender)


def is_sent_by(message, address: str) -> bool:
    """True iff the authoritative sender equals `address` (case-insensitive)."""
    target = (address or "").strip().casefold()
    if not target:
        return False
    return authoritative_sender(message).casefold() == target
