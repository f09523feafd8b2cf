# src/mailimport/utils/transform.py
"""
Body normalization for imported rows.

A sent message body (usually HTML from Gmail, sometimes plain text) is
reduced to the text the user actually wrote:

1. cut at the tightest reply/forward boundary and at the signature delimiter
2. convert markup to plain text while keeping line structure
3. truncate to the configured character limit
"""

from __future__ import annotations
import re
import warnings
from typing import Optional, Tuple

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning, NavigableString

__all__ = ["DEFAULT_MAX_CHARS", "find_reply_cut", "strip_quoted_reply", "html_to_text", "normalize_body"]

DEFAULT_MAX_CHARS = 25000

# bare URLs are valid bodies
warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)

# ---------------------------------------------------------------------
# Reply / forward boundaries, in priority order. When several patterns
# cut at the same offset, the earlier entry wins.
# ---------------------------------------------------------------------
_REPLY_BOUNDARIES: Tuple[re.Pattern, ...] = (
    # "On Mon, Jan 1, 2024 at 9:00 AM Jane <jane@x.com> wrote:" (may wrap, never spans a blank line)
    re.compile(r"(?:^|(?<=[\n>]))[ \t]*On\s(?:(?!\n[ \t]*\n).){1,300}?\swrote:", re.IGNORECASE | re.DOTALL),
    # Outlook style quoted header block
    re.compile(
        r"(?:^|(?<=[\n>]))[ \t]*(?:<b>)?From:(?:</b>)?.{1,300}?(?:Sent|Date):.{1,300}?To:.{1,1000}?Subject:",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"-{2,}\s*Original Message\s*-{2,}", re.IGNORECASE),
    re.compile(r"-{2,}\s*Forwarded message\s*-{2,}", re.IGNORECASE),
    re.compile(r"<blockquote\b|<div[^>]*\bclass=[\"']?gmail_quote", re.IGNORECASE),
    re.compile(r"(?m)^[ \t]*(?:>|&gt;)[ \t]"),
    re.compile(r"_{10,}"),
)

# "-- " (RFC 3676) or "__" alone on a line
_SIGNATURE_DELIMITER = re.compile(r"(?m)^(?:-- ?|__)[ \t]*\r?$")

_BLOCK_TAGS = ["div", "p", "li", "h1", "h2", "h3", "h4", "h5", "h6"]
_HORIZONTAL_SPACE = re.compile(r"[ \t\f\v\u00a0]+")
_SOURCE_NEWLINE = re.compile(r"[\r\n]+")
_BLANK_LINES = re.compile(r"\n{3,}")

# placeholder for block boundaries until runs of them are merged
_BLOCK_MARK = "\x1e"
_BLOCK_RUN = re.compile(r"[ \n\x1e]*\x1e[ \n\x1e]*")
_EMPTY_BLOCK = re.compile(r"\x1e *\n[ \n]*\x1e")


def _has_text(fragment: str) -> bool:
    return bool(html_to_text(fragment))


def find_reply_cut(body: str) -> Optional[int]:
    """
    Return the offset at which quoted history starts, or None.

    Every boundary pattern is searched; a pattern contributes its first
    match that leaves a non-empty prefix. The smallest such offset wins
    (shortest non-empty prefix), ties going to the pattern listed first.
    """
    best: Optional[int] = None
    for pattern in _REPLY_BOUNDARIES:
        for match in pattern.finditer(body):
            pos = match.start()
            if best is not None and pos >= best:
                break
            if _has_text(body[:pos]):
                best = pos
                break
    return best


def strip_quoted_reply(body: str) -> str:
    """
    Drop quoted replies, forwarded history and the signature from a body.

    Args:
        body: Raw message body (HTML or plain text)

    Returns:
        The part of the body above the tightest reply boundary and above the
        first signature delimiter. Bodies without any boundary are returned
        unchanged.
    """
    if not body:
        return ""

    cut = find_reply_cut(body)
    if cut is not None:
        body = body[:cut]

    sig = _SIGNATURE_DELIMITER.search(body)
    if sig and _has_text(body[:sig.start()]):
        body = body[:sig.start()]
    return body


def _block_break(match: re.Match) -> str:
    # <div><br></div> between blocks is an empty line
    return "\n\n" if _EMPTY_BLOCK.search(match.group()) else "\n"


def html_to_text(body: str) -> str:
    """
    Convert an HTML (or HTML-ish) body into plain text.

    - <script>/<style> are dropped entirely
    - <br> and block-level tags (div, p, li, h1-h6) become line breaks;
      adjacent blocks produce one break, an empty block holding only a
      <br> produces a blank line
    - in HTML, source newlines are ordinary whitespace; in plain text they
      are kept
    - every other tag is stripped, entities are decoded
    - line endings are normalized, runs of spaces/tabs collapse to one
      space, runs of blank lines collapse to a single blank line and the
      result is trimmed
    """
    if not body:
        return ""

    soup = BeautifulSoup(body, "html.parser")
    if soup.find() is not None:
        for node in soup.find_all(string=_SOURCE_NEWLINE):
            if type(node) is NavigableString:
                node.replace_with(_SOURCE_NEWLINE.sub(" ", node))
    for tag in soup(["script", "style"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before(_BLOCK_MARK)
        tag.insert_after(_BLOCK_MARK)

    text = soup.get_text()
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = _BLOCK_RUN.sub(_block_break, text)
    text = "\n".join(line.strip() for line in text.split("\n")).strip()
    return _BLANK_LINES.sub("\n\n", text)


def normalize_body(body: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """
    Full normalization: reply stripping, markup removal, truncation.

    Truncation is silent; no ellipsis or marker is appended.
    """
    text = html_to_text(strip_quoted_reply(body or ""))
    if len(text) > max_chars:
        text = text[:max_chars]
    return text
