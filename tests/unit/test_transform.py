"""
Unit tests for body normalization.
"""

import pytest
from mailimport.utils.transform import (
    find_reply_cut,
    html_to_text,
    normalize_body,
    strip_quoted_reply,
)


class TestHtmlToText:
    """Tests for html_to_text function."""

    def test_empty_string(self):
        assert html_to_text("") == ""
        assert html_to_text(None) == ""

    def test_br_becomes_newline(self):
        assert html_to_text("Hello<br>World") == "Hello\nWorld"
        assert html_to_text("Hello<br/>World") == "Hello\nWorld"

    def test_block_tags_become_lines(self):
        html = "<div>First</div><p>Second</p><ul><li>Third</li></ul><h2>Fourth</h2>"
        assert html_to_text(html) == "First\nSecond\nThird\nFourth"

    def test_script_and_style_removed(self):
        html = "<style>p { color: red; }</style><p>Visible</p><script>alert(1)</script>"
        assert html_to_text(html) == "Visible"

    def test_entities_decoded(self):
        assert html_to_text("Tom &amp; Jerry &lt;3 &quot;cheese&quot; &#39;now&#39;&nbsp;!") == \
            "Tom & Jerry <3 \"cheese\" 'now' !"

    def test_whitespace_collapsed_and_lines_trimmed(self):
        assert html_to_text("  Hello \t  there  \r\n  friend  ") == "Hello there\nfriend"

    def test_blank_line_runs_collapse_to_one(self):
        assert html_to_text("First paragraph\r\n\r\n\r\n\r\nSecond paragraph") == \
            "First paragraph\n\nSecond paragraph"

    def test_paragraphs_kept_in_gmail_html(self):
        html = "<div>Hi Anna,</div><div><br></div><div>The report is attached.</div><div>Thanks</div>"
        assert html_to_text(html) == "Hi Anna,\n\nThe report is attached.\nThanks"

    def test_source_newlines_in_html_are_whitespace(self):
        html = "<div>\n  Hello\n  world\n</div>\n\n\n<div>Next</div>"
        assert html_to_text(html) == "Hello world\nNext"

    def test_double_br_keeps_blank_line(self):
        assert html_to_text("One<br><br><br>Two") == "One\n\nTwo"

    def test_inline_tags_stripped(self):
        assert html_to_text('<b>Bold</b> and <a href="https://x.example">link</a>') == "Bold and link"

    def test_plain_text_passthrough(self):
        assert html_to_text("Just text") == "Just text"


class TestStripQuotedReply:
    """Tests for reply and signature stripping."""

    def test_no_boundary_unchanged(self):
        assert strip_quoted_reply("Just a message") == "Just a message"

    def test_on_wrote_boundary(self):
        body = "Reply text\n\nOn Mon, Jan 1 wrote:\nQuoted"
        assert html_to_text(strip_quoted_reply(body)) == "Reply text"

    def test_wrapped_on_wrote_boundary(self):
        body = "Thanks!\n\nOn Mon, Jan 1, 2024 at 9:00 AM Jane Doe\n<jane@example.com> wrote:\n> old"
        assert html_to_text(strip_quoted_reply(body)) == "Thanks!"

    def test_on_without_wrote_not_cut(self):
        body = "On Monday we ship.\n\nThe customer wrote: nothing"
        assert find_reply_cut(body) is None

    def test_gmail_quote_div(self):
        body = '<p>Sounds good</p><div class="gmail_quote">On Tue wrote:<blockquote>old</blockquote></div>'
        assert html_to_text(strip_quoted_reply(body)) == "Sounds good"

    def test_blockquote(self):
        assert html_to_text(strip_quoted_reply("<p>New</p><blockquote>Old</blockquote>")) == "New"

    def test_outlook_header_block(self):
        body = "My answer\r\n\r\nFrom: Bob <bob@x.com>\r\nSent: Monday\r\nTo: me\r\nSubject: Re: hi\r\n\r\nold"
        assert html_to_text(strip_quoted_reply(body)) == "My answer"

    def test_original_message_divider(self):
        body = "Top\n-----Original Message-----\nBottom"
        assert html_to_text(strip_quoted_reply(body)) == "Top"

    def test_forwarded_message_divider(self):
        body = "FYI\n---------- Forwarded message ---------\nFrom: someone"
        assert html_to_text(strip_quoted_reply(body)) == "FYI"

    def test_quoted_lines(self):
        body = "Agreed.\n> earlier text\n> more"
        assert html_to_text(strip_quoted_reply(body)) == "Agreed."

    def test_escaped_quote_marker(self):
        body = "Agreed.<br>\n&gt; earlier text"
        assert html_to_text(strip_quoted_reply(body)) == "Agreed."

    def test_underscore_divider(self):
        body = "Answer\n____________________\nFrom: Outlook"
        assert html_to_text(strip_quoted_reply(body)) == "Answer"

    def test_signature_removed(self):
        body = "Body text\n-- \nJane Doe\nACME Corp"
        assert html_to_text(strip_quoted_reply(body)) == "Body text"

    def test_double_underscore_signature(self):
        body = "Body text\n__\nJane"
        assert html_to_text(strip_quoted_reply(body)) == "Body text"

    def test_tightest_boundary_wins(self):
        body = "Short\n> quoted\n\nOn Mon, Jan 1 wrote:\nolder"
        assert find_reply_cut(body) == body.index("> quoted")

    def test_boundary_with_empty_prefix_ignored(self):
        # a quote at the very top would leave nothing; the later divider is used
        body = "> top quote\nMy text\n-----Original Message-----\nold"
        assert html_to_text(strip_quoted_reply(body)) == "> top quote\nMy text"

    def test_signature_only_body_kept(self):
        assert strip_quoted_reply("-- \nJane") == "-- \nJane"


class TestNormalizeBody:
    """Tests for the full normalization pipeline."""

    def test_html_reply(self):
        body = "<div>Hi team,</div><div>See attached.</div><br><div class=\"gmail_quote\">On Fri wrote:</div>"
        assert normalize_body(body) == "Hi team,\nSee attached."

    def test_truncation_is_silent(self):
        result = normalize_body("x" * 100, max_chars=10)
        assert result == "x" * 10

    def test_default_limit(self):
        assert len(normalize_body("y" * 30000)) == 25000

    def test_empty(self):
        assert normalize_body("") == ""
        assert normalize_body(None) == ""

    @pytest.mark.parametrize("body", ["https://example.com/report", "report.pdf"])
    def test_locator_like_bodies(self, body):
        assert normalize_body(body) == body
