"""Tests for article page parsing and download."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from wewe_sync.parsing.content import (
    ContentFetcher,
    ContentFetchError,
    clean_html,
    decode_js_escapes,
    extract_wechat_content,
    html_to_markdown,
    parse_content,
)


class TestWeChatExtraction:
    """Tests for the embedded content_noencode extraction."""

    def test_decode_js_escapes(self):
        encoded = r"\x3cp\x3eTom \x26 Jerry\x3c/p\x3e\x0a\x22quoted\x22 \x27single\x27 \x5c"
        assert decode_js_escapes(encoded) == "<p>Tom & Jerry</p>\n\"quoted\" 'single' \\"

    def test_decode_is_case_insensitive(self):
        assert decode_js_escapes(r"\x3Cb\x3E") == "<b>"

    def test_extract_js_decode_variant(self):
        html = r"""<script>var msg = { content_noencode: JsDecode('\x3cp\x3eHello\x3c/p\x3e'), other: 1 };</script>"""
        assert extract_wechat_content(html) == "<p>Hello</p>"

    def test_extract_plain_string_variant(self):
        html = r"""<script>content_noencode: "\x3cp\x3eWorld\x3c/p\x3e",</script>"""
        assert extract_wechat_content(html) == "<p>World</p>"

    def test_extract_falls_back_to_original(self):
        html = "<html><body><p>Plain</p></body></html>"
        assert extract_wechat_content(html) == html


class TestCleanHtml:
    """Tests for HTML cleanup."""

    def test_removes_noise(self):
        html = (
            "<html><head><style>p{}</style></head><body>"
            "<script>alert(1)</script><!-- note -->"
            '<p style="color:red">Keep me</p><p>   </p><p><img src="x.png"></p>'
            "</body></html>"
        )

        cleaned = clean_html(html)

        assert "Keep me" in cleaned
        assert "script" not in cleaned
        assert "style" not in cleaned
        assert "note" not in cleaned
        assert "<p></p>" not in cleaned
        assert 'src="x.png"' in cleaned

    def test_fragment_without_body(self):
        assert "Hi" in clean_html("<p>Hi</p>")


class TestMarkdown:
    """Tests for HTML to Markdown conversion."""

    def test_uses_trafilatura_output(self):
        with patch("trafilatura.extract", return_value="  # Title\n\nBody  ") as mock_extract:
            assert html_to_markdown("<p>Body</p>", url="https://mp.weixin.qq.com/s/a") == "# Title\n\nBody"

        assert mock_extract.call_args.kwargs["output_format"] == "markdown"
        assert mock_extract.call_args.kwargs["url"] == "https://mp.weixin.qq.com/s/a"

    def test_falls_back_to_plain_text(self):
        with patch("trafilatura.extract", return_value=None):
            text = html_to_markdown("<div><p>First</p><p>Second</p></div>")

        assert text == "First\nSecond"

    def test_parse_content_combines_steps(self):
        html = r"""<script>content_noencode: JsDecode('\x3cp\x3eEmbedded\x3c/p\x3e')</script>"""
        with patch("trafilatura.extract", return_value=None):
            parsed = parse_content(html)

        assert parsed.clean_html == "<p>Embedded</p>"
        assert parsed.markdown == "Embedded"


class TestContentFetcher:
    """Tests for ContentFetcher."""

    def test_fetch_parses_page(self):
        response = MagicMock()
        response.text = "<html><body><p>Page text</p></body></html>"
        response.raise_for_status = MagicMock()

        with patch("requests.get", return_value=response) as mock_get, patch(
            "trafilatura.extract", return_value="Page text"
        ):
            parsed = ContentFetcher(timeout=10).fetch("https://mp.weixin.qq.com/s/a")

        assert parsed.markdown == "Page text"
        assert mock_get.call_args.kwargs["timeout"] == 10
        assert "User-Agent" in mock_get.call_args.kwargs["headers"]

    def test_fetch_http_error(self):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")

        with patch("requests.get", return_value=response):
            with pytest.raises(ContentFetchError, match="404"):
                ContentFetcher().fetch("https://mp.weixin.qq.com/s/missing")

    def test_fetch_network_error(self):
        with patch("requests.get", side_effect=requests.ConnectionError("offline")):
            with pytest.raises(ContentFetchError):
                ContentFetcher().fetch("https://mp.weixin.qq.com/s/a")
