"""Article page download and HTML to Markdown conversion."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import requests
import trafilatura
from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

# WeChat pages embed the article body in a script variable, either as
# ``content_noencode: JsDecode('...')`` or as a plain quoted string.
_WECHAT_CONTENT_PATTERNS = (
    re.compile(r"content_noencode\s*:\s*JsDecode\s*\(\s*['\"](.+?)['\"]\s*\)", re.DOTALL),
    re.compile(r"content_noencode\s*:\s*[\"'](.+?)[\"']", re.DOTALL),
)

_JS_HEX_ESCAPES = {
    "5c": "\\",
    "0d": "\r",
    "22": '"',
    "26": "&",
    "27": "'",
    "3c": "<",
    "3e": ">",
    "0a": "\n",
}
_JS_HEX_ESCAPE = re.compile(r"\\x(5c|0d|22|26|27|3c|3e|0a)", re.IGNORECASE)


class ContentFetchError(Exception):
    """Raised when an article page cannot be downloaded."""


@dataclass(frozen=True)
class ParsedContent:
    markdown: str
    clean_html: str


def decode_js_escapes(content: str) -> str:
    """Decode the ``\\xNN`` escapes WeChat uses inside ``content_noencode``."""
    return _JS_HEX_ESCAPE.sub(lambda m: _JS_HEX_ESCAPES[m.group(1).lower()], content)


def extract_wechat_content(html: str) -> str:
    """Return the embedded article body, or ``html`` unchanged if there is none."""
    for pattern in _WECHAT_CONTENT_PATTERNS:
        match = pattern.search(html)
        if match and match.group(1):
            logger.debug("Found embedded WeChat content")
            return decode_js_escapes(match.group(1))
    return html


def clean_html(html: str) -> str:
    """Strip scripts, styles, comments, empty paragraphs and inline styles."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    for paragraph in soup.find_all("p"):
        if not paragraph.get_text(strip=True) and not paragraph.find("img"):
            paragraph.decompose()
    for tag in soup.find_all(style=True):
        del tag["style"]
    body = soup.body
    return body.decode_contents() if body is not None else str(soup)


def html_to_markdown(html: str, url: str | None = None) -> str:
    """Convert article HTML to Markdown, falling back to plain text."""
    extracted = trafilatura.extract(
        html,
        url=url,
        output_format="markdown",
        include_images=True,
        include_links=True,
        favor_recall=True,
    )
    if extracted:
        return extracted.strip()

    text = BeautifulSoup(html, "html.parser").get_text("\n", strip=True)
    return text


def parse_content(html: str, url: str | None = None, clean: bool = True) -> ParsedContent:
    body = extract_wechat_content(html)
    cleaned = clean_html(body) if clean else body
    return ParsedContent(markdown=html_to_markdown(cleaned, url=url), clean_html=cleaned)


class ContentFetcher:
    """Downloads article pages and converts them to Markdown."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = _DEFAULT_USER_AGENT,
        clean: bool = True,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.clean = clean

    def fetch(self, url: str) -> ParsedContent:
        """Download ``url`` and parse it.

        Raises:
            ContentFetchError: The request failed or returned a non-2xx status.
        """
        try:
            response = requests.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                allow_redirects=True,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ContentFetchError(f"Failed to fetch {url}: {exc}") from exc

        parsed = parse_content(response.text, url=url, clean=self.clean)
        logger.info("Fetched %d characters of content from %s", len(parsed.markdown), url)
        return parsed
