"""
HTTP feed fetching with content validation and retries.

A feed is fetched with browser-like headers, rejected unless the body
looks like XML/RSS/Atom, stripped of leading garbage and byte-order marks,
then handed to the RSS parser. The whole sequence is retried with
exponential backoff.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Iterator, Optional

import requests
from urllib3.exceptions import ReadTimeoutError

from podcast_rss_fetch.errors import (
    FeedFetchError,
    FetchTimeout,
    HttpStatusError,
    InvalidFeedContent,
)
from podcast_rss_fetch.ingestion.rss_parser import ParsedFeed, parse_feed_text
from podcast_rss_fetch.retry import retry_with_backoff

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

FEED_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/rss+xml, application/xml, text/xml, */*",
    "Accept-Language": "en-US,en;q=0.9",
}

BOM = "\ufeff"
FEED_START = re.compile(r"<\?xml|<rss|<feed", re.IGNORECASE)
PREFIX_LENGTH = 100

# Small reads so the deadline is checked while a slow server trickles bytes
FEED_CHUNK_SIZE = 1024
DEFAULT_CHARSET = "utf-8"


@dataclass
class FeedResponse:
    """Body and content type of a successful feed request."""

    url: str
    status_code: int
    content_type: str
    text: str


def is_timeout(exc: requests.RequestException) -> bool:
    """
    True for connect/read timeouts, including read timeouts raised while
    streaming, which requests reports as ``ConnectionError``.
    """
    if isinstance(exc, requests.Timeout):
        return True
    return any(isinstance(arg, ReadTimeoutError) for arg in exc.args)


def read_with_deadline(
    response: requests.Response,
    deadline: float,
    chunk_size: int,
    url: str,
    timeout: float,
) -> Iterator[bytes]:
    """
    Yield body chunks, raising FetchTimeout once ``deadline``
    (a ``time.monotonic()`` value) has passed.
    """
    for chunk in response.iter_content(chunk_size=chunk_size):
        if time.monotonic() > deadline:
            raise FetchTimeout(f"Exceeded {timeout}s total time reading {url}")
        if chunk:
            yield chunk


def _charset(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip("'\"")
    return DEFAULT_CHARSET


def decode_body(body: bytes, content_type: str) -> str:
    """Decode with the declared charset, falling back to UTF-8."""
    try:
        return body.decode(_charset(content_type), errors="replace")
    except LookupError:
        return body.decode(DEFAULT_CHARSET, errors="replace")


def request_feed(
    url: str,
    timeout: float = 10.0,
    session: Optional[requests.Session] = None,
) -> FeedResponse:
    """
    GET a feed URL and read its body.

    ``timeout`` bounds the whole request, from connecting until the
    last byte of the body, not only each socket read.

    Args:
        url: Feed URL
        timeout: Total time limit in seconds
        session: Optional requests session

    Returns:
        FeedResponse of the 2xx answer

    Raises:
        FetchTimeout: If the request or body read timed out
        HttpStatusError: If the server answered with a non-2xx status
        FeedFetchError: For any other transport failure
    """
    http = session or requests
    deadline = time.monotonic() + timeout
    try:
        with http.get(url, headers=FEED_HEADERS, timeout=timeout, stream=True) as response:
            if not 200 <= response.status_code < 300:
                raise HttpStatusError(response.status_code, response.reason or "", url)
            content_type = response.headers.get("content-type", "")
            body = b"".join(
                read_with_deadline(response, deadline, FEED_CHUNK_SIZE, url, timeout)
            )
    except requests.RequestException as exc:
        if is_timeout(exc):
            raise FetchTimeout(f"Timed out after {timeout}s fetching {url}") from exc
        raise FeedFetchError(f"Request failed for {url}: {exc}") from exc

    return FeedResponse(
        url=url,
        status_code=response.status_code,
        content_type=content_type,
        text=decode_body(body, content_type),
    )


def validate_feed_content(text: str, content_type: str = "") -> None:
    """
    Reject bodies that do not start like an XML, RSS or Atom document.

    Leading whitespace and a byte-order mark are ignored. The XML
    declaration is matched case-insensitively.

    Raises:
        InvalidFeedContent: If the body does not look like a feed
    """
    trimmed = text.strip().lstrip(BOM).lstrip()
    if trimmed[:5].lower() == "<?xml" or trimmed.startswith("<rss") or trimmed.startswith("<feed"):
        return
    raise InvalidFeedContent(content_type, trimmed[:PREFIX_LENGTH])


def clean_feed_content(text: str) -> str:
    """
    Drop anything before the first XML/RSS/Atom token and a leading BOM.

    Example:
        >>> clean_feed_content("\\ufeff  junk<?xml version='1.0'?><rss/>")
        "<?xml version='1.0'?><rss/>"
    """
    cleaned = text.strip()

    match = FEED_START.search(cleaned)
    if match and match.start() > 0:
        logger.warning("Removing %d characters before XML content", match.start())
        cleaned = cleaned[match.start():]

    if cleaned.startswith(BOM):
        cleaned = cleaned[1:]

    return cleaned


class FeedFetcher:
    """
    Fetches and parses podcast feeds.

    Example:
        >>> fetcher = FeedFetcher()
        >>> feed = fetcher.fetch("https://example.com/feed.xml")
        >>> print(feed.title, len(feed.items))
    """

    def __init__(
        self,
        timeout: float = 10.0,
        attempts: int = 3,
        backoff_base: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.attempts = attempts
        self.backoff_base = backoff_base
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def fetch_once(self, url: str) -> ParsedFeed:
        """Single attempt: GET, validate, clean and parse."""
        response = request_feed(url, timeout=self.timeout, session=self.session)
        content_type = response.content_type
        text = response.text

        logger.debug("Content type: %s, first 200 chars: %s", content_type, text[:200])
        validate_feed_content(text, content_type)

        return parse_feed_text(clean_feed_content(text))

    def fetch(self, url: str) -> ParsedFeed:
        """
        Fetch a feed, retrying with exponential backoff.

        Args:
            url: Feed URL

        Returns:
            ParsedFeed

        Raises:
            FeedFetchError: The last failure once all attempts are used
        """
        return retry_with_backoff(
            lambda: self.fetch_once(url),
            attempts=self.attempts,
            base_delay=self.backoff_base,
            description=f"RSS feed {url}",
        )
