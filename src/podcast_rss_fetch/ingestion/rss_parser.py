"""
RSS feed parsing and episode metadata extraction.

Turns feed text into tagged dataclasses (ParsedFeed, FeedItem, Enclosure)
with explicit optional fields, using feedparser for the XML and
python-dateutil for publication dates. Missing values are None, never
empty-string placeholders.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
from dateutil import parser as date_parser

from podcast_rss_fetch.errors import FeedParseError

logger = logging.getLogger(__name__)

EXPLICIT_VALUES = ("yes", "true", "explicit")


# ---------------------------------------------------------------------------
#  Data models
# ---------------------------------------------------------------------------

@dataclass
class Enclosure:
    """Media attachment of a feed item."""

    url: Optional[str] = None
    type: Optional[str] = None
    length: Optional[int] = None


@dataclass
class FeedItem:
    """
    One entry of a feed.

    Attributes:
        title: Item title
        description: Summary or description text
        link: Item web page
        guid: Globally unique identifier from the feed
        enclosure: Attached media, if any
        pub_date: Publication date (timezone-aware) or None
        duration: Duration as published (e.g., "01:23:45" or "5025")
        episode_number: iTunes episode number
        episode_type: iTunes episode type (full, trailer, bonus)
        image_url: Item artwork
        explicit: iTunes explicit flag
    """

    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    guid: Optional[str] = None
    enclosure: Optional[Enclosure] = None
    pub_date: Optional[datetime] = None
    duration: Optional[str] = None
    episode_number: Optional[int] = None
    episode_type: Optional[str] = None
    image_url: Optional[str] = None
    explicit: bool = False


@dataclass
class ParsedFeed:
    """Podcast-level metadata plus the ordered item list."""

    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    language: Optional[str] = None
    copyright: Optional[str] = None
    author: Optional[str] = None
    managing_editor: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    explicit: bool = False
    items: List[FeedItem] = field(default_factory=list)


# ---------------------------------------------------------------------------
#  Field helpers
# ---------------------------------------------------------------------------

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_explicit(value: Any) -> bool:
    """
    Interpret an iTunes explicit flag.

    feedparser already converts ``yes`` to True and ``clean`` to False;
    raw strings are accepted too.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in EXPLICIT_VALUES
    return False


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer field, returning None for missing or invalid values."""
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_pub_date(entry: Any) -> Optional[datetime]:
    """
    Parse the publication date of a feed entry.

    Uses the raw ``published`` string first and feedparser's parsed
    struct as fallback. Naive dates are taken as UTC.

    Returns:
        Timezone-aware datetime, or None if no date could be parsed
    """
    raw_date = entry.get("published") or entry.get("updated")
    if raw_date:
        try:
            parsed = date_parser.parse(raw_date)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except (ValueError, OverflowError) as e:
            logger.debug("Failed to parse date '%s': %s", raw_date, e)

    struct = entry.get("published_parsed") or entry.get("updated_parsed")
    if struct:
        return datetime(*struct[:6], tzinfo=timezone.utc)
    return None


def _image_url(node: Any) -> Optional[str]:
    image = node.get("image")
    if image:
        return _text(image.get("href") or image.get("url"))
    return None


def _first_tag(node: Any) -> Optional[str]:
    for tag in node.get("tags") or []:
        term = _text(tag.get("term"))
        if term:
            return term
    return None


def _email(feed: Any) -> Optional[str]:
    for key in ("author_detail", "publisher_detail"):
        detail = feed.get(key)
        if detail and detail.get("email"):
            return _text(detail.get("email"))
    return None


def _enclosure(entry: Any) -> Optional[Enclosure]:
    enclosures = entry.get("enclosures") or []
    if not enclosures:
        return None
    first = enclosures[0]
    return Enclosure(
        url=_text(first.get("href") or first.get("url")),
        type=_text(first.get("type")),
        length=parse_int(first.get("length")),
    )


# ---------------------------------------------------------------------------
#  Extraction
# ---------------------------------------------------------------------------

def extract_item(entry: Any) -> FeedItem:
    """
    Extract structured metadata from a feedparser entry.

    Args:
        entry: feedparser entry object

    Returns:
        FeedItem with absent fields set to None
    """
    episode_type = _text(entry.get("itunes_episodetype"))
    return FeedItem(
        title=_text(entry.get("title")),
        description=_text(entry.get("summary") or entry.get("description")),
        link=_text(entry.get("link")),
        guid=_text(entry.get("id") or entry.get("guid")),
        enclosure=_enclosure(entry),
        pub_date=parse_pub_date(entry),
        duration=_text(entry.get("itunes_duration")),
        episode_number=parse_int(entry.get("itunes_episode")),
        episode_type=episode_type.lower() if episode_type else None,
        image_url=_image_url(entry),
        explicit=parse_explicit(entry.get("itunes_explicit")),
    )


def extract_feed(parsed: Any) -> ParsedFeed:
    """
    Build a ParsedFeed from a feedparser result.

    Args:
        parsed: Return value of ``feedparser.parse``

    Returns:
        ParsedFeed with all items in document order
    """
    channel = parsed.get("feed") or {}
    return ParsedFeed(
        title=_text(channel.get("title")),
        description=_text(channel.get("subtitle") or channel.get("description")),
        link=_text(channel.get("link")),
        language=_text(channel.get("language")),
        copyright=_text(channel.get("rights")),
        author=_text(channel.get("author")),
        managing_editor=_email(channel),
        image_url=_image_url(channel),
        category=_first_tag(channel),
        explicit=parse_explicit(channel.get("itunes_explicit")),
        items=[extract_item(entry) for entry in parsed.get("entries") or []],
    )


def parse_feed_text(text: str) -> ParsedFeed:
    """
    Parse cleaned RSS/Atom text.

    Args:
        text: Feed document starting with ``<?xml``, ``<rss`` or ``<feed``

    Returns:
        ParsedFeed

    Raises:
        FeedParseError: If the document is not a recognizable feed
    """
    parsed = feedparser.parse(text)

    if not parsed.get("entries") and (parsed.get("bozo") or not parsed.get("version")):
        reason = parsed.get("bozo_exception") or "not an RSS or Atom document"
        raise FeedParseError(f"Failed to parse RSS feed: {reason}")

    if parsed.get("bozo"):
        logger.warning("Feed parsing encountered errors: %s", parsed.get("bozo_exception"))

    feed = extract_feed(parsed)
    logger.debug("Parsed %d items from feed '%s'", len(feed.items), feed.title)
    return feed
