"""
Idempotent persistence of parsed feeds.

Podcasts are matched by feed URL and refreshed on every fetch. Episodes
are matched by their GUID key and written once; only the downloader
touches them afterwards.
"""

import logging
import uuid
from dataclasses import dataclass, asdict
from typing import Any, Dict, Tuple

from podcast_rss_fetch.config import DEFAULT_TENANT_ID
from podcast_rss_fetch.ingestion.fetcher import FeedFetcher
from podcast_rss_fetch.ingestion.rss_parser import FeedItem, ParsedFeed
from podcast_rss_fetch.models.database import Database
from podcast_rss_fetch.models.entities import Podcast

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown"

# Column widths of the PostgreSQL schema
PODCAST_LIMITS = {"title": 255, "language": 50, "author": 255, "email": 255, "category": 255}
EPISODE_LIMITS = {"title": 255, "enclosure_type": 100, "duration": 50, "episode_type": 50}


@dataclass
class UpsertResult:
    """Outcome of persisting one feed."""

    podcast_id: str = ""
    podcast_created: bool = False
    episodes_inserted: int = 0
    episodes_skipped: int = 0
    episodes_failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _clip(values: Dict[str, Any], limits: Dict[str, int]) -> Dict[str, Any]:
    for name, limit in limits.items():
        value = values.get(name)
        if isinstance(value, str) and len(value) > limit:
            values[name] = value[:limit]
    return values


def episode_key(item: FeedItem, podcast_id: str) -> str:
    """
    Deduplication key of a feed item.

    Falls back from the GUID to the item link, then to
    ``<podcast_id>_<title>``. The last form collides for untitled items
    of the same podcast that lack both GUID and link, and such items are
    stored only once. It is kept because changing it would re-key rows
    that already exist.
    """
    return item.guid or item.link or f"{podcast_id}_{item.title or ''}"


def podcast_fields(feed: ParsedFeed) -> Dict[str, Any]:
    """Mutable podcast columns taken from a parsed feed."""
    return _clip(
        {
            "title": feed.title or UNKNOWN_TITLE,
            "description": feed.description,
            "link": feed.link,
            "language": feed.language,
            "copyright": feed.copyright,
            "author": feed.author,
            "email": feed.managing_editor,
            "image_url": feed.image_url,
            "category": feed.category,
            "explicit": bool(feed.explicit),
        },
        PODCAST_LIMITS,
    )


def episode_fields(item: FeedItem) -> Dict[str, Any]:
    """Episode columns taken from a feed item."""
    enclosure = item.enclosure
    return _clip(
        {
            "title": item.title or UNKNOWN_TITLE,
            "description": item.description,
            "link": item.link,
            "enclosure_url": enclosure.url if enclosure else None,
            "enclosure_type": enclosure.type if enclosure else None,
            "enclosure_length": enclosure.length if enclosure else None,
            "pub_date": item.pub_date,
            "duration": item.duration,
            "episode_number": item.episode_number,
            "episode_type": item.episode_type,
            "image_url": item.image_url,
            "explicit": bool(item.explicit),
        },
        EPISODE_LIMITS,
    )


class FeedUpserter:
    """
    Writes parsed feeds into the relational store.

    Example:
        >>> upserter = FeedUpserter(db)
        >>> result = upserter.upsert_feed(feed, "https://example.com/feed.xml")
        >>> print(result.episodes_inserted)
    """

    def __init__(self, database: Database, tenant_id: str = DEFAULT_TENANT_ID):
        self.database = database
        self.tenant_id = tenant_id

    def upsert_podcast(self, feed: ParsedFeed, rss_url: str) -> Tuple[Podcast, bool]:
        """
        Insert or refresh the podcast row for a feed URL.

        Args:
            feed: Parsed feed
            rss_url: Feed URL the document was fetched from

        Returns:
            (podcast, created) where created is True for a new row
        """
        fields = podcast_fields(feed)
        with self.database.get_connection() as conn:
            existing = self.database.get_podcast_by_rss_url(conn, rss_url)
            if existing is not None:
                podcast = self.database.update_podcast(conn, existing.id, fields)
                logger.info("Updated existing podcast: %s", podcast.title)
                return podcast, False

            podcast = self.database.insert_podcast(
                conn, str(uuid.uuid4()), self.tenant_id, rss_url, fields
            )
            logger.info("Inserted new podcast: %s", podcast.title)
            return podcast, True

    def insert_episode_if_absent(self, podcast_id: str, item: FeedItem) -> bool:
        """
        Insert an episode unless its key is already stored.

        Existing episodes are left untouched, including their metadata.

        Returns:
            True if a row was inserted
        """
        guid = episode_key(item, podcast_id)
        with self.database.get_connection() as conn:
            if self.database.get_episode_by_guid(conn, guid) is not None:
                return False
            episode = self.database.insert_episode(
                conn, str(uuid.uuid4()), podcast_id, guid, episode_fields(item)
            )
        logger.info("Inserted new episode: %s", episode.title)
        return True

    def upsert_feed(self, feed: ParsedFeed, rss_url: str) -> UpsertResult:
        """
        Persist a podcast and all of its items.

        Each item is written in its own transaction; a failing item is
        logged and counted without affecting its siblings.
        """
        podcast, created = self.upsert_podcast(feed, rss_url)
        result = UpsertResult(podcast_id=podcast.id, podcast_created=created)

        for item in feed.items:
            try:
                if self.insert_episode_if_absent(podcast.id, item):
                    result.episodes_inserted += 1
                else:
                    result.episodes_skipped += 1
            except Exception as exc:
                result.episodes_failed += 1
                logger.warning("Error inserting episode %s: %s", item.title or UNKNOWN_TITLE, exc)

        return result


def process_rss_feed(
    rss_url: str,
    fetcher: FeedFetcher,
    upserter: FeedUpserter,
) -> UpsertResult:
    """
    Fetch one feed (with retries) and persist it.

    Raises:
        FeedFetchError: If the feed could not be fetched or parsed
    """
    feed = fetcher.fetch(rss_url)
    result = upserter.upsert_feed(feed, rss_url)
    logger.info(
        "Successfully processed RSS feed: %s (%d new, %d known episodes)",
        rss_url,
        result.episodes_inserted,
        result.episodes_skipped,
    )
    return result
