"""
Shared test fixtures.

Provides pytest fixtures for common test resources including:
- Test configuration pointing at temporary paths
- Temporary SQLite database with schema and default tenant
- Sample RSS document and parsed feed
- Fake HTTP responses
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from podcast_rss_fetch.config import Config
from podcast_rss_fetch.ingestion.rss_parser import Enclosure, FeedItem, ParsedFeed
from podcast_rss_fetch.models.database import SQLiteDatabase


SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Example Show</title>
    <link>https://example.com/show</link>
    <description>A show about examples.</description>
    <language>en-us</language>
    <copyright>2024 Example Media</copyright>
    <itunes:author>Jane Host</itunes:author>
    <itunes:image href="https://example.com/cover.jpg"/>
    <itunes:category text="Technology"/>
    <itunes:explicit>yes</itunes:explicit>
    <item>
      <title>Episode 1 - Pilot</title>
      <description>First episode.</description>
      <link>https://example.com/show/ep1</link>
      <guid isPermaLink="false">ep-001</guid>
      <enclosure url="https://cdn.example.com/ep1.mp3" type="audio/mpeg" length="12345"/>
      <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
      <itunes:duration>01:05:30</itunes:duration>
      <itunes:episode>1</itunes:episode>
      <itunes:episodeType>full</itunes:episodeType>
    </item>
    <item>
      <title>Episode 2 - Lossless</title>
      <guid isPermaLink="false">ep-002</guid>
      <enclosure url="https://cdn.example.com/media/ep2" type="audio/flac" length="999"/>
      <pubDate>Tue, 02 Jan 2024 08:30:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


def make_response(
    status_code: int = 200,
    text: str = "",
    content_type: str = "application/rss+xml",
    reason: str = "OK",
) -> MagicMock:
    """Build a streaming requests-like response for feed fetches."""
    body = text.encode("utf-8")
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.headers = {"content-type": content_type}
    response.iter_content.side_effect = lambda chunk_size=None: iter(
        [body[i:i + chunk_size] for i in range(0, len(body), chunk_size)]
    )
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


def make_media_response(
    status_code: int = 200,
    chunks: Optional[List[bytes]] = None,
    reason: str = "OK",
) -> MagicMock:
    """Build a streaming requests-like response usable as a context manager."""
    chunks = chunks if chunks is not None else [b"ID3", b"audio-bytes"]
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.headers = {"content-length": str(sum(len(c) for c in chunks))}
    response.iter_content.side_effect = lambda chunk_size=None: iter(chunks)
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


@pytest.fixture
def rss_xml() -> str:
    """Sample two-item RSS document."""
    return SAMPLE_RSS


@pytest.fixture
def test_config(tmp_path: Path, monkeypatch) -> Config:
    """
    Create test configuration with temporary paths.

    Delays and backoff are zero so retries run instantly even when
    time.sleep is not patched.
    """
    monkeypatch.chdir(tmp_path)
    return Config(
        db_backend="sqlite",
        sqlite_path=tmp_path / "db" / "test.db",
        feed_list_path=tmp_path / "feed.txt",
        primary_opml_path=tmp_path / "feed.xml",
        extra_opml_paths=[tmp_path / "feed.opml", tmp_path / "podcasts.opml"],
        temp_dir=tmp_path,
        backoff_base=0.0,
        download_delay=0.0,
    )


@pytest.fixture
def db(tmp_path: Path) -> SQLiteDatabase:
    """Create an initialized SQLite database in a temporary directory."""
    database = SQLiteDatabase(tmp_path / "test.db")
    database.initialize()
    return database


@pytest.fixture
def sample_feed() -> ParsedFeed:
    """Parsed feed with two items."""
    return ParsedFeed(
        title="Example Show",
        description="A show about examples.",
        link="https://example.com/show",
        language="en-us",
        copyright="2024 Example Media",
        author="Jane Host",
        managing_editor="jane@example.com",
        image_url="https://example.com/cover.jpg",
        category="Technology",
        explicit=False,
        items=[
            FeedItem(
                title="Episode 1 - Pilot",
                description="First episode.",
                link="https://example.com/show/ep1",
                guid="ep-001",
                enclosure=Enclosure(
                    url="https://cdn.example.com/ep1.mp3", type="audio/mpeg", length=12345
                ),
                pub_date=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
                duration="01:05:30",
                episode_number=1,
                episode_type="full",
            ),
            FeedItem(
                title="Episode 2 - Lossless",
                guid="ep-002",
                enclosure=Enclosure(
                    url="https://cdn.example.com/media/ep2", type="audio/flac", length=999
                ),
                pub_date=datetime(2024, 1, 2, 8, 30, tzinfo=timezone.utc),
            ),
        ],
    )


@pytest.fixture
def stored_feed(db: SQLiteDatabase, sample_feed: ParsedFeed) -> Dict[str, object]:
    """Database holding the sample feed; returns the podcast and its episodes."""
    from podcast_rss_fetch.ingestion.upsert import FeedUpserter

    result = FeedUpserter(db).upsert_feed(sample_feed, "https://example.com/feed.xml")
    with db.get_connection() as conn:
        episodes = {
            guid: db.get_episode_by_guid(conn, guid) for guid in ("ep-001", "ep-002")
        }
    return {"podcast_id": result.podcast_id, "episodes": episodes}
