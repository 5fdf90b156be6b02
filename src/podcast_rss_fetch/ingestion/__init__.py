"""
Ingestion module for feed collection, fetching, persistence and media
downloads.
"""

from podcast_rss_fetch.ingestion.downloader import MediaDownloader, DownloadSummary
from podcast_rss_fetch.ingestion.fetcher import FeedFetcher
from podcast_rss_fetch.ingestion.opml import parse_opml_file, walk_outlines
from podcast_rss_fetch.ingestion.rss_parser import parse_feed_text
from podcast_rss_fetch.ingestion.sources import collect_feed_urls, read_feed_list
from podcast_rss_fetch.ingestion.upsert import FeedUpserter, UpsertResult, process_rss_feed

__all__ = [
    "MediaDownloader",
    "DownloadSummary",
    "FeedFetcher",
    "parse_opml_file",
    "walk_outlines",
    "parse_feed_text",
    "collect_feed_urls",
    "read_feed_list",
    "FeedUpserter",
    "UpsertResult",
    "process_rss_feed",
]
