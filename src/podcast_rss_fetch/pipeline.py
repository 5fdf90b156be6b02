"""
Pipeline driver for the fetch and download modes.

Fetch mode collects feed URLs and processes them one by one, logging and
skipping any feed that fails. Download mode bootstraps the bucket and
drains the pending episodes. Only a missing feed source, an unreachable
object store or a database failure stops a run.

Example:
    >>> from podcast_rss_fetch.pipeline import run_fetch
    >>> summary = run_fetch(config, database)
    >>> print(summary.to_json())
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from podcast_rss_fetch.config import Config
from podcast_rss_fetch.ingestion.downloader import DownloadSummary, MediaDownloader
from podcast_rss_fetch.ingestion.fetcher import FeedFetcher
from podcast_rss_fetch.ingestion.sources import collect_feed_urls
from podcast_rss_fetch.ingestion.upsert import FeedUpserter, process_rss_feed
from podcast_rss_fetch.models.database import Database
from podcast_rss_fetch.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class FetchSummary:
    """
    Result of a fetch run.

    Attributes:
        total_urls: Number of feed URLs collected
        succeeded: Feeds fetched and stored
        failed: Feeds skipped after errors
        podcasts_created: New podcast rows
        podcasts_updated: Refreshed podcast rows
        episodes_inserted: New episode rows
        episodes_skipped: Items already stored
        episodes_failed: Items that could not be stored
        failed_urls: Feed URLs that were skipped
    """

    total_urls: int = 0
    succeeded: int = 0
    failed: int = 0
    podcasts_created: int = 0
    podcasts_updated: int = 0
    episodes_inserted: int = 0
    episodes_skipped: int = 0
    episodes_failed: int = 0
    failed_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_urls": self.total_urls,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "podcasts_created": self.podcasts_created,
            "podcasts_updated": self.podcasts_updated,
            "episodes_inserted": self.episodes_inserted,
            "episodes_skipped": self.episodes_skipped,
            "episodes_failed": self.episodes_failed,
            "failed_urls": list(self.failed_urls),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def run_fetch(
    config: Config,
    database: Database,
    fetcher: Optional[FeedFetcher] = None,
) -> FetchSummary:
    """
    Collect feed URLs and store every feed that can be fetched.

    Args:
        config: Application configuration
        database: Initialized database
        fetcher: Optional FeedFetcher (built from config if None)

    Returns:
        FetchSummary with per-feed and per-episode counts

    Raises:
        NoFeedSourcesFound: If no source yields a URL
    """
    logger.info("Starting RSS fetch mode...")
    rss_urls = collect_feed_urls(config.feed_list_path, config.opml_paths())
    logger.info("Total RSS URLs collected: %d", len(rss_urls))

    owns_fetcher = fetcher is None
    if fetcher is None:
        fetcher = FeedFetcher(
            timeout=config.fetch_timeout,
            attempts=config.max_attempts,
            backoff_base=config.backoff_base,
        )
    upserter = FeedUpserter(database)
    summary = FetchSummary(total_urls=len(rss_urls))

    try:
        _fetch_all(rss_urls, fetcher, upserter, summary)
    finally:
        if owns_fetcher:
            fetcher.close()

    logger.info(
        "RSS fetch finished: %d succeeded, %d failed", summary.succeeded, summary.failed
    )
    return summary


def _fetch_all(
    rss_urls: List[str],
    fetcher: FeedFetcher,
    upserter: FeedUpserter,
    summary: FetchSummary,
) -> None:
    for rss_url in rss_urls:
        logger.info("Processing RSS: %s", rss_url)
        try:
            result = process_rss_feed(rss_url, fetcher, upserter)
        except Exception as exc:
            summary.failed += 1
            summary.failed_urls.append(rss_url)
            logger.warning("Error processing RSS %s: %s", rss_url, exc)
            continue

        summary.succeeded += 1
        if result.podcast_created:
            summary.podcasts_created += 1
        else:
            summary.podcasts_updated += 1
        summary.episodes_inserted += result.episodes_inserted
        summary.episodes_skipped += result.episodes_skipped
        summary.episodes_failed += result.episodes_failed


def run_download(
    config: Config,
    database: Database,
    store: Optional[ObjectStore] = None,
) -> DownloadSummary:
    """
    Bootstrap object storage and download every pending episode.

    Raises:
        StorageUnavailable: If the bucket cannot be checked or created
    """
    logger.info("Starting download mode...")
    if store is None:
        store = ObjectStore.from_config(config)
    store.ensure_bucket()
    logger.info("Object storage initialized with bucket: %s", store.bucket)

    with MediaDownloader.from_config(config, database, store) as downloader:
        return downloader.download_all()
