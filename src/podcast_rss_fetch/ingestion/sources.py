"""
Feed URL collection from a text list and OPML subscription files.

URLs are emitted text-list first, then OPML sources in priority order,
deduplicated by exact string (no normalization of scheme, case or
trailing slashes).
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

from podcast_rss_fetch.errors import FeedSourceError, NoFeedSourcesFound
from podcast_rss_fetch.ingestion.opml import parse_opml_file

logger = logging.getLogger(__name__)


def parse_feed_list(content: str) -> List[str]:
    """
    Parse a line-delimited feed list.

    Lines that are empty after trimming or start with ``#`` are ignored.

    Example:
        >>> parse_feed_list("https://a.example/feed.xml\\n# comment\\n\\nhttps://b.example/feed.xml")
        ['https://a.example/feed.xml', 'https://b.example/feed.xml']
    """
    urls = []
    for line in content.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            urls.append(stripped)
    return urls


def read_feed_list(path: Path) -> List[str]:
    """
    Read feed URLs from a UTF-8 text file, ignoring a byte-order mark.

    Raises:
        FeedSourceError: If the file cannot be read
    """
    try:
        content = Path(path).read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise FeedSourceError(f"Could not read file {path}: {exc}") from exc

    urls = parse_feed_list(content)
    for url in urls:
        logger.debug("Found RSS URL from text file: %s", url)
    return urls


def _add_unique(target: List[str], seen: Set[str], urls: Iterable[str]) -> int:
    added = 0
    for url in urls:
        if url not in seen:
            seen.add(url)
            target.append(url)
            added += 1
    return added


def collect_feed_urls(
    feed_list_path: Optional[Path],
    opml_paths: Sequence[Path] = (),
) -> List[str]:
    """
    Collect feed URLs from every configured source.

    The text list comes first, then each OPML file in the given order
    (primary source first). Unreadable sources are logged and skipped.

    Args:
        feed_list_path: Line-delimited URL file, or None
        opml_paths: OPML files in priority order

    Returns:
        Ordered, deduplicated feed URLs

    Raises:
        NoFeedSourcesFound: If no source produced a URL
    """
    all_urls: List[str] = []
    seen: Set[str] = set()

    if feed_list_path is not None:
        try:
            urls = read_feed_list(feed_list_path)
            logger.info("Found %d URLs from %s", len(urls), feed_list_path)
            _add_unique(all_urls, seen, urls)
        except FeedSourceError as exc:
            logger.warning("Could not read %s: %s", feed_list_path, exc)

    for opml_path in opml_paths:
        urls = parse_opml_file(opml_path)
        if urls:
            logger.info("Found %d URLs from %s", len(urls), opml_path)
        _add_unique(all_urls, seen, urls)

    if not all_urls:
        raise NoFeedSourcesFound()

    return all_urls
