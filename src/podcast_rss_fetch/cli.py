"""
Command-line interface for podcast-rss-fetch.

Usage:
    podcast-rss-fetch              # Fetch every feed and store podcasts/episodes
    podcast-rss-fetch --download   # Download pending episodes into object storage
"""

import argparse
import logging
import sys

from podcast_rss_fetch.config import get_config
from podcast_rss_fetch.models.database import create_database
from podcast_rss_fetch.pipeline import run_download, run_fetch

logger = logging.getLogger("podcast_rss_fetch")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podcast-rss-fetch",
        description="Fetch podcast RSS/OPML feeds into a database and archive episode media",
    )
    parser.add_argument(
        "-d",
        "--download",
        action="store_true",
        default=False,
        help="Download all episodes not yet downloaded into object storage",
    )
    return parser


def run(download: bool) -> str:
    """
    Run one mode end to end.

    Returns:
        One-line summary for stdout
    """
    config = get_config()
    setup_logging(config.log_level)

    database = create_database(config)
    try:
        database.initialize()
        logger.info("Connected to database successfully")

        if download:
            summary = run_download(config, database)
            logger.info("Download completed!")
            return f"Downloaded {summary.succeeded} episode(s), {summary.failed} failed"

        summary = run_fetch(config, database)
        return (
            f"Processed {summary.succeeded}/{summary.total_urls} feed(s), "
            f"{summary.failed} failed, {summary.episodes_inserted} new episode(s)"
        )
    finally:
        database.close()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        line = run(download=args.download)
    except Exception as exc:
        logger.error("Application error: %s", exc, exc_info=True)
        return 1

    print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
