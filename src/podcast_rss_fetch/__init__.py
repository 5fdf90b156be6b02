"""
podcast-rss-fetch

Collects podcast feed URLs from text and OPML sources, stores podcast and
episode metadata in a relational database, and archives episode media in
S3-compatible object storage.
"""

__version__ = "1.0.0"

from podcast_rss_fetch.config import Config

__all__ = ["Config", "__version__"]
