"""Object storage for downloaded episode media."""

from podcast_rss_fetch.storage.object_store import ObjectStore

__all__ = ["ObjectStore"]
