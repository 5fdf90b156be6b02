"""Error classes for feed ingestion and media downloads."""

from typing import Optional


class PodcastFetchError(Exception):
    """Base error for podcast-rss-fetch failures."""

    pass


class FeedSourceError(PodcastFetchError):
    """A feed list or OPML source could not be read."""

    pass


class NoFeedSourcesFound(FeedSourceError):
    """No feed URL was found in any configured source."""

    def __init__(self, message: str = "No RSS URLs found in any data source") -> None:
        super().__init__(message)


class FeedFetchError(PodcastFetchError):
    """Fetching or parsing a feed failed (retryable)."""

    pass


class HttpStatusError(FeedFetchError):
    """Server answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = "", url: Optional[str] = None) -> None:
        message = f"HTTP {status_code}"
        if reason:
            message += f": {reason}"
        if url:
            message += f" ({url})"
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class FetchTimeout(FeedFetchError):
    """Request did not complete within its timeout."""

    pass


class InvalidFeedContent(FeedFetchError):
    """Response body does not look like an RSS/Atom document."""

    def __init__(self, content_type: str, prefix: str) -> None:
        super().__init__(
            f"Invalid RSS content. Content type: {content_type}. "
            f"Content starts with: {prefix}"
        )
        self.content_type = content_type
        self.prefix = prefix


class FeedParseError(FeedFetchError):
    """Feed text could not be parsed."""

    pass


class DownloadError(PodcastFetchError):
    """Downloading or uploading episode media failed."""

    pass


class MissingEnclosure(DownloadError):
    """Episode has no enclosure URL to download."""

    def __init__(self, episode_id: str) -> None:
        super().__init__(f"No enclosure URL found for episode {episode_id}")
        self.episode_id = episode_id


class StorageUnavailable(PodcastFetchError):
    """Object storage bucket could not be checked or created."""

    pass
