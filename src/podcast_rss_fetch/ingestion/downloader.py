"""
Episode media downloader.

Downloads the enclosure of every episode that has not been downloaded
yet, stages it in a temporary file named ``<episode-id>.<ext>``, uploads
it to object storage and records the outcome on the episode row. Each
episode is retried with exponential backoff; a failing episode is marked
failed and never stops the batch.
"""

import logging
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlparse

import requests

from podcast_rss_fetch.config import Config
from podcast_rss_fetch.errors import DownloadError, FetchTimeout, HttpStatusError, MissingEnclosure
from podcast_rss_fetch.ingestion.fetcher import USER_AGENT, is_timeout, read_with_deadline
from podcast_rss_fetch.models.database import Database
from podcast_rss_fetch.models.entities import DownloadState, Episode
from podcast_rss_fetch.retry import retry_with_backoff
from podcast_rss_fetch.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = ("mp3", "m4a", "wav", "flac", "ogg")
DEFAULT_EXTENSION = "mp3"
DEFAULT_CONTENT_TYPE = "audio/mpeg"

MIME_TO_EXTENSION = {
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/flac": "flac",
    "audio/ogg": "ogg",
}

EXTENSION_TO_MIME = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "ogg": "audio/ogg",
}

# Bounded so the total deadline is checked on slow connections
CHUNK_SIZE = 64 * 1024


def determine_file_extension(url: Optional[str], mime_type: Optional[str] = None) -> str:
    """
    Pick the file extension for an enclosure.

    The extension of the URL's last path segment wins when it is a known
    audio extension; otherwise the declared MIME type is mapped, and
    ``mp3`` is the fallback.

    Example:
        >>> determine_file_extension("https://cdn.example.com/ep/42", "audio/flac")
        'flac'
    """
    if url:
        segment = urlparse(url).path.rsplit("/", 1)[-1]
        if "." in segment:
            extension = segment.rsplit(".", 1)[-1].lower()
            if extension in AUDIO_EXTENSIONS:
                return extension

    if mime_type:
        base_type = mime_type.split(";", 1)[0].strip().lower()
        if base_type in MIME_TO_EXTENSION:
            return MIME_TO_EXTENSION[base_type]

    return DEFAULT_EXTENSION


def content_type_for(filename: str) -> str:
    """Content type used when uploading a staged file."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return EXTENSION_TO_MIME.get(extension, DEFAULT_CONTENT_TYPE)


def download_file(
    url: str,
    output_path: Path,
    timeout: float = 300.0,
    session: Optional[requests.Session] = None,
) -> int:
    """
    Stream a media file to disk.

    Args:
        url: Media URL
        output_path: Local path to write
        timeout: Total time limit in seconds, body included
        session: Optional requests session

    Returns:
        Number of bytes written

    Raises:
        FetchTimeout: If the request or body read timed out
        HttpStatusError: For a non-2xx response
        DownloadError: For any other transport failure
    """
    http = session or requests
    deadline = time.monotonic() + timeout
    try:
        with http.get(
            url, headers={"User-Agent": USER_AGENT}, timeout=timeout, stream=True
        ) as response:
            if not 200 <= response.status_code < 300:
                raise HttpStatusError(response.status_code, response.reason or "", url)

            content_length = response.headers.get("content-length")
            if content_length:
                logger.info("Downloading file of size: %s bytes", content_length)

            written = 0
            with open(output_path, "wb") as f:
                for chunk in read_with_deadline(response, deadline, CHUNK_SIZE, url, timeout):
                    f.write(chunk)
                    written += len(chunk)
    except requests.RequestException as exc:
        if is_timeout(exc):
            raise FetchTimeout(f"Timed out after {timeout}s downloading {url}") from exc
        raise DownloadError(f"Failed to download {url}: {exc}") from exc

    logger.info("Download completed: %d bytes", written)
    return written


@dataclass
class DownloadSummary:
    """Tally of a download run."""

    succeeded: int = 0
    failed: int = 0
    failed_episode_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_episode_ids": list(self.failed_episode_ids),
        }


class MediaDownloader:
    """
    Moves episode media from feed enclosures into object storage.

    Example:
        >>> downloader = MediaDownloader(db, ObjectStore.from_config(config))
        >>> summary = downloader.download_all()
        >>> print(summary.succeeded, summary.failed)
    """

    def __init__(
        self,
        database: Database,
        store: ObjectStore,
        temp_dir: Optional[Path] = None,
        timeout: float = 300.0,
        attempts: int = 3,
        backoff_base: float = 2.0,
        delay: float = 1.0,
        pending_limit: int = 1000,
        session: Optional[requests.Session] = None,
    ):
        self.database = database
        self.store = store
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())
        self.timeout = timeout
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.delay = delay
        self.pending_limit = pending_limit
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        """Close the HTTP session if this downloader created it."""
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @classmethod
    def from_config(cls, config: Config, database: Database, store: ObjectStore) -> "MediaDownloader":
        return cls(
            database,
            store,
            temp_dir=config.temp_dir,
            timeout=config.download_timeout,
            attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            delay=config.download_delay,
            pending_limit=config.pending_limit,
        )

    def list_pending(self) -> List[Episode]:
        """Episodes not downloaded yet, at most ``pending_limit`` of them."""
        with self.database.get_connection() as conn:
            return self.database.list_episodes_by_state(
                conn, DownloadState.NOT_DOWNLOADED, limit=self.pending_limit
            )

    def _download_and_upload(self, episode: Episode) -> str:
        extension = determine_file_extension(episode.enclosure_url, episode.enclosure_type)
        filename = f"{episode.id}.{extension}"
        temp_path = self.temp_dir / filename

        try:
            download_file(episode.enclosure_url, temp_path, timeout=self.timeout, session=self.session)
            logger.info("Episode saved to temp file: %s", temp_path)

            logger.info("Uploading file to object storage: %s -> %s", temp_path, filename)
            with open(temp_path, "rb") as body:
                self.store.put_object(filename, body, content_type_for(filename))

            with self.database.get_connection() as conn:
                self.database.mark_download_success(conn, episode.id, filename)
        finally:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to cleanup temp file %s: %s", temp_path, exc)

        return filename

    def download_episode(self, episode: Episode) -> str:
        """
        Download, stage, upload and record one episode.

        Args:
            episode: Episode to download

        Returns:
            Object storage key of the uploaded media

        Raises:
            MissingEnclosure: If the episode has no enclosure URL
            Exception: The last failure once all attempts are used
        """
        if not episode.enclosure_url:
            raise MissingEnclosure(episode.id)

        logger.info("Downloading episode from: %s", episode.enclosure_url)
        return retry_with_backoff(
            lambda: self._download_and_upload(episode),
            attempts=self.attempts,
            base_delay=self.backoff_base,
            description=f"episode download {episode.id}",
        )

    def _mark_failed(self, episode: Episode) -> None:
        try:
            with self.database.get_connection() as conn:
                self.database.mark_download_failed(conn, episode.id)
        except Exception as exc:
            logger.error("Failed to mark episode as failed: %s", exc)

    def download_all(self) -> DownloadSummary:
        """
        Drain every pending episode.

        Pending episodes are listed in batches of ``pending_limit`` until a
        batch holds nothing new for this run. Every episode is followed by
        a fixed pause regardless of outcome.

        Returns:
            DownloadSummary with success and failure counts
        """
        summary = DownloadSummary()
        handled: Set[str] = set()

        while True:
            episodes = [ep for ep in self.list_pending() if ep.id not in handled]
            if not episodes:
                break
            logger.info("Found %d undownloaded episodes", len(episodes))

            for index, episode in enumerate(episodes, 1):
                handled.add(episode.id)
                logger.info("Processing episode %d/%d: %s", index, len(episodes), episode.title)
                try:
                    self.download_episode(episode)
                    summary.succeeded += 1
                    logger.info("Successfully processed episode: %s", episode.title)
                except Exception as exc:
                    summary.failed += 1
                    summary.failed_episode_ids.append(episode.id)
                    logger.error("Error processing episode %s: %s", episode.title, exc)
                    self._mark_failed(episode)

                time.sleep(self.delay)

        logger.info("Download summary: %d successful, %d failed", summary.succeeded, summary.failed)
        return summary
