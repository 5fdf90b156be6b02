"""
Tests for episode media downloads.

HTTP goes through a mocked requests session and object storage through a
MagicMock, while episode state lives in a real SQLite database.
"""

import itertools
from unittest.mock import MagicMock, patch

import pytest
import requests
from urllib3.exceptions import ReadTimeoutError

from conftest import make_media_response
from podcast_rss_fetch.errors import DownloadError, FetchTimeout, HttpStatusError, MissingEnclosure
from podcast_rss_fetch.ingestion.downloader import (
    MediaDownloader,
    content_type_for,
    determine_file_extension,
    download_file,
)
from podcast_rss_fetch.ingestion.rss_parser import Enclosure, FeedItem, ParsedFeed
from podcast_rss_fetch.ingestion.upsert import FeedUpserter
from podcast_rss_fetch.models.entities import DownloadState


def _downloader(db, tmp_path, session, store=None, **kwargs):
    staging = tmp_path / "staging"
    staging.mkdir(exist_ok=True)
    return MediaDownloader(
        db,
        store or MagicMock(),
        temp_dir=staging,
        session=session,
        **kwargs,
    )


def _episode(db, guid):
    with db.get_connection() as conn:
        return db.get_episode_by_guid(conn, guid)


# ============================================================================
# Extension and content type
# ============================================================================


class TestDetermineFileExtension:
    """Tests for picking the staged file extension."""

    @pytest.mark.parametrize(
        "url,mime,expected",
        [
            ("https://cdn.example.com/ep.m4a", "audio/mpeg", "m4a"),
            ("https://cdn.example.com/ep.MP3?token=abc", None, "mp3"),
            ("https://cdn.example.com/media/ep2", "audio/flac", "flac"),
            ("https://cdn.example.com/media/ep2", "audio/x-m4a", "m4a"),
            ("https://cdn.example.com/media/ep2", "audio/ogg; codecs=opus", "ogg"),
            ("https://cdn.example.com/v1.2/ep", "audio/wav", "wav"),
            ("https://cdn.example.com/ep.php", "video/mp4", "mp3"),
            (None, None, "mp3"),
        ],
    )
    def test_extension(self, url, mime, expected):
        assert determine_file_extension(url, mime) == expected

    @pytest.mark.parametrize(
        "filename,expected",
        [("a.mp3", "audio/mpeg"), ("a.m4a", "audio/mp4"), ("a.flac", "audio/flac"), ("a.bin", "audio/mpeg")],
    )
    def test_content_type(self, filename, expected):
        assert content_type_for(filename) == expected


# ============================================================================
# Streaming download
# ============================================================================


class TestDownloadFile:
    """Tests for streaming a file to disk."""

    def test_writes_chunks(self, tmp_path):
        session = MagicMock()
        session.get.return_value = make_media_response(chunks=[b"abc", b"", b"def"])
        target = tmp_path / "out.mp3"

        written = download_file("https://cdn.example.com/a.mp3", target, session=session)

        assert written == 6
        assert target.read_bytes() == b"abcdef"
        assert session.get.call_args.kwargs["stream"] is True

    def test_http_error(self, tmp_path):
        session = MagicMock()
        session.get.return_value = make_media_response(status_code=404, reason="Not Found")

        with pytest.raises(HttpStatusError):
            download_file("https://cdn.example.com/a.mp3", tmp_path / "out.mp3", session=session)

        assert not (tmp_path / "out.mp3").exists()

    def test_connection_reset_mid_stream(self, tmp_path):
        def broken_stream(chunk_size=None):
            yield b"partial"
            raise requests.ConnectionError("connection reset")

        response = make_media_response()
        response.iter_content.side_effect = broken_stream
        session = MagicMock()
        session.get.return_value = response

        with pytest.raises(DownloadError):
            download_file("https://cdn.example.com/a.mp3", tmp_path / "out.mp3", session=session)

    @patch("podcast_rss_fetch.ingestion.fetcher.time.monotonic")
    def test_trickling_stream_exceeds_total_timeout(self, mock_monotonic, tmp_path):
        mock_monotonic.side_effect = itertools.count(0, 100)
        session = MagicMock()
        session.get.return_value = make_media_response(chunks=[b"a"] * 10)

        with pytest.raises(FetchTimeout):
            download_file(
                "https://cdn.example.com/a.mp3", tmp_path / "out.mp3", timeout=300.0, session=session
            )

    def test_mid_stream_read_timeout_is_mapped(self, tmp_path):
        def stalled_stream(chunk_size=None):
            yield b"partial"
            raise requests.ConnectionError(ReadTimeoutError(None, None, "Read timed out."))

        response = make_media_response()
        response.iter_content.side_effect = stalled_stream
        session = MagicMock()
        session.get.return_value = response

        with pytest.raises(FetchTimeout):
            download_file("https://cdn.example.com/a.mp3", tmp_path / "out.mp3", session=session)


# ============================================================================
# MediaDownloader
# ============================================================================


class TestMediaDownloader:
    """Tests for downloading, uploading and recording episodes."""

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_successful_download(self, mock_sleep, db, stored_feed, tmp_path):
        session = MagicMock()
        session.get.side_effect = lambda *args, **kwargs: make_media_response()
        store = MagicMock()
        uploaded = {}

        def capture(key, body, content_type):
            uploaded[key] = (body.read(), content_type)

        store.put_object.side_effect = capture
        downloader = _downloader(db, tmp_path, session, store)

        summary = downloader.download_all()

        assert summary.succeeded == 2
        assert summary.failed == 0
        first = _episode(db, "ep-001")
        assert first.download_state == DownloadState.DOWNLOADED
        assert first.storage_path == f"{first.id}.mp3"
        assert first.downloaded_at is not None
        assert uploaded[f"{first.id}.mp3"] == (b"ID3audio-bytes", "audio/mpeg")
        assert list((tmp_path / "staging").iterdir()) == []

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_extensionless_flac_enclosure(self, mock_sleep, db, stored_feed, tmp_path):
        session = MagicMock()
        session.get.side_effect = lambda *args, **kwargs: make_media_response()
        store = MagicMock()
        staged = []
        store.put_object.side_effect = lambda key, body, content_type: staged.append(str(body.name))
        downloader = _downloader(db, tmp_path, session, store)
        episode = _episode(db, "ep-002")

        key = downloader.download_episode(episode)

        assert key == f"{episode.id}.flac"
        assert staged == [str(tmp_path / "staging" / f"{episode.id}.flac")]
        store.put_object.assert_called_once()
        assert store.put_object.call_args.args[2] == "audio/flac"
        assert _episode(db, "ep-002").storage_path == f"{episode.id}.flac"

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_persistent_failure_marks_failed(self, mock_sleep, db, stored_feed, tmp_path):
        def broken_stream(chunk_size=None):
            yield b"partial"
            raise requests.ConnectionError("connection reset")

        def respond(*args, **kwargs):
            response = make_media_response()
            response.iter_content.side_effect = broken_stream
            return response

        session = MagicMock()
        session.get.side_effect = respond
        store = MagicMock()
        downloader = _downloader(db, tmp_path, session, store)
        episode = _episode(db, "ep-001")

        summary = downloader.download_all()

        assert summary.failed == 2
        assert episode.id in summary.failed_episode_ids
        assert session.get.call_count == 6
        store.put_object.assert_not_called()
        assert _episode(db, "ep-001").download_state == DownloadState.FAILED
        assert _episode(db, "ep-001").storage_path is None
        assert list((tmp_path / "staging").iterdir()) == []
        sleeps = [c.args[0] for c in mock_sleep.call_args_list]
        assert sleeps == [2.0, 4.0, 1.0, 2.0, 4.0, 1.0]

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_failure_does_not_stop_batch(self, mock_sleep, db, stored_feed, tmp_path):
        session = MagicMock()
        session.get.side_effect = lambda url, **kwargs: (
            make_media_response(status_code=500, reason="Server Error")
            if url.endswith("ep1.mp3")
            else make_media_response()
        )
        downloader = _downloader(db, tmp_path, session)

        summary = downloader.download_all()

        assert summary.succeeded == 1
        assert summary.failed == 1
        assert _episode(db, "ep-001").download_state == DownloadState.FAILED
        assert _episode(db, "ep-002").download_state == DownloadState.DOWNLOADED

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_upload_retry(self, mock_sleep, db, stored_feed, tmp_path):
        session = MagicMock()
        session.get.side_effect = lambda *args, **kwargs: make_media_response()
        store = MagicMock()
        store.put_object.side_effect = [RuntimeError("slow down"), None]
        downloader = _downloader(db, tmp_path, session, store)

        downloader.download_episode(_episode(db, "ep-001"))

        assert store.put_object.call_count == 2
        assert session.get.call_count == 2
        assert _episode(db, "ep-001").is_downloaded

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_missing_enclosure_marks_failed(self, mock_sleep, db, tmp_path):
        feed = ParsedFeed(title="Show", items=[FeedItem(guid="text-only", title="Show notes")])
        FeedUpserter(db).upsert_feed(feed, "https://example.com/notes.xml")
        session = MagicMock()
        downloader = _downloader(db, tmp_path, session)

        with pytest.raises(MissingEnclosure):
            downloader.download_episode(_episode(db, "text-only"))

        summary = downloader.download_all()

        assert summary.failed == 1
        session.get.assert_not_called()
        assert _episode(db, "text-only").download_state == DownloadState.FAILED
        mock_sleep.assert_called_once_with(1.0)

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_drains_beyond_one_batch(self, mock_sleep, db, tmp_path):
        items = [
            FeedItem(
                guid=f"ep-{i}",
                title=f"Episode {i}",
                enclosure=Enclosure(url=f"https://cdn.example.com/{i}.mp3", type="audio/mpeg"),
            )
            for i in range(5)
        ]
        FeedUpserter(db).upsert_feed(ParsedFeed(title="Show", items=items), "https://example.com/rss")
        session = MagicMock()
        session.get.side_effect = lambda *args, **kwargs: make_media_response()
        downloader = _downloader(db, tmp_path, session, pending_limit=2)

        summary = downloader.download_all()

        assert summary.succeeded == 5
        with db.get_connection() as conn:
            assert db.list_episodes_by_state(conn, DownloadState.NOT_DOWNLOADED) == []

    @patch("podcast_rss_fetch.ingestion.downloader.time.sleep")
    def test_failed_episodes_are_not_pending(self, mock_sleep, db, stored_feed, tmp_path):
        with db.get_connection() as conn:
            db.mark_download_failed(conn, stored_feed["episodes"]["ep-001"].id)
        downloader = _downloader(db, tmp_path, MagicMock())

        pending = downloader.list_pending()

        assert [ep.guid for ep in pending] == ["ep-002"]

    def test_nothing_pending(self, db, tmp_path):
        session = MagicMock()
        summary = _downloader(db, tmp_path, session).download_all()

        assert summary.total == 0
        assert summary.to_dict()["failed_episode_ids"] == []
        session.get.assert_not_called()

    def test_from_config(self, db, test_config):
        downloader = MediaDownloader.from_config(test_config, db, MagicMock())

        assert downloader.temp_dir == test_config.temp_dir
        assert downloader.timeout == 300.0
        assert downloader.attempts == 3
        assert downloader.pending_limit == 1000

    def test_close_releases_own_session(self, db, test_config):
        with patch("podcast_rss_fetch.ingestion.downloader.requests.Session") as mock_session_cls:
            with MediaDownloader.from_config(test_config, db, MagicMock()):
                pass

        mock_session_cls.return_value.close.assert_called_once()
