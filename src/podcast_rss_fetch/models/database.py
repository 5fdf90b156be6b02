"""
Database management and data access layer.

Provides a Database base class holding the raw SQL for tenants, podcasts
and episodes, with two backends: PostgreSQLDatabase (psycopg2 connection
pool) for deployments and SQLiteDatabase for local runs and tests. Both
expose the same context-managed connections and CRUD helpers, keyed by
primary key or by the unique secondary keys (feed URL, episode GUID).
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool

from podcast_rss_fetch.config import DEFAULT_TENANT_ID, Config
from podcast_rss_fetch.models.entities import DownloadState, Episode, Podcast, Tenant
from podcast_rss_fetch.models.schema import POSTGRES_SCHEMA_SQL, SQLITE_SCHEMA_SQL

logger = logging.getLogger(__name__)

DEFAULT_TENANT_NAME = "Default Tenant"
DEFAULT_TENANT_DESCRIPTION = "Default tenant for podcast management"

# Podcast columns overwritten on every successful fetch
PODCAST_MUTABLE_FIELDS = (
    "title",
    "description",
    "link",
    "language",
    "copyright",
    "author",
    "email",
    "image_url",
    "category",
    "explicit",
)

EPISODE_FIELDS = (
    "title",
    "description",
    "link",
    "enclosure_url",
    "enclosure_type",
    "enclosure_length",
    "pub_date",
    "duration",
    "episode_number",
    "episode_type",
    "image_url",
    "explicit",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    """
    Database connection and query management.

    Subclasses provide ``get_connection()`` and the schema script; all SQL
    below is written with ``?`` placeholders and rewritten to the backend's
    parameter style before execution.

    Example:
        >>> db = SQLiteDatabase(Path("data/podcasts.db"))
        >>> db.initialize()
        >>> with db.get_connection() as conn:
        ...     podcast = db.get_podcast_by_rss_url(conn, "https://example.com/feed.xml")
    """

    placeholder = "?"
    schema_sql = ""

    def initialize(self) -> None:
        """
        Create tables and provision the default tenant.

        Safe to call multiple times (idempotent).
        """
        self.execute_script(self.schema_sql)
        with self.get_connection() as conn:
            self.ensure_default_tenant(conn)

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        raise NotImplementedError

    def execute_script(self, script: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""

    def to_db_timestamp(self, value: Optional[datetime]) -> Any:
        """Convert a datetime into the value the backend stores."""
        return value

    # ------------------------------------------------------------------
    #  Low-level helpers
    # ------------------------------------------------------------------

    def _execute(self, conn: Any, sql: str, params: Sequence[Any] = ()) -> Any:
        if self.placeholder != "?":
            sql = sql.replace("?", self.placeholder)
        cursor = conn.cursor()
        cursor.execute(sql, tuple(params))
        return cursor

    def _fetchone(self, conn: Any, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        row = self._execute(conn, sql, params).fetchone()
        return dict(row) if row is not None else None

    def _fetchall(self, conn: Any, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._execute(conn, sql, params).fetchall()]

    def _prepare_value(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return self.to_db_timestamp(value)
        if isinstance(value, DownloadState):
            return value.value
        return value

    # ------------------------------------------------------------------
    #  Tenants
    # ------------------------------------------------------------------

    def get_tenant(self, conn: Any, tenant_id: str) -> Optional[Tenant]:
        row = self._fetchone(conn, "SELECT * FROM tenants WHERE id = ?", (tenant_id,))
        return Tenant.model_validate(row) if row else None

    def ensure_default_tenant(self, conn: Any) -> bool:
        """
        Create the default tenant if it does not exist yet.

        Args:
            conn: Database connection

        Returns:
            True if the tenant was created by this call
        """
        if self.get_tenant(conn, DEFAULT_TENANT_ID) is not None:
            return False

        logger.info("Creating default tenant")
        now = self.to_db_timestamp(utc_now())
        self._execute(
            conn,
            "INSERT INTO tenants (id, name, description, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (DEFAULT_TENANT_ID, DEFAULT_TENANT_NAME, DEFAULT_TENANT_DESCRIPTION, now, now),
        )
        return True

    # ------------------------------------------------------------------
    #  Podcasts
    # ------------------------------------------------------------------

    def get_podcast_by_id(self, conn: Any, podcast_id: str) -> Optional[Podcast]:
        row = self._fetchone(conn, "SELECT * FROM podcasts WHERE id = ?", (podcast_id,))
        return Podcast.model_validate(row) if row else None

    def get_podcast_by_rss_url(self, conn: Any, rss_url: str) -> Optional[Podcast]:
        """
        Retrieve a podcast by its feed URL.

        Args:
            conn: Database connection
            rss_url: Exact feed URL

        Returns:
            Podcast or None if not found
        """
        row = self._fetchone(conn, "SELECT * FROM podcasts WHERE rss_url = ?", (rss_url,))
        return Podcast.model_validate(row) if row else None

    def insert_podcast(
        self,
        conn: Any,
        podcast_id: str,
        tenant_id: str,
        rss_url: str,
        fields: Mapping[str, Any],
    ) -> Podcast:
        """
        Insert a new podcast record.

        Args:
            conn: Database connection
            podcast_id: New podcast identifier
            tenant_id: Owning tenant
            rss_url: Feed URL (unique)
            fields: Values for PODCAST_MUTABLE_FIELDS

        Returns:
            The inserted podcast

        Raises:
            IntegrityError of the backend if the feed URL already exists
        """
        now = utc_now()
        columns = ["id", "tenant_id", "rss_url"] + list(PODCAST_MUTABLE_FIELDS) + ["created_at", "updated_at"]
        values = [podcast_id, tenant_id, rss_url]
        values += [fields.get(name) for name in PODCAST_MUTABLE_FIELDS]
        values += [now, now]
        self._execute(
            conn,
            f"INSERT INTO podcasts ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            [self._prepare_value(v) for v in values],
        )
        return self.get_podcast_by_id(conn, podcast_id)

    def update_podcast(self, conn: Any, podcast_id: str, fields: Mapping[str, Any]) -> Podcast:
        """
        Overwrite the mutable metadata of a podcast.

        Identity columns (id, rss_url, tenant_id, created_at) are left alone.
        """
        assignments = ", ".join(f"{name} = ?" for name in PODCAST_MUTABLE_FIELDS)
        values = [fields.get(name) for name in PODCAST_MUTABLE_FIELDS] + [utc_now(), podcast_id]
        self._execute(
            conn,
            f"UPDATE podcasts SET {assignments}, updated_at = ? WHERE id = ?",
            [self._prepare_value(v) for v in values],
        )
        return self.get_podcast_by_id(conn, podcast_id)

    def count_podcasts(self, conn: Any) -> int:
        row = self._fetchone(conn, "SELECT COUNT(*) AS n FROM podcasts")
        return int(row["n"])

    # ------------------------------------------------------------------
    #  Episodes
    # ------------------------------------------------------------------

    def get_episode_by_id(self, conn: Any, episode_id: str) -> Optional[Episode]:
        row = self._fetchone(conn, "SELECT * FROM episodes WHERE id = ?", (episode_id,))
        return Episode.model_validate(row) if row else None

    def get_episode_by_guid(self, conn: Any, guid: str) -> Optional[Episode]:
        """
        Retrieve an episode by its GUID key.

        GUIDs are unique across all podcasts, not per podcast.
        """
        row = self._fetchone(conn, "SELECT * FROM episodes WHERE guid = ?", (guid,))
        return Episode.model_validate(row) if row else None

    def insert_episode(
        self,
        conn: Any,
        episode_id: str,
        podcast_id: str,
        guid: str,
        fields: Mapping[str, Any],
    ) -> Episode:
        """
        Insert a new episode record in the not_downloaded state.

        Args:
            conn: Database connection
            episode_id: New episode identifier
            podcast_id: Owning podcast
            guid: Episode key (unique)
            fields: Values for EPISODE_FIELDS

        Returns:
            The inserted episode
        """
        now = utc_now()
        columns = (
            ["id", "podcast_id", "guid"]
            + list(EPISODE_FIELDS)
            + ["download_state", "created_at", "updated_at"]
        )
        values = [episode_id, podcast_id, guid]
        values += [fields.get(name) for name in EPISODE_FIELDS]
        values += [DownloadState.NOT_DOWNLOADED, now, now]
        self._execute(
            conn,
            f"INSERT INTO episodes ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            [self._prepare_value(v) for v in values],
        )
        return self.get_episode_by_id(conn, episode_id)

    def list_episodes_by_state(
        self, conn: Any, state: DownloadState, limit: int = 1000
    ) -> List[Episode]:
        """
        List episodes in a download state, in storage order.

        Args:
            conn: Database connection
            state: Download state to match
            limit: Maximum number of rows returned

        Returns:
            List of episodes
        """
        rows = self._fetchall(
            conn,
            "SELECT * FROM episodes WHERE download_state = ? LIMIT ?",
            (state.value, limit),
        )
        return [Episode.model_validate(row) for row in rows]

    def mark_download_success(self, conn: Any, episode_id: str, storage_path: str) -> None:
        now = utc_now()
        self._execute(
            conn,
            "UPDATE episodes SET download_state = ?, downloaded_at = ?, storage_path = ?, "
            "updated_at = ? WHERE id = ?",
            (
                DownloadState.DOWNLOADED.value,
                self.to_db_timestamp(now),
                storage_path,
                self.to_db_timestamp(now),
                episode_id,
            ),
        )

    def mark_download_failed(self, conn: Any, episode_id: str) -> None:
        """Record a failed download; downloaded episodes are never demoted."""
        self._execute(
            conn,
            "UPDATE episodes SET download_state = ?, updated_at = ? "
            "WHERE id = ? AND download_state <> ?",
            (
                DownloadState.FAILED.value,
                self.to_db_timestamp(utc_now()),
                episode_id,
                DownloadState.DOWNLOADED.value,
            ),
        )

    def count_episodes(self, conn: Any, podcast_id: Optional[str] = None) -> int:
        if podcast_id is None:
            row = self._fetchone(conn, "SELECT COUNT(*) AS n FROM episodes")
        else:
            row = self._fetchone(
                conn, "SELECT COUNT(*) AS n FROM episodes WHERE podcast_id = ?", (podcast_id,)
            )
        return int(row["n"])


class SQLiteDatabase(Database):
    """SQLite backend, one connection per unit of work."""

    schema_sql = SQLITE_SCHEMA_SQL

    def __init__(self, db_path: Path):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections.

        Commits on success, rolls back on error and always closes.

        Yields:
            sqlite3.Connection: Database connection with row factory set
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute_script(self, script: str) -> None:
        with self.get_connection() as conn:
            conn.executescript(script)

    def to_db_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value is not None else None


class PostgreSQLDatabase(Database):
    """
    PostgreSQL backend.

    Connections come from a small psycopg2 pool created on first use and
    return rows as dictionaries.
    """

    placeholder = "%s"
    schema_sql = POSTGRES_SCHEMA_SQL

    def __init__(self, database_url: str, max_connections: int = 4):
        self.database_url = database_url
        self.max_connections = max_connections
        self._pool: Optional[psycopg2.pool.SimpleConnectionPool] = None

    def _get_pool(self) -> psycopg2.pool.SimpleConnectionPool:
        if self._pool is None:
            self._pool = psycopg2.pool.SimpleConnectionPool(
                1,
                self.max_connections,
                self.database_url,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
            logger.info("Connected to PostgreSQL database")
        return self._pool

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        pool = self._get_pool()
        conn = pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    def execute_script(self, script: str) -> None:
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(script)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("Closed PostgreSQL connection pool")


def create_database(config: Config) -> Database:
    """
    Build the Database backend selected by ``config.db_backend``.

    Args:
        config: Application configuration

    Returns:
        An uninitialized Database
    """
    if config.db_backend == "sqlite":
        logger.info("Using SQLite database: %s", config.sqlite_path)
        return SQLiteDatabase(config.sqlite_path)
    logger.info(
        "Using PostgreSQL database: %s:%s/%s", config.db_host, config.db_port, config.db_name
    )
    return PostgreSQLDatabase(config.database_url)
