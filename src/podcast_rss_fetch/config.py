"""
Configuration management for podcast-rss-fetch.

Provides centralized configuration using Pydantic for validation and
environment variable support. Connection settings for the relational store
and the object store come from plain environment variables (``DB_HOST``,
``MINIO_BUCKET``, ...), optionally overridden per project by podcast.yaml.
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type
from urllib.parse import quote

import yaml
from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


# Fixed identifier of the tenant that owns every ingested podcast
DEFAULT_TENANT_ID = "00000000-0000-0000-0000-000000000001"

DEFAULT_EXTRA_OPML_PATHS = ["feed.opml", "podcasts.opml", "subscriptions.opml"]


def find_podcast_yaml(search_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Locate podcast.yaml starting from search_dir (or the working directory)
    and walking up to 3 parent directories.

    Returns:
        Path to the first podcast.yaml found, or None
    """
    start = (search_dir or Path.cwd()).resolve()
    for parent in [start] + list(start.parents)[:3]:
        candidate = parent / "podcast.yaml"
        if candidate.is_file():
            return candidate
    return None


def load_podcast_yaml(search_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load podcast.yaml configuration file.

    Args:
        search_dir: Directory to start searching from

    Returns:
        Dictionary with podcast.yaml contents, or empty dict if not found
    """
    path = find_podcast_yaml(search_dir)
    if path is None:
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data if isinstance(data, dict) else {}


class Config(BaseSettings):
    """
    Application configuration with environment variable support.

    Configuration can be provided via (highest priority first):
    1. Constructor arguments
    2. Environment variables (no prefix, case-insensitive)
    3. .env file
    4. podcast.yaml
    5. Default values

    Example:
        export DB_HOST="db.internal"
        export MINIO_BUCKET="archive"
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Relational store
    db_backend: str = Field(
        default="postgres",
        pattern="^(postgres|sqlite)$",
        description="Relational store backend (postgres/sqlite)"
    )
    db_host: str = Field(default="localhost", description="PostgreSQL host")
    db_port: int = Field(default=5432, description="PostgreSQL port")
    db_user: str = Field(default="postgres", description="PostgreSQL user")
    db_password: str = Field(default="password", description="PostgreSQL password")
    db_name: str = Field(default="podcast_db", description="PostgreSQL database name")
    sqlite_path: Path = Field(
        default=Path("data") / "podcasts.db",
        description="SQLite database file, used when db_backend is sqlite"
    )

    # Object store
    minio_endpoint: str = Field(default="localhost:9000", description="host:port of the S3 endpoint")
    minio_access_key: str = Field(default="minioadmin", description="S3 access key")
    minio_secret_key: str = Field(default="minioadmin", description="S3 secret key")
    minio_use_ssl: bool = Field(default=False, description="Use https for the S3 endpoint")
    minio_bucket: str = Field(default="podcasts", description="Bucket receiving episode media")

    # Feed sources
    feed_list_path: Path = Field(
        default=Path("feed.txt"),
        description="Line-delimited feed URL list"
    )
    primary_opml_path: Path = Field(
        default=Path("feed.xml"),
        description="Primary OPML source"
    )
    extra_opml_paths: List[Path] = Field(
        default_factory=lambda: [Path(p) for p in DEFAULT_EXTRA_OPML_PATHS],
        description="Optional OPML sources, read in this order"
    )

    # Network behaviour
    fetch_timeout: float = Field(default=10.0, gt=0, description="Feed request timeout in seconds")
    download_timeout: float = Field(default=300.0, gt=0, description="Media request timeout in seconds")
    max_attempts: int = Field(default=3, ge=1, description="Attempts per feed or episode")
    backoff_base: float = Field(default=2.0, ge=0, description="First retry delay in seconds")
    download_delay: float = Field(default=1.0, ge=0, description="Pause between episodes in seconds")
    pending_limit: int = Field(default=1000, ge=1, description="Episodes listed per download batch")
    temp_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()),
        description="Directory for staged media files"
    )

    log_level: str = Field(default="INFO", description="Root log level")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        yaml_values = {
            key: value
            for key, value in load_podcast_yaml().items()
            if key in settings_cls.model_fields
        }
        yaml_settings = InitSettingsSource(settings_cls, init_kwargs=yaml_values)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    @property
    def database_url(self) -> str:
        """PostgreSQL connection URL built from the db_* settings, credentials percent-encoded."""
        return (
            f"postgresql://{quote(self.db_user, safe='')}:{quote(self.db_password, safe='')}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def minio_url(self) -> str:
        """Endpoint URL including scheme."""
        scheme = "https" if self.minio_use_ssl else "http"
        return f"{scheme}://{self.minio_endpoint}"

    def opml_paths(self) -> List[Path]:
        """Primary OPML source followed by the optional ones."""
        return [self.primary_opml_path] + list(self.extra_opml_paths)


def get_config(**overrides: Any) -> Config:
    """
    Get the application configuration instance.

    Merges settings from environment variables, .env file,
    and podcast.yaml (if present).

    Returns:
        Config: Application configuration
    """
    return Config(**overrides)
