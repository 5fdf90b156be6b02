"""
Data models and database management.

Provides the relational schema, Pydantic data models, and database
access layers for tenants, podcasts and episodes.
"""

from podcast_rss_fetch.models.database import (
    Database,
    PostgreSQLDatabase,
    SQLiteDatabase,
    create_database,
)
from podcast_rss_fetch.models.entities import DownloadState, Episode, Podcast, Tenant
from podcast_rss_fetch.models.schema import POSTGRES_SCHEMA_SQL, SQLITE_SCHEMA_SQL, TABLE_NAMES

__all__ = [
    "Database",
    "PostgreSQLDatabase",
    "SQLiteDatabase",
    "create_database",
    "DownloadState",
    "Episode",
    "Podcast",
    "Tenant",
    "POSTGRES_SCHEMA_SQL",
    "SQLITE_SCHEMA_SQL",
    "TABLE_NAMES",
]
