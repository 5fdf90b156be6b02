"""
Pydantic data models for tenants, podcasts and episodes.

Rows read from either database backend are validated into these models,
so SQLite text timestamps and PostgreSQL datetimes end up as the same
Python types.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class DownloadState(str, Enum):
    """Media download state of an episode."""
    NOT_DOWNLOADED = "not_downloaded"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


class Tenant(BaseModel):
    """Namespace owning podcasts."""
    id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        from_attributes = True


class Podcast(BaseModel):
    """
    Podcast data model.

    One row per feed URL. Metadata fields are overwritten on every
    successful fetch; id, rss_url and tenant_id never change.
    """
    id: str
    tenant_id: str
    title: str
    description: Optional[str] = None
    link: Optional[str] = None
    language: Optional[str] = None
    copyright: Optional[str] = None
    author: Optional[str] = None
    email: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    explicit: bool = False
    rss_url: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        from_attributes = True


class Episode(BaseModel):
    """
    Episode data model.

    Represents a podcast episode with metadata from the RSS feed and
    media download bookkeeping.
    """
    id: str
    podcast_id: str
    title: str
    description: Optional[str] = None
    link: Optional[str] = None
    enclosure_url: Optional[str] = None
    enclosure_type: Optional[str] = None
    enclosure_length: Optional[int] = None
    guid: str
    pub_date: Optional[datetime] = None
    duration: Optional[str] = None
    episode_number: Optional[int] = None
    episode_type: Optional[str] = None
    image_url: Optional[str] = None
    explicit: bool = False
    download_state: DownloadState = DownloadState.NOT_DOWNLOADED
    downloaded_at: Optional[datetime] = None
    storage_path: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        from_attributes = True

    @property
    def is_downloaded(self) -> bool:
        return self.download_state == DownloadState.DOWNLOADED
