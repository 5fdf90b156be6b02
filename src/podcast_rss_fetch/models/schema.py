"""
Relational schema for tenants, podcasts and episodes.

The schema exists in two dialects with identical table and column names:
PostgreSQL for deployments and SQLite for local runs and tests. Tables are
created with IF NOT EXISTS; there is no migration tooling.
"""

POSTGRES_SCHEMA_SQL = """
-- ============================================================
-- TENANTS: Ownership namespaces
-- ============================================================
CREATE TABLE IF NOT EXISTS tenants (
    id              UUID         PRIMARY KEY,
    name            VARCHAR(255) NOT NULL,
    description     TEXT,
    created_at      TIMESTAMPTZ  DEFAULT now(),
    updated_at      TIMESTAMPTZ  DEFAULT now()
);

-- ============================================================
-- PODCASTS: One row per feed URL
-- ============================================================
CREATE TABLE IF NOT EXISTS podcasts (
    id              UUID         PRIMARY KEY,
    tenant_id       UUID         NOT NULL REFERENCES tenants(id),
    title           VARCHAR(255) NOT NULL,
    description     TEXT,
    link            TEXT,
    language        VARCHAR(50),
    copyright       TEXT,
    author          VARCHAR(255),
    email           VARCHAR(255),
    image_url       TEXT,
    category        VARCHAR(255),
    explicit        BOOLEAN      DEFAULT FALSE,
    rss_url         TEXT         NOT NULL UNIQUE,
    created_at      TIMESTAMPTZ  DEFAULT now(),
    updated_at      TIMESTAMPTZ  DEFAULT now()
);

-- ============================================================
-- EPISODES: Feed items, unique by guid across all podcasts
-- ============================================================
CREATE TABLE IF NOT EXISTS episodes (
    id               UUID         PRIMARY KEY,
    podcast_id       UUID         NOT NULL REFERENCES podcasts(id),
    title            VARCHAR(255) NOT NULL,
    description      TEXT,
    link             TEXT,
    enclosure_url    TEXT,
    enclosure_type   VARCHAR(100),
    enclosure_length BIGINT,
    guid             TEXT         NOT NULL UNIQUE,
    pub_date         TIMESTAMPTZ,
    duration         VARCHAR(50),
    episode_number   INTEGER,
    episode_type     VARCHAR(50),
    image_url        TEXT,
    explicit         BOOLEAN      DEFAULT FALSE,
    download_state   VARCHAR(20)  NOT NULL DEFAULT 'not_downloaded'
                     CHECK (download_state IN ('not_downloaded', 'downloaded', 'failed')),
    downloaded_at    TIMESTAMPTZ,
    storage_path     TEXT,
    created_at       TIMESTAMPTZ  DEFAULT now(),
    updated_at       TIMESTAMPTZ  DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_episodes_podcast ON episodes(podcast_id);
CREATE INDEX IF NOT EXISTS idx_episodes_download_state ON episodes(download_state);
"""


SQLITE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tenants (
    id              TEXT    PRIMARY KEY,
    name            TEXT    NOT NULL,
    description     TEXT,
    created_at      TEXT    DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')),
    updated_at      TEXT    DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))
);

CREATE TABLE IF NOT EXISTS podcasts (
    id              TEXT    PRIMARY KEY,
    tenant_id       TEXT    NOT NULL REFERENCES tenants(id),
    title           TEXT    NOT NULL,
    description     TEXT,
    link            TEXT,
    language        TEXT,
    copyright       TEXT,
    author          TEXT,
    email           TEXT,
    image_url       TEXT,
    category        TEXT,
    explicit        INTEGER DEFAULT 0 CHECK (explicit IN (0, 1)),
    rss_url         TEXT    NOT NULL UNIQUE,
    created_at      TEXT,
    updated_at      TEXT
);

CREATE TABLE IF NOT EXISTS episodes (
    id               TEXT    PRIMARY KEY,
    podcast_id       TEXT    NOT NULL REFERENCES podcasts(id),
    title            TEXT    NOT NULL,
    description      TEXT,
    link             TEXT,
    enclosure_url    TEXT,
    enclosure_type   TEXT,
    enclosure_length INTEGER,
    guid             TEXT    NOT NULL UNIQUE,
    pub_date         TEXT,
    duration         TEXT,
    episode_number   INTEGER,
    episode_type     TEXT,
    image_url        TEXT,
    explicit         INTEGER DEFAULT 0 CHECK (explicit IN (0, 1)),
    download_state   TEXT    NOT NULL DEFAULT 'not_downloaded'
                     CHECK (download_state IN ('not_downloaded', 'downloaded', 'failed')),
    downloaded_at    TEXT,
    storage_path     TEXT,
    created_at       TEXT,
    updated_at       TEXT
);

CREATE INDEX IF NOT EXISTS idx_episodes_podcast ON episodes(podcast_id);
CREATE INDEX IF NOT EXISTS idx_episodes_download_state ON episodes(download_state);
"""

TABLE_NAMES = ["tenants", "podcasts", "episodes"]
