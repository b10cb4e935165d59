from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT NULL,
    role TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_users_role ON users(role, created_at);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    description TEXT NULL,
    color TEXT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    content TEXT NOT NULL,
    excerpt TEXT NULL,
    cover_image TEXT NULL,
    published INTEGER NOT NULL,
    featured INTEGER NOT NULL,
    sponsored INTEGER NOT NULL,
    author_id TEXT NOT NULL,
    category_id TEXT NULL,
    tags_json TEXT NOT NULL,
    keywords_json TEXT NOT NULL,
    seo_title TEXT NULL,
    seo_description TEXT NULL,
    views INTEGER NOT NULL,
    read_time INTEGER NOT NULL,
    source_url TEXT NULL,
    source_name TEXT NULL,
    published_at TEXT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY(author_id) REFERENCES users(id),
    FOREIGN KEY(category_id) REFERENCES categories(id)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_posts_source_url
ON posts(source_url) WHERE source_url IS NOT NULL;

CREATE INDEX IF NOT EXISTS idx_posts_title ON posts(title);

CREATE INDEX IF NOT EXISTS idx_posts_published_at
ON posts(published, published_at DESC);

CREATE INDEX IF NOT EXISTS idx_posts_category
ON posts(category_id, published_at DESC);
"""


class Database:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)
