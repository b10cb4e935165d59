from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import UTC, datetime
from sqlite3 import Connection, Row
from typing import Any
from uuid import uuid4

from backend.app.repositories.common import (
    dump_str_list,
    load_str_list,
    parse_iso_datetime,
    utc_now_iso,
)
from backend.app.repositories.database import Database

_LIST_LIMIT_MAX = 200


@dataclass(frozen=True)
class PostDraft:
    title: str
    slug: str
    content: str
    excerpt: str | None
    read_time: int
    cover_image: str | None = None
    published: bool = False
    featured: bool = False
    sponsored: bool = False
    category_id: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    keywords: tuple[str, ...] = field(default_factory=tuple)
    seo_title: str | None = None
    seo_description: str | None = None
    published_at: datetime | None = None
    source_url: str | None = None
    source_name: str | None = None


@dataclass(frozen=True)
class PostRecord:
    post_id: str
    title: str
    slug: str
    content: str
    excerpt: str | None
    cover_image: str | None
    published: bool
    featured: bool
    sponsored: bool
    author_id: str
    category_id: str | None
    tags: list[str]
    keywords: list[str]
    seo_title: str | None
    seo_description: str | None
    views: int
    read_time: int
    source_url: str | None
    source_name: str | None
    published_at: datetime | None
    created_at: datetime
    updated_at: datetime


class DuplicatePostError(Exception):
    """A unique index on posts rejected the write."""

    def __init__(self, column: str, message: str) -> None:
        super().__init__(message)
        self.column = column


class PostRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def create_post(self, draft: PostDraft, *, author_id: str) -> PostRecord:
        now_iso = utc_now_iso()
        post_id = f"post_{uuid4().hex}"
        published_at = _published_at_for(draft.published, draft.published_at)
        try:
            with self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO posts (
                        id, title, slug, content, excerpt, cover_image,
                        published, featured, sponsored, author_id, category_id,
                        tags_json, keywords_json, seo_title, seo_description,
                        views, read_time, source_url, source_name, published_at,
                        created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        post_id,
                        draft.title,
                        draft.slug,
                        draft.content,
                        draft.excerpt,
                        draft.cover_image or None,
                        1 if draft.published else 0,
                        1 if draft.featured else 0,
                        1 if draft.sponsored else 0,
                        author_id,
                        draft.category_id,
                        dump_str_list(draft.tags),
                        dump_str_list(draft.keywords),
                        draft.seo_title,
                        draft.seo_description,
                        max(1, draft.read_time),
                        draft.source_url,
                        draft.source_name,
                        published_at,
                        now_iso,
                        now_iso,
                    ),
                )
                created = _get_post_with_conn(conn, post_id)
        except sqlite3.IntegrityError as exc:
            raise _as_duplicate_error(exc) from exc
        if created is None:
            raise RuntimeError("Post was not found after insert")
        return created

    def update_post(self, post_id: str, draft: PostDraft) -> PostRecord | None:
        # source_url is provenance and is never rewritten by an edit.
        published_at = _published_at_for(draft.published, draft.published_at)
        try:
            with self._db.connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE posts
                    SET
                        title = ?,
                        slug = ?,
                        content = ?,
                        excerpt = ?,
                        cover_image = ?,
                        published = ?,
                        featured = ?,
                        sponsored = ?,
                        category_id = ?,
                        tags_json = ?,
                        keywords_json = ?,
                        seo_title = ?,
                        seo_description = ?,
                        read_time = ?,
                        published_at = ?,
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        draft.title,
                        draft.slug,
                        draft.content,
                        draft.excerpt,
                        draft.cover_image or None,
                        1 if draft.published else 0,
                        1 if draft.featured else 0,
                        1 if draft.sponsored else 0,
                        draft.category_id,
                        dump_str_list(draft.tags),
                        dump_str_list(draft.keywords),
                        draft.seo_title,
                        draft.seo_description,
                        max(1, draft.read_time),
                        published_at,
                        utc_now_iso(),
                        post_id,
                    ),
                )
                if cursor.rowcount <= 0:
                    return None
                return _get_post_with_conn(conn, post_id)
        except sqlite3.IntegrityError as exc:
            raise _as_duplicate_error(exc) from exc

    def update_content(self, post_id: str, *, content: str, read_time: int) -> PostRecord | None:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE posts
                SET content = ?, read_time = ?, updated_at = ?
                WHERE id = ?
                """,
                (content, max(1, read_time), utc_now_iso(), post_id),
            )
            if cursor.rowcount <= 0:
                return None
            return _get_post_with_conn(conn, post_id)

    def get_post(self, post_id: str) -> PostRecord | None:
        with self._db.connection() as conn:
            return _get_post_with_conn(conn, post_id)

    def get_post_by_slug(self, slug: str) -> PostRecord | None:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM posts WHERE slug = ? LIMIT 1", (slug,)).fetchone()
        if row is None:
            return None
        return _row_to_post(row)

    def slug_exists(self, slug: str) -> bool:
        with self._db.connection() as conn:
            row = conn.execute("SELECT 1 FROM posts WHERE slug = ? LIMIT 1", (slug,)).fetchone()
        return row is not None

    def find_duplicate(self, *, title: str, source_url: str | None = None) -> PostRecord | None:
        clauses = ["title = ?"]
        params: list[Any] = [title]
        if source_url is not None:
            clauses.append("source_url = ?")
            params.append(source_url)
        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                SELECT *
                FROM posts
                WHERE {" OR ".join(clauses)}
                ORDER BY created_at ASC
                LIMIT 1
                """,
                tuple(params),
            ).fetchone()
        if row is None:
            return None
        return _row_to_post(row)

    def list_posts(
        self,
        *,
        published_only: bool = True,
        category_id: str | None = None,
        featured: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[PostRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if published_only:
            clauses.append("published = 1")
        if category_id is not None:
            clauses.append("category_id = ?")
            params.append(category_id)
        if featured is not None:
            clauses.append("featured = ?")
            params.append(1 if featured else 0)

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(max(1, min(limit, _LIST_LIMIT_MAX)))
        params.append(max(0, offset))
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM posts
                {where_sql}
                ORDER BY COALESCE(published_at, created_at) DESC
                LIMIT ? OFFSET ?
                """,
                tuple(params),
            ).fetchall()
        return [_row_to_post(row) for row in rows]

    def list_sourced_post_ids_newest_first(self) -> list[str]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id
                FROM posts
                WHERE source_url IS NOT NULL
                ORDER BY published_at DESC, created_at DESC
                """
            ).fetchall()
        return [str(row["id"]) for row in rows]

    def list_backfill_candidates(self, *, markers: tuple[str, ...], limit: int) -> list[PostRecord]:
        if not markers:
            return []
        marker_sql = " OR ".join("instr(content, ?) > 0" for _ in markers)
        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM posts
                WHERE source_url IS NOT NULL
                  AND ({marker_sql})
                ORDER BY created_at ASC
                LIMIT ?
                """,
                (*markers, max(1, limit)),
            ).fetchall()
        return [_row_to_post(row) for row in rows]

    def delete_post(self, post_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM posts WHERE id = ?", (post_id,))
        return cursor.rowcount > 0

    def delete_posts(self, post_ids: list[str]) -> int:
        if not post_ids:
            return 0
        deleted = 0
        with self._db.connection() as conn:
            # Chunked to stay under SQLite's bound-parameter limit.
            for start in range(0, len(post_ids), 500):
                chunk = post_ids[start : start + 500]
                cursor = conn.execute(
                    f"DELETE FROM posts WHERE id IN ({', '.join('?' for _ in chunk)})",
                    tuple(chunk),
                )
                deleted += max(0, cursor.rowcount)
        return deleted

    def increment_views(self, post_id: str) -> int | None:
        with self._db.connection() as conn:
            cursor = conn.execute("UPDATE posts SET views = views + 1 WHERE id = ?", (post_id,))
            if cursor.rowcount <= 0:
                return None
            row = conn.execute("SELECT views FROM posts WHERE id = ?", (post_id,)).fetchone()
        return None if row is None else int(row["views"])

    def count_posts(self, *, sourced: bool | None = None) -> int:
        where_sql = ""
        if sourced is True:
            where_sql = "WHERE source_url IS NOT NULL"
        elif sourced is False:
            where_sql = "WHERE source_url IS NULL"
        with self._db.connection() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS total FROM posts {where_sql}").fetchone()
        return int(row["total"]) if row is not None else 0


def _published_at_for(published: bool, published_at: datetime | None) -> str | None:
    if not published:
        return None
    resolved = published_at if published_at is not None else datetime.now(UTC)
    if resolved.tzinfo is None:
        resolved = resolved.replace(tzinfo=UTC)
    return resolved.astimezone(UTC).isoformat()


def _as_duplicate_error(exc: sqlite3.IntegrityError) -> Exception:
    message = str(exc)
    if "posts.source_url" in message:
        return DuplicatePostError("source_url", message)
    if "posts.slug" in message:
        return DuplicatePostError("slug", message)
    return exc


def _get_post_with_conn(conn: Connection, post_id: str) -> PostRecord | None:
    row = conn.execute("SELECT * FROM posts WHERE id = ? LIMIT 1", (post_id,)).fetchone()
    if row is None:
        return None
    return _row_to_post(row)


def _row_to_post(row: Row) -> PostRecord:
    created_at = parse_iso_datetime(row["created_at"])
    updated_at = parse_iso_datetime(row["updated_at"])
    assert created_at is not None and updated_at is not None
    return PostRecord(
        post_id=str(row["id"]),
        title=str(row["title"]),
        slug=str(row["slug"]),
        content=str(row["content"]),
        excerpt=_optional_text(row["excerpt"]),
        cover_image=_optional_text(row["cover_image"]),
        published=bool(row["published"]),
        featured=bool(row["featured"]),
        sponsored=bool(row["sponsored"]),
        author_id=str(row["author_id"]),
        category_id=_optional_text(row["category_id"]),
        tags=load_str_list(row["tags_json"]),
        keywords=load_str_list(row["keywords_json"]),
        seo_title=_optional_text(row["seo_title"]),
        seo_description=_optional_text(row["seo_description"]),
        views=int(row["views"]),
        read_time=max(1, int(row["read_time"])),
        source_url=_optional_text(row["source_url"]),
        source_name=_optional_text(row["source_name"]),
        published_at=parse_iso_datetime(row["published_at"]),
        created_at=created_at,
        updated_at=updated_at,
    )


def _optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None
