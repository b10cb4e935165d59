from __future__ import annotations

from dataclasses import dataclass
from sqlite3 import Row
from uuid import uuid4

from backend.app.repositories.common import utc_now_iso
from backend.app.repositories.database import Database


@dataclass(frozen=True)
class CategoryRecord:
    category_id: str
    name: str
    slug: str
    description: str | None
    color: str | None
    created_at: str
    updated_at: str


class CategoryRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def get_by_slug(self, slug: str) -> CategoryRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM categories WHERE slug = ? LIMIT 1",
                (slug,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_category(row)

    def get_category(self, category_id: str) -> CategoryRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM categories WHERE id = ? LIMIT 1",
                (category_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_category(row)

    def list_categories(self) -> list[CategoryRecord]:
        with self._db.connection() as conn:
            rows = conn.execute("SELECT * FROM categories ORDER BY name ASC").fetchall()
        return [_row_to_category(row) for row in rows]

    def create_category(
        self,
        *,
        name: str,
        slug: str,
        description: str | None,
        color: str | None,
    ) -> CategoryRecord:
        now_iso = utc_now_iso()
        category_id = f"category_{uuid4().hex}"
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO categories (id, name, slug, description, color, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (category_id, name, slug, description, color, now_iso, now_iso),
            )
        return CategoryRecord(
            category_id=category_id,
            name=name,
            slug=slug,
            description=description,
            color=color,
            created_at=now_iso,
            updated_at=now_iso,
        )


def _row_to_category(row: Row) -> CategoryRecord:
    return CategoryRecord(
        category_id=str(row["id"]),
        name=str(row["name"]),
        slug=str(row["slug"]),
        description=None if row["description"] is None else str(row["description"]),
        color=None if row["color"] is None else str(row["color"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )
