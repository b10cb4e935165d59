from __future__ import annotations

from dataclasses import dataclass
from sqlite3 import Row
from uuid import uuid4

from backend.app.repositories.common import utc_now_iso
from backend.app.repositories.database import Database

USER_ROLE_USER = "USER"
USER_ROLE_ADMIN = "ADMIN"


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    email: str
    name: str | None
    role: str
    created_at: str
    updated_at: str


class UserRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def find_first_by_role(self, role: str) -> UserRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM users
                WHERE role = ?
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (role,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_user(row)

    def get_by_email(self, email: str) -> UserRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? LIMIT 1",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return _row_to_user(row)

    def create_user(self, *, email: str, name: str | None, role: str) -> UserRecord:
        if role not in {USER_ROLE_USER, USER_ROLE_ADMIN}:
            raise ValueError(f"Unsupported user role: {role}")
        now_iso = utc_now_iso()
        user_id = f"user_{uuid4().hex}"
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, name, role, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, email.strip().lower(), name, role, now_iso, now_iso),
            )
        return UserRecord(
            user_id=user_id,
            email=email.strip().lower(),
            name=name,
            role=role,
            created_at=now_iso,
            updated_at=now_iso,
        )


def _row_to_user(row: Row) -> UserRecord:
    return UserRecord(
        user_id=str(row["id"]),
        email=str(row["email"]),
        name=None if row["name"] is None else str(row["name"]),
        role=str(row["role"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )
