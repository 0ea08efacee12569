"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper (same as catalog/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  email carries a UNIQUE constraint. Callers check get_by_email() before a
  write that sets an email; the constraint catches the race where two
  requests pass that check concurrently. save() translates the resulting
  IntegrityError into DuplicateEmail.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail
from auth.models import Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite settings every store needs.

    check_same_thread=False because FastAPI runs sync handlers in a thread
    pool; WAL so readers are not blocked by a writer.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///secureapi.db")
        user = store.save(User(name="Ann", email="ann@example.com", hashed_password=hash_password("pw")))
        same = store.get_by_email("ann@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def save(self, user: User) -> User:
        """Insert a new user (id is None) or overwrite an existing one.

        Returns the stored record, with id and created_at filled in on insert.
        Raises DuplicateEmail if the email belongs to another user.
        """
        values = {
            "name": user.name,
            "email": user.email,
            "hashed_password": user.hashed_password,
            "role": Role(user.role).value,
        }
        try:
            with self.engine.connect() as conn:
                if user.id is None:
                    user = replace(user, id=uuid.uuid4().hex, created_at=_now_iso())
                    conn.execute(_users.insert().values(id=user.id, created_at=user.created_at, **values))
                else:
                    conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return self.get_by_id(user.id) or user

    def delete_by_id(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Products owned by the user are NOT removed here -- the route deletes
        them through ProductStore first.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        created_at=row.created_at,
    )
