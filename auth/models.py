"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in catalog/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, core/, or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class User:
    """A registered identity.

    email is the login key and is unique (case-sensitive, exact match).
    hashed_password is a bcrypt hash -- the plaintext is never stored.

    id is None before the record is written; the store assigns an opaque
    uuid4 hex string on first save.
    """

    name: str
    email: str
    hashed_password: str
    role: Role = Role.USER
    id: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class CallerContext:
    """The identity attached to a request after its session token verified.

    Lives on request.state.caller for the duration of one request only.
    """

    identity_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
