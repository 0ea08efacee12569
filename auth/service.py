"""
auth/service.py -- Authentication pipeline operations.

Routes call these functions; they never inline store lookups plus bcrypt
checks themselves.

  register_user()   -- create an identity with a hashed password, role USER
  login()           -- verify credentials, mint a session token
  issue_session()   -- mint a token for an identity that is already verified
  refresh_session() -- re-issue the session cookie after a self-update
  resolve_caller()  -- session token -> CallerContext

Session refresh after a self-update does not replay the password through
login(): the update handler already holds a verified caller, so the token is
minted for that identity directly and no plaintext password is kept around.
If minting fails, the committed update stands; the failure is logged on the
secureapi.auth.session logger and reported to the caller as a False return.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from auth.errors import DuplicateEmail, InvalidCredentials, UnknownSubject
from auth.models import CallerContext, Role, User
from auth.tokens import TokenCodec, authenticate_user, hash_password, set_session_cookie

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("secureapi.auth")
session_logger = logging.getLogger("secureapi.auth.session")


def register_user(store: UserStore, name: str, email: str, password: str) -> User:
    """Create a new USER identity. Raises DuplicateEmail without writing if the email exists."""
    if store.get_by_email(email) is not None:
        raise DuplicateEmail()
    user = store.save(
        User(
            name=name,
            email=email,
            hashed_password=hash_password(password),
            role=Role.USER,
        )
    )
    logger.info("Registered user id=%s", user.id)
    return user


def login(store: UserStore, codec: TokenCodec, email: str, password: str) -> tuple[User, str]:
    """Verify credentials and return (user, token).

    Unknown email and wrong password both raise the same InvalidCredentials.
    """
    user = authenticate_user(store, email, password)
    if user is None:
        logger.info("Failed login attempt")
        raise InvalidCredentials()
    return user, issue_session(codec, user)


def issue_session(codec: TokenCodec, user: User, now: datetime | None = None) -> str:
    return codec.issue(user.id, now=now)


def refresh_session(response, codec: TokenCodec, user: User, secure: bool = True) -> bool:
    """Mint a fresh session for `user` and set it on `response`.

    Returns False if the token could not be minted. The caller's data change
    is not rolled back in that case -- the client keeps its previous cookie,
    which stays valid until its own expiry.
    """
    try:
        token = issue_session(codec, user)
    except Exception:
        session_logger.warning("Session refresh failed for user id=%s; update kept", user.id, exc_info=True)
        return False
    set_session_cookie(response, token, max_age=codec.ttl_seconds, secure=secure)
    return True


def resolve_caller(token: str, codec: TokenCodec, store: UserStore, now: datetime | None = None) -> CallerContext:
    """Turn a session token into a CallerContext.

    Raises InvalidToken (bad signature, malformed, expired) or UnknownSubject
    (identity deleted after the token was issued). The role is read from the
    stored identity, not from the token, so role changes apply immediately.
    """
    subject = codec.verify(token, now=now)
    user = store.get_by_id(subject)
    if user is None:
        raise UnknownSubject()
    return CallerContext(identity_id=user.id, role=user.role)
