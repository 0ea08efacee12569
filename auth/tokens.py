"""
auth/tokens.py -- Session token codec, password hashing, and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (identity id), iat and exp as
       integer epoch seconds. TokenCodec.verify() raises InvalidToken on any
       failure -- the caller resolution layer turns that into "no caller".
       Signature comparison happens inside jose's HMAC backend, which uses
       hmac.compare_digest (constant time with respect to the key).

       Expiry is checked here against an explicit `now` rather than by jose's
       wall-clock check, so the exp boundary is deterministic and testable.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  Statelessness: nothing about issued tokens is stored. Logout only tells the
       browser to drop the cookie; a captured token stays valid until exp.
       This is an accepted residual risk, not an oversight.

  SECRET_KEY: TokenCodec refuses keys shorter than 32 chars with ConfigError,
       independently of Settings validation, so a codec can never be built
       around a weak key.

Layer rule: no imports from api/ or catalog/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidToken
from core.config import MIN_SECRET_KEY_LENGTH, ConfigError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("secureapi.auth")

SESSION_COOKIE = "jwt"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length well below that (Pydantic max_length).
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("secureapi_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


def _epoch(now: datetime | None) -> int:
    return int((now or datetime.now(timezone.utc)).timestamp())


class TokenCodec:
    """Issues and verifies signed, time-bounded session tokens.

    Usage:
        codec = TokenCodec(settings.secret_key, ttl_seconds=86400)
        token = codec.issue(user.id)
        subject = codec.verify(token)   # raises InvalidToken
    """

    def __init__(self, secret_key: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        if not secret_key:
            raise ConfigError("Token signing key is not configured.")
        if len(secret_key) < MIN_SECRET_KEY_LENGTH:
            raise ConfigError(f"Token signing key must be at least {MIN_SECRET_KEY_LENGTH} characters.")
        if ttl_seconds <= 0:
            raise ConfigError("Token TTL must be positive.")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(settings.secret_key, ttl_seconds=settings.token_ttl_seconds)

    def issue(self, subject: str, now: datetime | None = None) -> str:
        """Encode a signed JWT for `subject` expiring ttl_seconds after `now`."""
        issued_at = _epoch(now)
        payload = {
            "sub": subject,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str, now: datetime | None = None) -> str:
        """Verify signature, structure and expiry. Returns the subject.

        Raises InvalidToken on any failure. A token is still valid at exactly
        its exp second and invalid from exp + 1 onwards.
        """
        if not token:
            raise InvalidToken("Missing session token.")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            raise InvalidToken("Session token signature or format is invalid.") from exc

        subject = payload.get("sub")
        expires_at = payload.get("exp")
        if not isinstance(subject, str) or not subject or not isinstance(expires_at, int):
            raise InvalidToken("Session token is missing required claims.")
        if _epoch(now) > expires_at:
            raise InvalidToken("Session token has expired.")
        return subject


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int = DEFAULT_TTL_SECONDS, secure: bool = True) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    secure: only sent over HTTPS. Disabled only via SECURE_COOKIES=false.
    path="/": sent to every API path.
    max_age: matches the token TTL so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )


def clear_session_cookie(response, secure: bool = True) -> None:
    """Replace the session cookie with an empty, zero-lifetime one.

    The browser discards it immediately. The token it replaced is NOT revoked
    server-side and remains valid until its own exp.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value="",
        max_age=0,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )
