"""
auth/errors.py -- Exception taxonomy for authentication and authorization.

Every class carries the HTTP status it maps to. api/main.py registers one
exception handler for AuthError that renders the structured error body, so
routes and dependencies raise these instead of building responses by hand.

InvalidToken and UnknownSubject never reach a client: caller resolution
catches them and continues the request as unauthenticated.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 401
    message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCredentials(AuthError):
    """Unknown email or wrong password. Deliberately does not say which."""

    status_code = 401
    message = "Invalid email or password."


class DuplicateEmail(AuthError):
    status_code = 400
    message = "Email address already in use."


class Unauthenticated(AuthError):
    status_code = 401
    message = "Authentication required."


class Forbidden(AuthError):
    status_code = 403
    message = "Access denied."


class InvalidToken(AuthError):
    """Malformed, forged, or expired session token."""

    status_code = 401
    message = "Invalid session token."


class UnknownSubject(AuthError):
    """Token verified but its identity no longer exists."""

    status_code = 401
    message = "Session subject no longer exists."


class TooManyRequests(AuthError):
    status_code = 429
    message = "Too many requests"
