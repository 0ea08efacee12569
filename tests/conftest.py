"""
tests/conftest.py -- Shared test fixtures for SecureAPI tests.

This module provides:
  - make_stores(): isolated named shared-memory SQLite stores
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: module-scoped TestClient plus seeded admin/user accounts
  - codec / user_store / product_store: unit-test fixtures

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

SECRET_KEY and ALLOWED_HOSTS must be set before any api/auth import because
api.main reads get_settings() at import time.

The session cookie is Secure, and TestClient talks plain http, so the client
never sends cookies it received back by itself. Tests pass the token
explicitly with session_headers(token).
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: configure the environment before importing the app.
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-0123456789")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("WRITE_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import TokenBucketLimiter
from api.main import app
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenCodec, hash_password
from catalog.store import ProductStore
from core.config import get_settings

TEST_SECRET = os.environ["SECRET_KEY"]


def session_headers(token: str) -> dict[str, str]:
    """Cookie header carrying the session token."""
    return {"Cookie": f"jwt={token}"}


@dataclass
class Account:
    id: str
    email: str
    password: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return session_headers(self.token)


@dataclass
class ApiContext:
    client: TestClient
    admin: Account
    alice: Account
    bob: Account
    user_store: UserStore
    product_store: ProductStore
    codec: TokenCodec


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores(db_suffix: str) -> tuple[UserStore, ProductStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = f"sqlite:///file:test_{db_suffix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    return UserStore(url), ProductStore(url)


def _patch_lifespan(user_store: UserStore, product_store: ProductStore, codec: TokenCodec, gate: TokenBucketLimiter):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.token_codec = codec
        app.state.user_store = user_store
        app.state.product_store = product_store
        app.state.rate_limiter = gate
        yield

    return test_lifespan


def _seed(store: UserStore, codec: TokenCodec, name: str, email: str, password: str, role: Role) -> Account:
    user = store.save(User(name=name, email=email, hashed_password=hash_password(password), role=role))
    return Account(id=user.id, email=email, password=password, token=codec.issue(user.id))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET, ttl_seconds=86400)


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    users, products = make_stores("unit")
    yield users
    users.close()
    products.close()


@pytest.fixture
def product_store() -> Generator[ProductStore, None, None]:
    users, products = make_stores("unit")
    yield products
    users.close()
    products.close()


@pytest.fixture
def stores() -> Generator[tuple[UserStore, ProductStore], None, None]:
    """A UserStore and ProductStore on the same database."""
    users, products = make_stores("unit")
    yield users, products
    users.close()
    products.close()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with one admin and two regular users seeded.

    The real FastAPI app runs with a patched lifespan, so tests hit real
    middleware, dependencies and handlers but isolated in-memory stores.
    The auth token bucket is generous; tests of the 429 path install their
    own limiter on app.state.
    """
    user_store, product_store = make_stores(request.module.__name__.rsplit(".", 1)[-1])
    codec = TokenCodec(TEST_SECRET, ttl_seconds=86400)
    gate = TokenBucketLimiter(capacity=10_000, window_seconds=60)

    admin = _seed(user_store, codec, "Admin", "admin@acme.io", "adminpass123", Role.ADMIN)
    alice = _seed(user_store, codec, "Alice", "alice@acme.io", "alicepass123", Role.USER)
    bob = _seed(user_store, codec, "Bob", "bob@acme.io", "bobpass1234", Role.USER)

    app.router.lifespan_context = _patch_lifespan(user_store, product_store, codec, gate)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            admin=admin,
            alice=alice,
            bob=bob,
            user_store=user_store,
            product_store=product_store,
            codec=codec,
        )

    user_store.close()
    product_store.close()
