"""
tests/conftest.py -- Shared test fixtures for the SSO service.

This module provides:
  - FakeDirectory / FakeRegistry: in-memory collaborators for AuthService unit
    tests, with knobs for injected failures and artificial latency
  - hasher / issuer / service: a fast (rounds=4) AuthService over the fakes
  - store: an in-memory SqlStore with the schema created
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the API fixture builds its SqlStore *inside* the patched lifespan.
TestClient runs the lifespan and every request on one portal event loop, so
the aiosqlite connection is created and used on the same loop.

DATABASE_URL must be set before any api/ import: core.config refuses to build
Settings without it. LOGIN_RATE_LIMIT is raised so the login tests do not
trip the 10/minute production limit.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

# CRITICAL: set before any api/ or core/ import so get_settings() succeeds.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from api.main import app
from auth.errors import ErrorKind, StorageError
from auth.hasher import PasswordHasher
from auth.models import Application, User
from auth.service import AuthService
from auth.store import SqlStore
from auth.tokens import TokenIssuer

MEMORY_URL = "sqlite+aiosqlite:///:memory:"
TEST_TTL = timedelta(hours=1)

# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class FakeDirectory:
    """UserDirectory double.

    fail_with: raised by every method when set (simulates a storage outage).
    delay:     seconds each call sleeps first (simulates a slow backend).
    """

    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.admins: set[int] = set()
        self.fail_with: Exception | None = None
        self.delay: float = 0.0

    async def _enter(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def save_user(self, email: str, pass_hash: bytes) -> int:
        await self._enter()
        if email in self.users:
            raise StorageError(ErrorKind.USER_EXISTS)
        user_id = len(self.users) + 1
        self.users[email] = User(id=user_id, email=email, pass_hash=pass_hash)
        return user_id

    async def find_user_by_email(self, email: str) -> User:
        await self._enter()
        try:
            return self.users[email]
        except KeyError:
            raise StorageError(ErrorKind.USER_NOT_FOUND) from None

    async def is_admin(self, user_id: int) -> bool:
        await self._enter()
        if not any(u.id == user_id for u in self.users.values()):
            raise StorageError(ErrorKind.USER_NOT_FOUND)
        return user_id in self.admins


class FakeRegistry:
    """ApplicationRegistry double."""

    def __init__(self, *apps: Application) -> None:
        self.apps = {a.id: a for a in apps}
        self.fail_with: Exception | None = None

    async def find_application(self, app_id: int) -> Application:
        if self.fail_with is not None:
            raise self.fail_with
        try:
            return self.apps[app_id]
        except KeyError:
            raise StorageError(ErrorKind.APP_NOT_FOUND) from None


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """Minimum bcrypt cost -- the tests check behaviour, not brute-force resistance."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry(Application(id=1, name="web", secret="s"))


@pytest.fixture
def service(directory: FakeDirectory, registry: FakeRegistry, hasher: PasswordHasher) -> AuthService:
    return AuthService(directory, registry, hasher, TokenIssuer(), TEST_TTL, timeout=2.0)


@pytest_asyncio.fixture
async def store():
    """Fresh in-memory SqlStore with the schema created."""
    s = SqlStore(MEMORY_URL)
    await s.create_schema()
    yield s
    await s.close()


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(apps: list[tuple[str, str]]):
    """Return a lifespan that wires an in-memory store and a fast AuthService.

    apps are (name, secret) pairs registered in order, so the first gets id 1.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        store = SqlStore(MEMORY_URL)
        await store.create_schema()
        for name, secret in apps:
            await store.save_app(name, secret)
        app.state.store = store
        app.state.auth_service = AuthService(store, store, PasswordHasher(rounds=4), TokenIssuer(), TEST_TTL)
        yield
        await store.close()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient whose store has one application: id=1, secret="s"."""
    app.router.lifespan_context = _patch_lifespan([("web", "s")])
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
