"""
BookSwap Backend - Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

The application's own engine is pointed at a throwaway SQLite file (via
DATABASE_URL, set before any bookswap import), so code that opens its own
sessions (reminder sweep, dashboard fan-out) sees the same data as the test.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── db_engine: Fresh schema on the test database
    │   ├── db_session: Session for arranging data and calling services
    │   ├── make_user / make_book / make_swap: Row factories
    │   └── test_client: HTTPX AsyncClient for API endpoint testing
    ├── temp_storage: Temporary directory for avatar storage tests
    ├── sample_image_bytes: Tiny PNG for upload tests
    └── token_for / auth_headers: Session JWTs for any user id

SQLite only allows one writer: commit arranged data before running code
that writes from another session.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any app imports
_TEST_DIR = tempfile.mkdtemp(prefix="bookswap_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/bookswap_test.db"
os.environ["JWT_SECRET"] = "test-jwt-secret-that-is-long-enough-for-hs256"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["DAILY_REMINDER_TOKEN"] = "test-reminder-token"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "avatars")
os.environ["AVATAR_PUBLIC_BASE_URL"] = "http://test/storage/avatars"
os.environ["SWAP_COMPLETION_POLICY"] = "first"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

import bookswap.models  # noqa: E402,F401
from bookswap.config import settings  # noqa: E402
from bookswap.context import RequestContext  # noqa: E402
from bookswap.database import Base, async_session_factory, engine  # noqa: E402
from bookswap.models.book import Book, BookCondition  # noqa: E402
from bookswap.models.profile import Profile  # noqa: E402
from bookswap.models.swap import SwapRequest, SwapStatus  # noqa: E402

REMINDER_TOKEN = "test-reminder-token"


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

def make_token(user_id: uuid.UUID, expires_in: int = 3600, **claims) -> str:
    """Session JWT shaped like the auth provider's."""
    payload = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def ctx_for(db, user_id: uuid.UUID) -> RequestContext:
    return RequestContext(user_id=user_id, db=db)


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    Recreates every table on the test database.

    The engine is disposed afterwards so no pooled connection outlives
    the test's event loop.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_session_factory


@pytest_asyncio.fixture
async def db_session(db_engine):
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    """
    Factory for profiles.

    Usage:
        alice = await make_user("alice")
    """

    async def _make(username: Optional[str] = None, **fields) -> Profile:
        profile = Profile(id=uuid.uuid4(), username=username, **fields)
        db_session.add(profile)
        await db_session.flush()
        return profile

    return _make


@pytest.fixture
def make_book(db_session):
    async def _make(owner: Profile, title: str = "Dune", **fields) -> Book:
        fields.setdefault("authors", ["Frank Herbert"])
        fields.setdefault("condition", BookCondition.GOOD)
        fields.setdefault("is_available", True)
        book = Book(owner_id=owner.id, title=title, **fields)
        db_session.add(book)
        await db_session.flush()
        return book

    return _make


@pytest.fixture
def make_swap(db_session):
    """Inserts a swap row directly, in whatever state the test needs."""

    async def _make(
        book: Book,
        requester: Profile,
        status: SwapStatus = SwapStatus.PENDING,
        **fields,
    ) -> SwapRequest:
        if status == SwapStatus.COMPLETED:
            fields.setdefault("completed_at", datetime.now(timezone.utc))
        swap = SwapRequest(
            book_id=book.id,
            requester_id=requester.id,
            owner_id=book.owner_id,
            status=status,
            **fields,
        )
        db_session.add(swap)
        await db_session.flush()
        return swap

    return _make


# ══════════════════════════════════════════════════════════════════════════
# Files
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """A fresh storage root per test (pytest's tmp_path, cleaned up automatically)."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_image_bytes():
    """The PNG signature plus an empty IHDR chunk: enough bytes for upload tests."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 17


# ══════════════════════════════════════════════════════════════════════════
# HTTP Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def auth_headers():
    def _headers(user_id: uuid.UUID) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest_asyncio.fixture
async def test_client(db_engine):
    """
    HTTPX AsyncClient talking to a freshly built app (fresh rate limit windows).

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from bookswap.main import create_app

    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def csrf_headers(test_client, auth_headers):
    """
    Authorization + X-CSRF-Token for a mutation by `user_id`.

    The CSRF token belongs to the client's cookie session, which every
    request from `test_client` shares.
    """

    async def _headers(user_id: uuid.UUID) -> dict:
        response = await test_client.get("/api/auth/csrf")
        assert response.status_code == 200
        return {**auth_headers(user_id), "X-CSRF-Token": response.json()["csrf_token"]}

    return _headers
