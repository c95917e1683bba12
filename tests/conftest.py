import pytest
import pytest_asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock
from httpx import AsyncClient, ASGITransport
from jose import jwt

TEST_SECRET = "test-secret"
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Must be set before config is imported
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["AUTH_JWT_SECRET"] = TEST_SECRET
os.environ["AUTH_JWT_ALGORITHM"] = "HS256"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.pop("AUTH_JWKS_URL", None)
os.environ.pop("AUTH_ISSUER", None)

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from database import Base, get_db
from main import app
from services.companion_service import create_companion
from services.page_cache import PageCache, get_page_cache

COMPANION_PAYLOAD = {
    "name": "Neura the Brainy Explorer",
    "subject": "science",
    "topic": "Neural Network of the Brain",
    "voice": "female",
    "style": "casual",
    "duration": 15,
}


def make_token(sub="user_1", expires_in=timedelta(minutes=5), secret=TEST_SECRET, **claims):
    payload = {"sub": sub, "exp": datetime.now(timezone.utc) + expires_in, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def redis_mock():
    redis = AsyncMock()
    redis.hget.return_value = None
    return redis


@pytest.fixture
def page_cache(redis_mock):
    return PageCache(redis_mock, ttl=60)


@pytest_asyncio.fixture
async def client(db_session, page_cache) -> AsyncGenerator[AsyncClient, None]:
    # Override the dependencies
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_page_cache] = lambda: page_cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(sub="user_1", **claims):
        return {"Authorization": f"Bearer {make_token(sub, **claims)}"}
    return _headers


@pytest.fixture
def make_companion(db_session):
    async def _make(author="user_1", **overrides):
        return await create_companion(db_session, {**COMPANION_PAYLOAD, **overrides}, author)
    return _make
