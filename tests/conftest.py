"""
Test infrastructure for the Conduit API.

Strategy
--------
- SQLite in-memory via aiosqlite, so no Postgres is needed in CI.
- StaticPool makes every session share the single in-memory connection;
  a second connection would see an empty database.
- ``database.connect`` is called here first, so the process-wide handle
  (and therefore ``get_db``) points at the test engine; the app lifespan
  is not run by ASGITransport.
- All tables are created before each test and dropped after it.
- Redis is disabled (``cache._redis = None``); the CacheManager treats that
  as a permanent miss and grants every lock.
"""
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from conduit.cache import cache
from conduit.config import settings
from conduit.database import Base, database

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Cheap hashes keep registration fast in tests.
settings.BCRYPT_ROUNDS = 4

database.connect(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

from conduit.main import app  # noqa: E402


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for tests that call services directly."""
    async with database.session() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """An httpx client wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Helpers shared by the endpoint tests
# ---------------------------------------------------------------------------

async def register(client: AsyncClient, username: str) -> dict:
    """Register *username* and return auth headers for it."""
    resp = await client.post("/api/users", json={"user": {
        "username": username,
        "email": f"{username}@example.com",
        "password": "password123",
    }})
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Token {resp.json()['user']['token']}"}


async def post_article(client: AsyncClient, headers: dict, title: str, tags: list[str] | None = None) -> dict:
    resp = await client.post("/api/articles", headers=headers, json={"article": {
        "title": title,
        "description": f"About {title}",
        "body": f"Body of {title}",
        "tagList": tags or [],
    }})
    assert resp.status_code == 201, resp.text
    return resp.json()["article"]
