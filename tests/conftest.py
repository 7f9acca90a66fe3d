"""
Test infrastructure for the news platform.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The posts app's get_db dependency is overridden so every test-time
  request uses the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after.
- The user and logging services run on a MemoryKeyValueStore, so no Redis
  is required; the audit log is written into pytest's tmp_path.
- bcrypt runs with the minimum cost factor to keep the suite fast.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from newsblog.config import Settings
from newsblog.database import Base, get_db
from newsblog.kvstore import MemoryKeyValueStore
from newsblog.main import app, create_logging_app, create_user_app
from newsblog.models import Category, User
from newsblog.security import create_access_token, hash_password
from newsblog.services.logging_service import LoggingService, build_audit_logger

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override — replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """httpx client wired to the posts API."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        KV_BACKEND="memory",
        BCRYPT_ROUNDS=4,
        SECRET_KEY="test-secret-key-with-at-least-32-bytes",
        LOG_DIR=str(tmp_path / "logs"),
    )


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def logging_service(test_settings) -> LoggingService:
    return LoggingService(build_audit_logger(test_settings))


@pytest_asyncio.fixture
async def user_client(test_settings, kv_store) -> AsyncClient:
    """httpx client wired to a user service app backed by ``kv_store``."""
    user_app = create_user_app(test_settings, store=kv_store)
    transport = ASGITransport(app=user_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def log_client(test_settings, kv_store, logging_service) -> AsyncClient:
    """httpx client wired to a logging service app sharing ``kv_store``."""
    logging_app = create_logging_app(test_settings, store=kv_store, logging_service=logging_service)
    transport = ASGITransport(app=logging_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory inserting a row into the posts database's users table."""
    async def _make_user(email: str = "author@example.com", deleted: bool = False) -> User:
        user = User(email=email, password_hash=hash_password("secret1", rounds=4), deleted=deleted)
        db_session.add(user)
        await db_session.commit()
        return user
    return _make_user


@pytest.fixture
def make_categories(db_session: AsyncSession):
    async def _make_categories(*names: str) -> None:
        for name in names:
            db_session.add(Category(name=name))
        await db_session.commit()
    return _make_categories


@pytest.fixture
def auth_headers():
    """Bearer header for *user*, signed with the posts app's own settings."""
    def _auth_headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.email, app.state.settings)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers
