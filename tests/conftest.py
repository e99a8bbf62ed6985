"""Pytest configuration and fixtures."""

import os
import tempfile

# Settings are read once at import time by the application modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORES_ROOT", tempfile.mkdtemp(prefix="storebuilder-sites-"))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import storebuilder.models  # noqa: F401
from storebuilder.api.dependencies.common import get_orchestrator
from storebuilder.core.database import Base, get_db_session
from storebuilder.main import app
from storebuilder.services.identifier_allocator import IdentifierAllocator

from .fakes import FakeExecutor, build_test_orchestrator, script_successful_publish

# Test database URL (using SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create a test database session."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def stores_root(tmp_path):
    root = tmp_path / "stores"
    root.mkdir()
    return root


@pytest.fixture
def executor():
    return script_successful_publish(FakeExecutor())


@pytest.fixture
def allocator():
    return IdentifierAllocator()


@pytest.fixture
def verifier_status():
    """HTTP status the fake live domain answers with."""
    return 200

@pytest.fixture
def orchestrator(db_session, executor, stores_root, allocator, verifier_status):
    return build_test_orchestrator(db_session, executor, stores_root, allocator, verifier_status)


@pytest_asyncio.fixture
async def client(db_session, orchestrator):
    """Create a test client with database and orchestrator overrides."""

    async def get_test_db():
        yield db_session

    app.dependency_overrides[get_db_session] = get_test_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def store_config():
    """Minimal valid store configuration."""
    return {
        "name": "Nordic Goods",
        "country": "SE",
        "language": "sv",
        "currency": "SEK",
    }


@pytest.fixture
def sample_store_request(store_config):
    """Store creation request body in JSON:API form."""
    return {
        "data": {
            "type": "store",
            "attributes": {
                **store_config,
                "domain": "shop.example.com",
                "support_email": "help@example.com",
                "primary_color": "#112233",
                "selected_pages": ["about", "privacy-policy"],
            }
        }
    }
