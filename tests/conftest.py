import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone

# Settings are read at import time: select the test mode first
os.environ["MODE"] = "test"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="ledger-uploads-"))

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from httpx import AsyncClient, ASGITransport

from main import app as fastapi_app
import db as project_db
import db_models  # ensure models are imported
from db_base import Base
from db_models.user import User, UserRole
from core import deps
from core.security import get_password_hash, create_access_token, token_claims
from ledger.attachments import LocalAttachmentStore
from ledger.cache import LocalCacheMirror
from ledger.models import Asset, AssetStatus
from ledger.store import SqlRecordStore
from ledger.sync import ChangeFeed


T0 = datetime(2025, 11, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        future=True,
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session):
    return SqlRecordStore(db_session)


@pytest.fixture
def cache(tmp_path):
    return LocalCacheMirror(tmp_path / "cache", "asset-ledger-assets:v1")


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def make_asset():
    """Build an Asset with sensible reference data; override any field by keyword."""
    def _make(asset_id: str = "0101F1000005", **fields) -> Asset:
        data = {
            "id": asset_id,
            "asset_number": asset_id,
            "equipment_name": "空調機",
            "acquisition_date": "2010-01-01",
            "acquisition_amount": 3500000,
            "lifespan_years": 15,
            "factory": "富津工場",
            "input_by": "田中",
            "assigned_to": "田中",
            "updated_at": T0,
        }
        data.update(fields)
        return Asset(**data)

    return _make


@pytest.fixture
async def seeded_assets(session_factory, make_asset):
    """Three assets: unfilled, pending review (located) and approved."""
    assets = [
        make_asset("A-001"),
        make_asset(
            "A-002",
            factory="千葉工場",
            building="第一工場",
            floor="2F",
            status=AssetStatus.PENDING_REVIEW,
            assigned_to="佐藤",
        ),
        make_asset(
            "A-003",
            equipment_name="ポンプ",
            building="管理棟",
            floor="1F",
            g=2, u=2, t=2,
            status=AssetStatus.APPROVED,
        ),
    ]
    async with session_factory() as session:
        return await SqlRecordStore(session).upsert_many(assets)


@pytest.fixture
async def users(session_factory):
    async with session_factory() as session:
        created = {
            role: User(
                email=f"{role.value.lower()}@test.com",
                hashed_password=get_password_hash(f"{role.value.lower()}pass"),
                full_name=f"Test {role.value.title()}",
                role=role.value,
                is_active=True,
            )
            for role in UserRole
        }
        session.add_all(created.values())
        await session.commit()
        return created


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(token_claims(user))}"}


@pytest.fixture
def admin_headers(users):
    return _headers(users[UserRole.ADMIN])


@pytest.fixture
def customer_headers(users):
    return _headers(users[UserRole.CUSTOMER])


@pytest.fixture
def reviewer_headers(users):
    return _headers(users[UserRole.REVIEWER])


@pytest.fixture
def upload_root(tmp_path):
    return tmp_path / "uploads"


def _override_common(session_factory, cache, upload_root):
    fastapi_app.dependency_overrides[project_db.get_sessionmaker] = lambda: session_factory
    fastapi_app.dependency_overrides[deps.get_cache_mirror] = lambda: cache
    fastapi_app.dependency_overrides[deps.get_attachment_store] = (
        lambda: LocalAttachmentStore(upload_root, "/files")
    )
    fastapi_app.state.change_feed = ChangeFeed()


@pytest.fixture
async def async_client(session_factory, cache, upload_root):
    # Override the get_session dependency to create a fresh session for each request
    async def override_get_session():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[project_db.get_session] = override_get_session
    _override_common(session_factory, cache, upload_root)

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac

    # Clean up
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def offline_client(cache, upload_root):
    """Client for a service running without a remote store (cache-only mode)."""
    async def no_session():
        yield None

    fastapi_app.dependency_overrides[project_db.get_session] = no_session
    _override_common(None, cache, upload_root)

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def offline_customer_headers():
    """Token of a user the cache-only service has never seen in a user table."""
    user = User(id=42, email="field@test.com", full_name="Field Customer", role=UserRole.CUSTOMER.value)
    return _headers(user)


def later(moment: datetime, seconds: int = 1) -> datetime:
    return moment + timedelta(seconds=seconds)


async def wait_until(condition, timeout: float = 2.0):
    """Yield to the event loop until `condition()` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
