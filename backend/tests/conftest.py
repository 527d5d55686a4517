"""Test fixtures for OrgLedger backend tests."""

import os
import uuid
from contextlib import asynccontextmanager
from unittest.mock import patch

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest  # noqa: E402
from fastapi import Depends  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from orgledger.core.dependencies import get_orchestrator  # noqa: E402
from orgledger.core.security import create_access_token  # noqa: E402
from orgledger.database import Base, get_db  # noqa: E402
from orgledger.main import app  # noqa: E402
from orgledger.models import MemberRole, Organization, OrganizationMember, User  # noqa: E402
from orgledger.services import membership_store  # noqa: E402
from orgledger.services.membership import MembershipOrchestrator  # noqa: E402

# Use SQLite for tests by default (no external DB needed).
# Override with TEST_DATABASE_URL env var for PostgreSQL integration tests.
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///./test.db",
)

_connect_args = {}
IS_SQLITE = "sqlite" in TEST_DATABASE_URL
if IS_SQLITE:
    _connect_args["check_same_thread"] = False

engine = create_async_engine(TEST_DATABASE_URL, echo=False, connect_args=_connect_args)
TestSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Map PostgreSQL-specific types to SQLite equivalents for testing
if IS_SQLITE:
    from sqlalchemy.dialects.sqlite.base import SQLiteTypeCompiler
    SQLiteTypeCompiler.visit_JSONB = SQLiteTypeCompiler.visit_JSON  # type: ignore[attr-defined]
    SQLiteTypeCompiler.visit_UUID = lambda self, type_, **kw: "TEXT"  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def mock_email():
    """Keep notification dispatch off the broker; tests inspect the mock."""
    with patch("orgledger.services.notifications.send_membership_email") as mock_task:
        yield mock_task


@pytest.fixture
async def db() -> AsyncSession:
    """Session used to arrange and inspect test data."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def orchestrator():
    """Open a ``MembershipOrchestrator`` on its own session, like one request."""

    @asynccontextmanager
    async def _open():
        async with TestSessionLocal() as session:
            yield MembershipOrchestrator(session, audit_sessions=TestSessionLocal)

    return _open


@pytest.fixture
async def client() -> AsyncClient:
    """HTTP client whose requests each get a fresh test DB session."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_get_orchestrator(db: AsyncSession = Depends(get_db)):
        return MembershipOrchestrator(db, audit_sessions=TestSessionLocal)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = override_get_orchestrator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------


async def make_user(db: AsyncSession, name: str = "Test User", *, is_super_admin: bool = False) -> User:
    user = User(
        email=f"{name.split()[0].lower()}-{uuid.uuid4().hex[:8]}@example.com",
        name=name,
        is_super_admin=is_super_admin,
    )
    db.add(user)
    await db.commit()
    return user


async def make_org(db: AsyncSession, owner: User, *, seats: int = 5, name: str = "Acme") -> Organization:
    """Organization with ``owner`` as its only OWNER and no seats used."""
    org = Organization(name=name, plan="TEAM", seats=seats, seats_used=0)
    db.add(org)
    await db.flush()
    db.add(OrganizationMember(organization_id=org.id, user_id=owner.id, role=MemberRole.OWNER))
    await db.commit()
    return org


async def add_member(db: AsyncSession, org: Organization, user: User, role: MemberRole = MemberRole.MEMBER) -> None:
    """Insert a membership row directly, keeping ``seats_used`` consistent."""
    db.add(OrganizationMember(organization_id=org.id, user_id=user.id, role=role))
    if role.occupies_seat:
        fresh = await membership_store.get_organization(db, org.id)
        fresh.seats_used += 1
    await db.commit()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
