"""Shared pytest fixtures for the access control test suite.

Provides:
- In-memory async SQLite database (no PostgreSQL needed for tests)
- Seeded permission catalog and system roles
- FastAPI test client (httpx.AsyncClient)
- User factory and auth helpers (JWT tokens)
"""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional, Sequence
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key-not-for-production")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from app.config import get_settings  # noqa: E402
from core.security import create_access_token  # noqa: E402
from db.database import Database  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """A fresh in-memory database per test, schema created."""
    db = Database.from_url("sqlite+aiosqlite:///:memory:", get_settings())
    await db.create_all()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session that commits (so the app can read data)."""
    async with database.session_factory() as session:
        yield session
        await session.commit()


@pytest_asyncio.fixture
async def seeded(db_session):
    """Catalog permissions and system roles, committed."""
    from services.seed_service import seed_catalog

    created = await seed_catalog(db_session)
    await db_session.commit()
    return created


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(database):
    """Create a FastAPI app instance wired to the test database."""
    from app.main import create_app

    return create_app(settings=get_settings(), database=database)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_user(db_session):
    """Factory: create a committed user profile holding the named roles."""
    from db.models.user import UserProfile
    from services.assignment_service import AssignmentService

    async def _make(
        roles: Sequence[str] = (),
        email: Optional[str] = None,
        is_active: bool = True,
        first_name: str = "Test",
    ) -> UserProfile:
        user = UserProfile(
            id=str(uuid4()),
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            first_name=first_name,
            last_name="User",
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.flush()
        if roles:
            await AssignmentService(db_session).assign_roles_by_name(user.id, list(roles))
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_permission(db_session):
    """Factory: create a committed catalog permission."""
    from services.permission_service import PermissionService

    async def _make(name: str, description: Optional[str] = None):
        permission = await PermissionService(db_session).create(name=name, description=description)
        await db_session.commit()
        return permission

    return _make


def _headers_for(user, expires_in: Optional[timedelta] = None, **claims) -> dict:
    token = create_access_token(user_id=user.id, email=user.email, expires_in=expires_in, **claims)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Authorization headers with a valid token for a user."""
    return _headers_for


@pytest_asyncio.fixture
async def admin_user(seeded, make_user):
    return await make_user(roles=["admin"], email="admin@example.com", first_name="Ada")


@pytest_asyncio.fixture
async def super_admin_user(seeded, make_user):
    return await make_user(roles=["super_admin"], email="root@example.com")


@pytest_asyncio.fixture
async def plain_user(seeded, make_user):
    return await make_user(roles=["user"], email="plain@example.com", first_name="Pat")


@pytest.fixture
def auth_headers(admin_user) -> dict:
    """Authorization headers for the admin user."""
    return _headers_for(admin_user)


@pytest.fixture
def audit_rows(database: Database):
    """Fetch audit rows in insertion order through a fresh session."""
    from sqlalchemy import select

    from db.models.audit_log import AuditLog

    async def _fetch(action: Optional[str] = None) -> list:
        async with database.session_factory() as session:
            query = select(AuditLog).order_by(AuditLog.created_at)
            if action:
                query = query.where(AuditLog.action == action)
            return list((await session.execute(query)).scalars().all())

    return _fetch
