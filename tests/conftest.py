"""Pytest fixtures for Planilla tests."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from planilla.config.settings import Settings
from planilla.core.context import TenantContext
from planilla.core.plans import SubscriptionPlan, SubscriptionStatus
from planilla.core.roles import TenantRole
from planilla.core.tenant import TenantService, TenantSnapshot
from planilla.db.config import create_engine, create_session_factory
from planilla.db.models.base import Base
from planilla.db.models.tenant import Subscription
from planilla.db.models.user import TenantUser, User

TEST_PASSWORD = "correct-horse-battery"


# =============================================================================
# Structlog Configuration Fixture
# =============================================================================


@pytest.fixture(scope="function", autouse=True)
def reset_structlog_after_test():
    """Reset structlog configuration after each test.

    This ensures tests that modify structlog global state
    don't affect other tests.
    """
    yield
    structlog.reset_defaults()
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings for a throwaway SQLite database file.

    A file (not ``:memory:``) so that every session opens its own connection
    and concurrent transactions really contend for the database lock.
    """
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DEBUG=False,
        log_level="DEBUG",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'planilla.db'}",
        JWT_SECRET_KEY=SecretStr("test-jwt-secret-key-that-is-long-enough-for-hs256"),
        STRIPE_SECRET_KEY=SecretStr("sk_test_planilla"),
        STRIPE_WEBHOOK_SECRET=SecretStr("whsec_test_planilla"),
        stripe_prices={
            "Starter": "price_starter",
            "Professional": "price_professional",
            "Enterprise": "price_enterprise",
        },
        frontend_url="http://app.test",
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create the test database and its tables."""
    engine = create_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Domain helpers
# =============================================================================


async def _make_tenant(
    session: AsyncSession,
    name: str,
    *,
    plan: SubscriptionPlan = SubscriptionPlan.PROFESSIONAL,
    status: SubscriptionStatus = SubscriptionStatus.TRIALING,
) -> TenantSnapshot:
    snapshot = await TenantService(session).create_tenant(name)
    if plan != SubscriptionPlan.PROFESSIONAL or status != SubscriptionStatus.TRIALING:
        await session.execute(
            update(Subscription)
            .where(Subscription.tenant_id == snapshot.tenant.id)
            .values(plan=plan.value, status=status.value, trial_ends_at=None)
        )
        await session.refresh(snapshot.subscription)
    return snapshot


async def _add_member(
    session: AsyncSession,
    tenant_id: int,
    email: str,
    role: TenantRole,
    *,
    password_hash: str = "pbkdf2_sha256$1$c2FsdA==$ZGlnZXN0",
) -> TenantContext:
    user = User(email=email.lower(), password_hash=password_hash)
    session.add(user)
    await session.flush()
    session.add(TenantUser(tenant_id=tenant_id, user_id=user.id, role=int(role), is_active=True))
    await session.flush()
    return TenantContext(tenant_id=tenant_id, role=role, user_id=user.id, email=user.email)


@pytest.fixture
def make_tenant() -> Callable[..., Awaitable[TenantSnapshot]]:
    """Factory creating a tenant (Professional trial unless told otherwise)."""
    return _make_tenant


@pytest.fixture
def add_member() -> Callable[..., Awaitable[TenantContext]]:
    """Factory adding an identity with a membership; returns its context."""
    return _add_member


# =============================================================================
# API test fixtures
# =============================================================================


@pytest.fixture
def test_app(test_settings: Settings, test_engine: AsyncEngine) -> FastAPI:
    """Create a FastAPI test application bound to the test database."""
    from planilla.api.app import create_app

    app = create_app(settings=test_settings)
    app.state.engine = test_engine
    app.state.session_factory = create_session_factory(test_engine)
    return app


@pytest_asyncio.fixture
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for API testing.

    Provides an httpx.AsyncClient configured to call the test application
    directly without network overhead.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_company(
    test_client: AsyncClient,
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Register a company through the API and return the session payload."""

    async def register(email: str, company_name: str, **extra: Any) -> dict[str, Any]:
        response = await test_client.post(
            "/api/auth/register",
            json={
                "email": email,
                "password": TEST_PASSWORD,
                "company_name": company_name,
                **extra,
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    return register


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    return bearer
