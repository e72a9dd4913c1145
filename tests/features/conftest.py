"""Shared fixtures for feature access tests."""

from collections.abc import Callable
from uuid import UUID

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from ppt.platform.auth.core import UserInfo, get_current_user
from ppt.platform.db import get_async_session
from ppt.platform.features.admin_router import admin_router
from ppt.platform.features.models import FeatureAccessState, FeatureFlag
from ppt.platform.features.package_router import package_router
from ppt.platform.features.packages import FeaturePackageCatalog
from ppt.platform.features.repository import FeatureAccessRepository, FeatureFlagRepository
from ppt.platform.features.router import router as features_router
from ppt.platform.main import register_exception_handlers


class FeatureSeeder:
    """Creates flags, access rules and packages through the repositories."""

    def __init__(self, session: AsyncSession):
        self.flags = FeatureFlagRepository(session)
        self.access = FeatureAccessRepository(session)
        self.catalog = FeaturePackageCatalog(session)

    async def flag(
        self,
        key: str,
        *,
        is_enabled: bool = False,
        access: dict[str, tuple[FeatureAccessState, bool]] | None = None,
        category: str | None = None,
    ) -> FeatureFlag:
        flag = await self.flags.create(key=key, name=key.replace("_", " ").title(), is_enabled=is_enabled)
        for user_type, (state, default_enabled) in (access or {}).items():
            await self.access.set_user_type_access(flag.id, user_type, state, default_enabled)
        if category is not None:
            await self.access.upsert_descriptor(
                flag.id, display_name=flag.name, category=category, icon="sparkles"
            )
        return flag

    async def package_with(
        self, slug: str, *flags: FeatureFlag, price_monthly_cents: int | None = None
    ):
        package = await self.catalog.create_package(
            name=slug.title(), slug=slug, price_monthly_cents=price_monthly_cents
        )
        for flag in flags:
            await self.catalog.add_flag(package.id, flag.id)
        return package


@pytest.fixture
def seed(async_db_session: AsyncSession) -> FeatureSeeder:
    return FeatureSeeder(async_db_session)


@pytest.fixture
def make_user(user_id: UUID, org_id: UUID) -> Callable[..., UserInfo]:
    def _make_user(**overrides) -> UserInfo:
        data = {
            "user_id": str(user_id),
            "email": "tenant@example.com",
            "username": "tenant",
            "tenant_id": str(org_id),
            "user_type": "tenant",
            "roles": ["user"],
        }
        data.update(overrides)
        return UserInfo(**data)

    return _make_user


@pytest.fixture
def build_app(async_db_session: AsyncSession) -> Callable[[UserInfo], FastAPI]:
    """Build an app with both feature routers and the given user authenticated."""

    def _build(user: UserInfo) -> FastAPI:
        app = FastAPI()

        async def override_async_session():
            yield async_db_session

        app.dependency_overrides[get_async_session] = override_async_session
        app.dependency_overrides[get_current_user] = lambda: user
        register_exception_handlers(app)
        app.include_router(features_router, prefix="/api/v1/features")
        app.include_router(admin_router, prefix="/api/v1/admin/features")
        app.include_router(package_router, prefix="/api/v1/feature-packages")
        return app

    return _build


@pytest_asyncio.fixture
async def client(build_app, make_user):
    """Client authenticated as a regular tenant user."""
    transport = ASGITransport(app=build_app(make_user()))
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


@pytest_asyncio.fixture
async def admin_client(build_app, make_user):
    """Client authenticated as an admin."""
    transport = ASGITransport(app=build_app(make_user(roles=["admin"], user_type="manager")))
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
