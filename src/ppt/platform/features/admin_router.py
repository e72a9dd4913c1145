"""
Admin API for managing feature flags, the access matrix, packages and
organization subscriptions.

All endpoints require one of the configured admin roles. Changes are
recorded through the audit logger.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ppt.platform.auth.core import UserInfo
from ppt.platform.auth.dependencies import require_admin
from ppt.platform.db import get_async_session
from ppt.platform.logging import log_audit_event

from .models import OverrideScope
from .packages import FeaturePackageCatalog
from .repository import FeatureAccessRepository, FeatureFlagRepository
from .schemas import (
    FeatureDescriptorResponse,
    FeatureDescriptorSet,
    FeatureFlagCreate,
    FeatureFlagResponse,
    FeatureFlagUpdate,
    FeatureOverrideResponse,
    FeatureOverrideSet,
    FeaturePackageCreate,
    FeaturePackageResponse,
    FeaturePackageUpdate,
    SubscriptionCreate,
    SubscriptionResponse,
    UserTypeAccessResponse,
    UserTypeAccessSet,
)

logger = structlog.get_logger(__name__)

admin_router = APIRouter(tags=["Features Admin"])


# ============================================
# Flags
# ============================================


@admin_router.get("/flags", response_model=list[FeatureFlagResponse])
async def list_flags(
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> list[FeatureFlagResponse]:
    flags = await FeatureFlagRepository(session).list_all()
    return [FeatureFlagResponse.model_validate(f) for f in flags]


@admin_router.post("/flags", response_model=FeatureFlagResponse, status_code=status.HTTP_201_CREATED)
async def create_flag(
    body: FeatureFlagCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> FeatureFlagResponse:
    flag = await FeatureFlagRepository(session).create(**body.model_dump())
    log_audit_event(
        "feature.flag.created",
        user_id=current_user.user_id,
        resource_type="feature_flag",
        resource_id=flag.key,
    )
    return FeatureFlagResponse.model_validate(flag)


@admin_router.get("/flags/{key}", response_model=FeatureFlagResponse)
async def get_flag(
    key: str,
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> FeatureFlagResponse:
    flag = await FeatureFlagRepository(session).require(key)
    return FeatureFlagResponse.model_validate(flag)


@admin_router.patch("/flags/{key}", response_model=FeatureFlagResponse)
async def update_flag(
    key: str,
    body: FeatureFlagUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> FeatureFlagResponse:
    changes = body.model_dump(exclude_unset=True)
    flag = await FeatureFlagRepository(session).update(key, **changes)
    log_audit_event(
        "feature.flag.updated",
        user_id=current_user.user_id,
        resource_type="feature_flag",
        resource_id=key,
        changes=changes,
    )
    return FeatureFlagResponse.model_validate(flag)


@admin_router.delete("/flags/{key}", response_model=FeatureFlagResponse)
async def disable_flag(
    key: str,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> FeatureFlagResponse:
    """Flags are never removed; deleting one disables it globally."""
    flag = await FeatureFlagRepository(session).disable(key)
    log_audit_event(
        "feature.flag.disabled",
        user_id=current_user.user_id,
        resource_type="feature_flag",
        resource_id=key,
    )
    return FeatureFlagResponse.model_validate(flag)


# ============================================
# Overrides
# ============================================


@admin_router.get("/flags/{key}/overrides", response_model=list[FeatureOverrideResponse])
async def list_overrides(
    key: str,
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> list[FeatureOverrideResponse]:
    repo = FeatureFlagRepository(session)
    flag = await repo.require(key)
    return [FeatureOverrideResponse.model_validate(o) for o in await repo.list_overrides(flag.id)]


@admin_router.put("/flags/{key}/overrides", response_model=FeatureOverrideResponse)
async def set_override(
    key: str,
    body: FeatureOverrideSet,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> FeatureOverrideResponse:
    repo = FeatureFlagRepository(session)
    flag = await repo.require(key)
    override = await repo.set_override(flag.id, body.scope_type, body.scope_id, body.is_enabled)
    log_audit_event(
        "feature.override.set",
        user_id=current_user.user_id,
        resource_type="feature_flag",
        resource_id=key,
        scope_type=body.scope_type.value,
        scope_id=str(body.scope_id),
        is_enabled=body.is_enabled,
    )
    return FeatureOverrideResponse.model_validate(override)


@admin_router.delete(
    "/flags/{key}/overrides/{scope_type}/{scope_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_override(
    key: str,
    scope_type: OverrideScope,
    scope_id: UUID,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> None:
    repo = FeatureFlagRepository(session)
    flag = await repo.require(key)
    if not await repo.delete_override(flag.id, scope_type, scope_id):
        raise HTTPException(status_code=404, detail="Override not found")
    log_audit_event(
        "feature.override.deleted",
        user_id=current_user.user_id,
        resource_type="feature_flag",
        resource_id=key,
        scope_type=scope_type.value,
        scope_id=str(scope_id),
    )


# ============================================
# Access matrix and descriptors
# ============================================


@admin_router.get("/flags/{key}/access", response_model=list[UserTypeAccessResponse])
async def list_flag_access(
    key: str,
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> list[UserTypeAccessResponse]:
    flag = await FeatureFlagRepository(session).require(key)
    rows = await FeatureAccessRepository(session).list_feature_access(flag.id)
    return [UserTypeAccessResponse.model_validate(r) for r in rows]


@admin_router.put("/flags/{key}/access", response_model=UserTypeAccessResponse)
async def set_flag_access(
    key: str,
    body: UserTypeAccessSet,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> UserTypeAccessResponse:
    flag = await FeatureFlagRepository(session).require(key)
    row = await FeatureAccessRepository(session).set_user_type_access(
        flag.id, body.user_type, body.access_state, body.default_enabled
    )
    log_audit_event(
        "feature.access.set",
        user_id=current_user.user_id,
        resource_type="feature_flag",
        resource_id=key,
        user_type=body.user_type,
        access_state=body.access_state.value,
    )
    return UserTypeAccessResponse.model_validate(row)


@admin_router.put("/flags/{key}/descriptor", response_model=FeatureDescriptorResponse)
async def set_flag_descriptor(
    key: str,
    body: FeatureDescriptorSet,
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> FeatureDescriptorResponse:
    flag = await FeatureFlagRepository(session).require(key)
    descriptor = await FeatureAccessRepository(session).upsert_descriptor(
        flag.id, **body.model_dump()
    )
    return FeatureDescriptorResponse.model_validate(descriptor)


@admin_router.delete("/flags/{key}/descriptor", status_code=status.HTTP_204_NO_CONTENT)
async def delete_flag_descriptor(
    key: str,
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> None:
    flag = await FeatureFlagRepository(session).require(key)
    if not await FeatureAccessRepository(session).delete_descriptor(flag.id):
        raise HTTPException(status_code=404, detail="Descriptor not found")


# ============================================
# Packages
# ============================================


@admin_router.get("/packages", response_model=list[FeaturePackageResponse])
async def list_packages(
    include_inactive: bool = Query(False),
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> list[FeaturePackageResponse]:
    packages = await FeaturePackageCatalog(session).list_packages(include_inactive)
    return [FeaturePackageResponse.model_validate(p) for p in packages]


@admin_router.post(
    "/packages", response_model=FeaturePackageResponse, status_code=status.HTTP_201_CREATED
)
async def create_package(
    body: FeaturePackageCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> FeaturePackageResponse:
    package = await FeaturePackageCatalog(session).create_package(**body.model_dump())
    log_audit_event(
        "feature.package.created",
        user_id=current_user.user_id,
        resource_type="feature_package",
        resource_id=str(package.id),
        slug=package.slug,
    )
    return FeaturePackageResponse.model_validate(package)


@admin_router.patch("/packages/{package_id}", response_model=FeaturePackageResponse)
async def update_package(
    package_id: UUID,
    body: FeaturePackageUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> FeaturePackageResponse:
    changes = body.model_dump(exclude_unset=True)
    package = await FeaturePackageCatalog(session).update_package(package_id, **changes)
    log_audit_event(
        "feature.package.updated",
        user_id=current_user.user_id,
        resource_type="feature_package",
        resource_id=str(package_id),
        changes=changes,
    )
    return FeaturePackageResponse.model_validate(package)


@admin_router.get("/packages/{package_id}/flags", response_model=list[FeatureFlagResponse])
async def list_package_flags(
    package_id: UUID,
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> list[FeatureFlagResponse]:
    catalog = FeaturePackageCatalog(session)
    await catalog.require_package(package_id)
    return [FeatureFlagResponse.model_validate(f) for f in await catalog.list_package_flags(package_id)]


@admin_router.put("/packages/{package_id}/flags/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def add_package_flag(
    package_id: UUID,
    key: str,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> None:
    flag = await FeatureFlagRepository(session).require(key)
    await FeaturePackageCatalog(session).add_flag(package_id, flag.id)
    log_audit_event(
        "feature.package.flag_added",
        user_id=current_user.user_id,
        resource_type="feature_package",
        resource_id=str(package_id),
        feature_key=key,
    )


@admin_router.delete("/packages/{package_id}/flags/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_package_flag(
    package_id: UUID,
    key: str,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> None:
    catalog = FeaturePackageCatalog(session)
    await catalog.require_package(package_id)
    flag = await FeatureFlagRepository(session).require(key)
    if not await catalog.remove_flag(package_id, flag.id):
        raise HTTPException(status_code=404, detail="Feature is not part of this package")
    log_audit_event(
        "feature.package.flag_removed",
        user_id=current_user.user_id,
        resource_type="feature_package",
        resource_id=str(package_id),
        feature_key=key,
    )


# ============================================
# Organization subscriptions
# ============================================


@admin_router.get(
    "/organizations/{organization_id}/packages", response_model=list[SubscriptionResponse]
)
async def list_subscriptions(
    organization_id: UUID,
    active_only: bool = Query(False),
    session: AsyncSession = Depends(get_async_session),
    _: UserInfo = Depends(require_admin),
) -> list[SubscriptionResponse]:
    subscriptions = await FeaturePackageCatalog(session).list_org_subscriptions(
        organization_id, active_only=active_only
    )
    return [SubscriptionResponse.model_validate(s) for s in subscriptions]


@admin_router.post(
    "/organizations/{organization_id}/packages",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def subscribe_organization(
    organization_id: UUID,
    body: SubscriptionCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> SubscriptionResponse:
    subscription = await FeaturePackageCatalog(session).subscribe(
        organization_id, body.package_id, expires_at=body.expires_at
    )
    log_audit_event(
        "feature.package.subscribed",
        user_id=current_user.user_id,
        organization_id=str(organization_id),
        resource_type="feature_package",
        resource_id=str(body.package_id),
    )
    return SubscriptionResponse.model_validate(subscription)


@admin_router.delete(
    "/organizations/{organization_id}/packages/{package_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def unsubscribe_organization(
    organization_id: UUID,
    package_id: UUID,
    session: AsyncSession = Depends(get_async_session),
    current_user: UserInfo = Depends(require_admin),
) -> None:
    if not await FeaturePackageCatalog(session).unsubscribe(organization_id, package_id):
        raise HTTPException(status_code=404, detail="Active subscription not found")
    log_audit_event(
        "feature.package.unsubscribed",
        user_id=current_user.user_id,
        organization_id=str(organization_id),
        resource_type="feature_package",
        resource_id=str(package_id),
    )
