"""
FastAPI router for feature resolution, preferences and usage analytics.
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query

from ppt.platform.auth.core import UserInfo, get_current_user
from ppt.platform.auth.dependencies import require_admin

from .dependencies import get_feature_service, get_resolution_context, parse_uuid
from .resolver import ResolutionContext, ResolvedFeature
from .schemas import (
    DescriptorSummary,
    FeatureCheckResponse,
    FeatureEventCreate,
    FeatureEventResponse,
    FeaturePackageResponse,
    FeatureStatsResponse,
    PreferenceUpdate,
    PreferenceUpdateResponse,
    ResolvedFeatureResponse,
    ResolvedFeaturesResponse,
    UpgradeOptionsResponse,
    UserTypeStatsResponse,
)
from .service import FeatureService

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Features"])


def _to_response(feature: ResolvedFeature) -> ResolvedFeatureResponse:
    descriptor = feature.descriptor
    return ResolvedFeatureResponse(
        key=feature.key,
        is_enabled=feature.is_enabled,
        access_state=feature.access_state,
        can_toggle=feature.can_toggle,
        source=feature.source,
        descriptor=(
            DescriptorSummary(
                display_name=descriptor.display_name,
                short_description=descriptor.short_description,
                icon=descriptor.icon,
                badge_text=descriptor.badge_text,
            )
            if descriptor is not None
            else None
        ),
    )


@router.get("/resolved", response_model=ResolvedFeaturesResponse)
async def get_resolved_features(
    category: str | None = Query(None, description="Only features in this UI category"),
    enabled_only: bool = Query(False, description="Only enabled features"),
    context: ResolutionContext = Depends(get_resolution_context),
    service: FeatureService = Depends(get_feature_service),
) -> ResolvedFeaturesResponse:
    """Resolve every feature visible to the current user."""
    features = await service.resolve_features_for_user(context, category, enabled_only)
    return ResolvedFeaturesResponse(features=[_to_response(f) for f in features])


@router.get("/{key}/check", response_model=FeatureCheckResponse)
async def check_feature(
    key: str,
    context: ResolutionContext = Depends(get_resolution_context),
    service: FeatureService = Depends(get_feature_service),
) -> FeatureCheckResponse:
    """Check a single feature. Unknown features report as disabled."""
    return FeatureCheckResponse(key=key, is_enabled=await service.check_feature(key, context))


@router.post("/{key}/preference", response_model=PreferenceUpdateResponse)
async def set_feature_preference(
    key: str,
    body: PreferenceUpdate,
    current_user: UserInfo = Depends(get_current_user),
    service: FeatureService = Depends(get_feature_service),
) -> PreferenceUpdateResponse:
    """Opt in to or out of an optional feature."""
    user_id = parse_uuid("user_id", current_user.user_id)
    organization_id = (
        parse_uuid("organization_id", current_user.tenant_id) if current_user.tenant_id else None
    )
    is_enabled = await service.set_preference(
        user_id,
        current_user.user_type,
        key,
        body.is_enabled,
        organization_id=organization_id,
    )
    return PreferenceUpdateResponse(success=True, is_enabled=is_enabled)


@router.get("/{key}/upgrade-options", response_model=UpgradeOptionsResponse)
async def get_upgrade_options(
    key: str,
    _: UserInfo = Depends(get_current_user),
    service: FeatureService = Depends(get_feature_service),
) -> UpgradeOptionsResponse:
    """Packages that would unlock the feature, cheapest first."""
    packages = await service.get_upgrade_options(key)
    return UpgradeOptionsResponse(
        feature_key=key,
        packages=[FeaturePackageResponse.model_validate(p) for p in packages],
    )


@router.post("/analytics/event", response_model=FeatureEventResponse)
async def log_feature_event(
    body: FeatureEventCreate,
    context: ResolutionContext = Depends(get_resolution_context),
    service: FeatureService = Depends(get_feature_service),
) -> FeatureEventResponse:
    """Record a client-side usage event. Unknown features are ignored."""
    await service.log_feature_event(
        body.feature_key,
        body.event_type,
        user_id=context.user_id,
        organization_id=context.organization_id,
        user_type=context.user_type,
        metadata=body.metadata,
    )
    return FeatureEventResponse(success=True)


@router.get("/analytics/{flag_id}/stats", response_model=FeatureStatsResponse)
async def get_feature_stats(
    flag_id: UUID,
    start_date: datetime | None = Query(None, description="Window start, defaults to the configured window"),
    end_date: datetime | None = Query(None, description="Window end, defaults to now"),
    _: UserInfo = Depends(require_admin),
    service: FeatureService = Depends(get_feature_service),
) -> FeatureStatsResponse:
    """Usage counts for a feature over a time window."""
    stats = await service.get_feature_stats(flag_id, start_date, end_date)
    return FeatureStatsResponse(**stats)


@router.get("/analytics/{flag_id}/stats/by-user-type", response_model=list[UserTypeStatsResponse])
async def get_feature_stats_by_user_type(
    flag_id: UUID,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    _: UserInfo = Depends(require_admin),
    service: FeatureService = Depends(get_feature_service),
) -> list[UserTypeStatsResponse]:
    rows = await service.get_stats_by_user_type(flag_id, start_date, end_date)
    return [UserTypeStatsResponse(**row) for row in rows]
