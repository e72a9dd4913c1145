"""
Feature access service.

Loads a per-request snapshot from the repositories, runs the resolver and
handles preference writes and usage events.
"""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ppt.platform.db import as_utc, utcnow
from ppt.platform.settings import FeatureAccessSettings, get_feature_settings

from .exceptions import FeatureNotFoundError, InvalidTimeWindowError, NotToggleableError
from .models import (
    FeatureAccessState,
    FeatureDescriptor,
    FeatureEventType,
    FeatureFlag,
    FeaturePackage,
    UserTypeFeatureAccess,
)
from .packages import FeaturePackageCatalog
from .repository import (
    FeatureAccessRepository,
    FeatureAnalyticsRepository,
    FeatureFlagRepository,
)
from .resolver import (
    AccessRule,
    DescriptorSnapshot,
    FeatureResolver,
    FlagInputs,
    FlagSnapshot,
    OverrideSnapshot,
    Resolution,
    ResolutionContext,
    ResolvedFeature,
)

logger = structlog.get_logger(__name__)


def _flag_inputs(
    flag: FeatureFlag,
    access: UserTypeFeatureAccess | None,
    overrides: list[OverrideSnapshot] | None,
    descriptor: FeatureDescriptor | None,
) -> FlagInputs:
    return FlagInputs(
        flag=FlagSnapshot(id=flag.id, key=flag.key, is_enabled=flag.is_enabled),
        access=(
            AccessRule(FeatureAccessState(access.access_state), access.default_enabled)
            if access is not None
            else None
        ),
        overrides=tuple(overrides or ()),
        descriptor=(
            DescriptorSnapshot(
                display_name=descriptor.display_name,
                short_description=descriptor.short_description,
                icon=descriptor.icon,
                badge_text=descriptor.badge_text,
                category=descriptor.category,
            )
            if descriptor is not None
            else None
        ),
    )


class FeatureService:
    """Resolves features for users and manages preferences and usage events."""

    def __init__(
        self,
        session: AsyncSession,
        config: FeatureAccessSettings | None = None,
        resolver: FeatureResolver | None = None,
    ):
        self.session = session
        self.config = config or get_feature_settings()
        self.resolver = resolver or FeatureResolver()
        self.flags = FeatureFlagRepository(session)
        self.access = FeatureAccessRepository(session)
        self.analytics = FeatureAnalyticsRepository(session)
        self.packages = FeaturePackageCatalog(session)

    async def build_context(
        self,
        user_id: UUID,
        organization_id: UUID,
        user_type: str | None = None,
        role_id: UUID | None = None,
        now: datetime | None = None,
    ) -> ResolutionContext:
        """Load the per-user part of the snapshot."""
        return ResolutionContext(
            user_id=user_id,
            organization_id=organization_id,
            user_type=user_type or self.config.default_user_type,
            role_id=role_id,
            package_flag_ids=frozenset(
                await self.packages.active_package_flag_ids(organization_id, now)
            ),
            preferences=await self.access.get_user_preferences(user_id),
        )

    async def resolve_features_for_user(
        self,
        context: ResolutionContext,
        category: str | None = None,
        enabled_only: bool = False,
    ) -> list[ResolvedFeature]:
        flags = await self.flags.list_all()
        access = await self.access.list_access_for_user_type(context.user_type)
        descriptors = await self.access.list_descriptors()
        overrides = await self.flags.overrides_for_context(
            context.user_id, context.organization_id, context.role_id
        )

        inputs = [
            _flag_inputs(flag, access.get(flag.id), overrides.get(flag.id), descriptors.get(flag.id))
            for flag in flags
        ]
        resolved = self.resolver.resolve_all(inputs, context, category, enabled_only)

        logger.debug(
            "feature.resolve_all",
            user_id=str(context.user_id),
            organization_id=str(context.organization_id),
            user_type=context.user_type,
            count=len(resolved),
        )
        return resolved

    async def resolve_feature(self, key: str, context: ResolutionContext) -> Resolution | None:
        """Resolve a single flag. Unknown and hidden flags give None."""
        flag = await self.flags.get_by_key(key)
        if flag is None:
            return None

        access = await self.access.get_user_type_access(flag.id, context.user_type)
        overrides = await self.flags.overrides_for_context(
            context.user_id, context.organization_id, context.role_id, flag_id=flag.id
        )
        return self.resolver.resolve(
            _flag_inputs(flag, access, overrides.get(flag.id), None), context
        )

    async def check_feature(self, key: str, context: ResolutionContext) -> bool:
        """Whether a feature is enabled. Unknown keys are disabled, never an error."""
        resolution = await self.resolve_feature(key, context)
        return resolution is not None and resolution.is_enabled

    async def set_preference(
        self,
        user_id: UUID,
        user_type: str | None,
        key: str,
        is_enabled: bool,
        organization_id: UUID | None = None,
    ) -> bool:
        """Store a user's choice for an optional feature.

        Raises:
            FeatureNotFoundError: Unknown feature key
            NotToggleableError: Feature is not optional for the user type
        """
        user_type = user_type or self.config.default_user_type
        flag = await self.flags.get_by_key(key)
        if flag is None:
            raise FeatureNotFoundError(key)

        access = await self.access.get_user_type_access(flag.id, user_type)
        if access is None or access.access_state != FeatureAccessState.OPTIONAL.value:
            raise NotToggleableError(
                key, user_type, access.access_state if access is not None else None
            )

        await self.access.set_user_preference(user_id, flag.id, is_enabled)
        logger.info(
            "feature.preference.updated",
            user_id=str(user_id),
            feature_key=key,
            is_enabled=is_enabled,
        )

        if self.config.log_toggle_events:
            event_type = FeatureEventType.TOGGLED_ON if is_enabled else FeatureEventType.TOGGLED_OFF
            try:
                await self.analytics.log_event(
                    flag.id,
                    event_type,
                    user_id=user_id,
                    organization_id=organization_id,
                    user_type=user_type,
                )
            except Exception as e:
                # preference is already committed
                await self.session.rollback()
                logger.warning(
                    "feature.event.log_failed",
                    feature_key=key,
                    event_type=event_type.value,
                    error=str(e),
                )
        return is_enabled

    async def log_feature_event(
        self,
        key: str,
        event_type: FeatureEventType,
        user_id: UUID | None = None,
        organization_id: UUID | None = None,
        user_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Record a usage event. Unknown keys are ignored and return False."""
        flag = await self.flags.get_by_key(key)
        if flag is None:
            logger.debug("feature.event.unknown_feature", feature_key=key)
            return False

        await self.analytics.log_event(
            flag.id,
            event_type,
            user_id=user_id,
            organization_id=organization_id,
            user_type=user_type,
            metadata=metadata,
        )
        return True

    async def get_upgrade_options(self, key: str) -> list[FeaturePackage]:
        """Packages that unlock a feature. Unknown keys give an empty list."""
        flag = await self.flags.get_by_key(key)
        if flag is None:
            return []
        return await self.packages.packages_with_flag(flag.id)

    def stats_window(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> tuple[datetime, datetime]:
        """Default to the configured number of days ending now.

        Raises:
            InvalidTimeWindowError: start is after end
        """
        end = as_utc(end) if end else utcnow()
        start = as_utc(start) if start else end - timedelta(days=self.config.stats_window_days)
        if start > end:
            raise InvalidTimeWindowError(start, end)
        return start, end

    async def get_feature_stats(
        self,
        flag_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        start, end = self.stats_window(start, end)
        stats = await self.analytics.get_feature_stats(flag_id, start, end)
        return {"flag_id": flag_id, "start_date": start, "end_date": end, **stats}

    async def get_stats_by_user_type(
        self,
        flag_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        start, end = self.stats_window(start, end)
        return await self.analytics.get_stats_by_user_type(flag_id, start, end)
