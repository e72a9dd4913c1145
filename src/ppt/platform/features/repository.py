"""
Feature access persistence.

Async SQLAlchemy repositories for flags and overrides, the user-type access
matrix with descriptors and user preferences, and usage analytics.

Upserts go through the dialect's ``INSERT ... ON CONFLICT DO UPDATE`` so
concurrent writers to the same row resolve as last-writer-wins.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ppt.platform.db import utcnow

from .exceptions import DuplicateFeatureError, FeatureNotFoundError
from .models import (
    FeatureAccessState,
    FeatureDescriptor,
    FeatureEventType,
    FeatureFlag,
    FeatureFlagOverride,
    FeatureUsageEvent,
    OverrideScope,
    UserFeaturePreference,
    UserTypeFeatureAccess,
)
from .resolver import OVERRIDE_PRIORITY, OverrideSnapshot

logger = structlog.get_logger(__name__)


def dialect_insert(session: AsyncSession, model: Any) -> Any:
    """Return an insert construct that supports ``on_conflict_do_update``."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")


def _scope_conditions(
    user_id: UUID | None, organization_id: UUID | None, role_id: UUID | None
) -> list[Any]:
    scopes = {
        OverrideScope.USER: user_id,
        OverrideScope.ORGANIZATION: organization_id,
        OverrideScope.ROLE: role_id,
    }
    return [
        and_(
            FeatureFlagOverride.scope_type == scope.value,
            FeatureFlagOverride.scope_id == scope_id,
        )
        for scope, scope_id in scopes.items()
        if scope_id is not None
    ]


def _first_override(overrides: list[OverrideSnapshot]) -> bool | None:
    """Value of the highest-priority override among ones already matched to a context."""
    by_scope = {o.scope_type: o.is_enabled for o in overrides}
    for scope in OVERRIDE_PRIORITY:
        if scope in by_scope:
            return by_scope[scope]
    return None


def _to_snapshot(override: FeatureFlagOverride) -> OverrideSnapshot:
    return OverrideSnapshot(
        scope_type=OverrideScope(override.scope_type),
        scope_id=override.scope_id,
        is_enabled=override.is_enabled,
    )


class FeatureFlagRepository:
    """Flags and their scoped overrides."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_key(self, key: str) -> FeatureFlag | None:
        result = await self.session.execute(select(FeatureFlag).where(FeatureFlag.key == key))
        return result.scalar_one_or_none()

    async def get_by_id(self, flag_id: UUID) -> FeatureFlag | None:
        return await self.session.get(FeatureFlag, flag_id)

    async def require(self, key: str) -> FeatureFlag:
        """Get a flag by key or raise FeatureNotFoundError."""
        flag = await self.get_by_key(key)
        if flag is None:
            raise FeatureNotFoundError(key)
        return flag

    async def list_all(self) -> list[FeatureFlag]:
        result = await self.session.execute(select(FeatureFlag).order_by(FeatureFlag.key))
        return list(result.scalars().all())

    async def create(
        self,
        key: str,
        name: str,
        description: str | None = None,
        is_enabled: bool = False,
    ) -> FeatureFlag:
        if await self.get_by_key(key) is not None:
            raise DuplicateFeatureError(key)

        flag = FeatureFlag(key=key, name=name, description=description, is_enabled=is_enabled)
        self.session.add(flag)
        await self.session.commit()
        await self.session.refresh(flag)

        logger.info("feature.flag.created", key=key, is_enabled=is_enabled)
        return flag

    async def update(self, key: str, **fields: Any) -> FeatureFlag:
        """Apply the given fields to a flag. None clears a nullable column."""
        flag = await self.require(key)
        for name, value in fields.items():
            setattr(flag, name, value)
        await self.session.commit()
        await self.session.refresh(flag)

        logger.info("feature.flag.updated", key=key, fields=sorted(fields))
        return flag

    async def disable(self, key: str) -> FeatureFlag:
        """Soft-delete: flags are never removed, only globally disabled."""
        return await self.update(key, is_enabled=False)

    async def set_override(
        self, flag_id: UUID, scope_type: OverrideScope, scope_id: UUID, is_enabled: bool
    ) -> FeatureFlagOverride:
        stmt = dialect_insert(self.session, FeatureFlagOverride).values(
            flag_id=flag_id,
            scope_type=scope_type.value,
            scope_id=scope_id,
            is_enabled=is_enabled,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["flag_id", "scope_type", "scope_id"],
            set_={"is_enabled": stmt.excluded.is_enabled, "updated_at": utcnow()},
        )
        await self.session.execute(stmt)
        await self.session.commit()

        result = await self.session.execute(
            select(FeatureFlagOverride)
            .where(
                FeatureFlagOverride.flag_id == flag_id,
                FeatureFlagOverride.scope_type == scope_type.value,
                FeatureFlagOverride.scope_id == scope_id,
            )
            .execution_options(populate_existing=True)
        )
        override = result.scalar_one()

        logger.info(
            "feature.override.set",
            flag_id=str(flag_id),
            scope_type=scope_type.value,
            scope_id=str(scope_id),
            is_enabled=is_enabled,
        )
        return override

    async def delete_override(
        self, flag_id: UUID, scope_type: OverrideScope, scope_id: UUID
    ) -> bool:
        result = await self.session.execute(
            select(FeatureFlagOverride).where(
                FeatureFlagOverride.flag_id == flag_id,
                FeatureFlagOverride.scope_type == scope_type.value,
                FeatureFlagOverride.scope_id == scope_id,
            )
        )
        override = result.scalar_one_or_none()
        if override is None:
            return False

        await self.session.delete(override)
        await self.session.commit()
        logger.info(
            "feature.override.deleted",
            flag_id=str(flag_id),
            scope_type=scope_type.value,
            scope_id=str(scope_id),
        )
        return True

    async def list_overrides(self, flag_id: UUID) -> list[FeatureFlagOverride]:
        result = await self.session.execute(
            select(FeatureFlagOverride)
            .where(FeatureFlagOverride.flag_id == flag_id)
            .order_by(FeatureFlagOverride.scope_type, FeatureFlagOverride.created_at)
        )
        return list(result.scalars().all())

    async def overrides_for_context(
        self,
        user_id: UUID | None,
        organization_id: UUID | None,
        role_id: UUID | None = None,
        flag_id: UUID | None = None,
    ) -> dict[UUID, list[OverrideSnapshot]]:
        """Load every override matching the caller's scopes in one query."""
        conditions = _scope_conditions(user_id, organization_id, role_id)
        if not conditions:
            return {}

        stmt = select(FeatureFlagOverride).where(or_(*conditions))
        if flag_id is not None:
            stmt = stmt.where(FeatureFlagOverride.flag_id == flag_id)
        result = await self.session.execute(stmt)

        grouped: dict[UUID, list[OverrideSnapshot]] = defaultdict(list)
        for override in result.scalars():
            grouped[override.flag_id].append(_to_snapshot(override))
        return dict(grouped)

    async def is_enabled_for_context(
        self,
        key: str,
        user_id: UUID | None,
        organization_id: UUID | None,
        role_id: UUID | None = None,
    ) -> bool | None:
        """Override value in user > organization > role order, else the global default.

        Returns None for an unknown key.
        """
        flag = await self.get_by_key(key)
        if flag is None:
            return None

        overrides = await self.overrides_for_context(
            user_id, organization_id, role_id, flag_id=flag.id
        )
        override = _first_override(overrides.get(flag.id, []))
        return flag.is_enabled if override is None else override

    async def resolve_all_for_context(
        self,
        user_id: UUID | None,
        organization_id: UUID | None,
        role_id: UUID | None = None,
    ) -> dict[str, bool]:
        """Every flag resolved from overrides and global defaults only, by key."""
        overrides = await self.overrides_for_context(user_id, organization_id, role_id)
        resolved: dict[str, bool] = {}
        for flag in await self.list_all():
            override = _first_override(overrides.get(flag.id, []))
            resolved[flag.key] = flag.is_enabled if override is None else override
        return resolved

    async def override_counts(self) -> dict[UUID, int]:
        result = await self.session.execute(
            select(FeatureFlagOverride.flag_id, func.count()).group_by(FeatureFlagOverride.flag_id)
        )
        return {flag_id: count for flag_id, count in result.all()}


class FeatureAccessRepository:
    """User-type access matrix, UI descriptors and user preferences."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Access matrix

    async def get_user_type_access(
        self, flag_id: UUID, user_type: str
    ) -> UserTypeFeatureAccess | None:
        result = await self.session.execute(
            select(UserTypeFeatureAccess).where(
                UserTypeFeatureAccess.flag_id == flag_id,
                UserTypeFeatureAccess.user_type == user_type,
            )
        )
        return result.scalar_one_or_none()

    async def list_access_for_user_type(self, user_type: str) -> dict[UUID, UserTypeFeatureAccess]:
        result = await self.session.execute(
            select(UserTypeFeatureAccess).where(UserTypeFeatureAccess.user_type == user_type)
        )
        return {row.flag_id: row for row in result.scalars()}

    async def list_feature_access(self, flag_id: UUID) -> list[UserTypeFeatureAccess]:
        result = await self.session.execute(
            select(UserTypeFeatureAccess)
            .where(UserTypeFeatureAccess.flag_id == flag_id)
            .order_by(UserTypeFeatureAccess.user_type)
        )
        return list(result.scalars().all())

    async def set_user_type_access(
        self,
        flag_id: UUID,
        user_type: str,
        access_state: FeatureAccessState,
        default_enabled: bool = True,
    ) -> UserTypeFeatureAccess:
        stmt = dialect_insert(self.session, UserTypeFeatureAccess).values(
            flag_id=flag_id,
            user_type=user_type,
            access_state=access_state.value,
            default_enabled=default_enabled,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["flag_id", "user_type"],
            set_={
                "access_state": stmt.excluded.access_state,
                "default_enabled": stmt.excluded.default_enabled,
                "updated_at": utcnow(),
            },
        )
        await self.session.execute(stmt)
        await self.session.commit()

        result = await self.session.execute(
            select(UserTypeFeatureAccess)
            .where(
                UserTypeFeatureAccess.flag_id == flag_id,
                UserTypeFeatureAccess.user_type == user_type,
            )
            .execution_options(populate_existing=True)
        )
        logger.info(
            "feature.access.set",
            flag_id=str(flag_id),
            user_type=user_type,
            access_state=access_state.value,
            default_enabled=default_enabled,
        )
        return result.scalar_one()

    # Descriptors

    async def get_descriptor(self, flag_id: UUID) -> FeatureDescriptor | None:
        result = await self.session.execute(
            select(FeatureDescriptor).where(FeatureDescriptor.flag_id == flag_id)
        )
        return result.scalar_one_or_none()

    async def list_descriptors(self, category: str | None = None) -> dict[UUID, FeatureDescriptor]:
        stmt = select(FeatureDescriptor)
        if category is not None:
            stmt = stmt.where(FeatureDescriptor.category == category)
        result = await self.session.execute(stmt)
        return {row.flag_id: row for row in result.scalars()}

    async def upsert_descriptor(self, flag_id: UUID, **fields: Any) -> FeatureDescriptor:
        descriptor = await self.get_descriptor(flag_id)
        if descriptor is None:
            descriptor = FeatureDescriptor(flag_id=flag_id, **fields)
            self.session.add(descriptor)
        else:
            for name, value in fields.items():
                setattr(descriptor, name, value)
        await self.session.commit()
        await self.session.refresh(descriptor)
        return descriptor

    async def delete_descriptor(self, flag_id: UUID) -> bool:
        descriptor = await self.get_descriptor(flag_id)
        if descriptor is None:
            return False
        await self.session.delete(descriptor)
        await self.session.commit()
        return True

    # Preferences

    async def get_user_preferences(self, user_id: UUID) -> dict[UUID, bool]:
        result = await self.session.execute(
            select(UserFeaturePreference.flag_id, UserFeaturePreference.is_enabled).where(
                UserFeaturePreference.user_id == user_id
            )
        )
        return {flag_id: is_enabled for flag_id, is_enabled in result.all()}

    async def set_user_preference(self, user_id: UUID, flag_id: UUID, is_enabled: bool) -> None:
        stmt = dialect_insert(self.session, UserFeaturePreference).values(
            user_id=user_id, flag_id=flag_id, is_enabled=is_enabled
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "flag_id"],
            set_={"is_enabled": stmt.excluded.is_enabled, "updated_at": utcnow()},
        )
        await self.session.execute(stmt)
        await self.session.commit()


class FeatureAnalyticsRepository:
    """Feature usage events and aggregate statistics."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_event(
        self,
        flag_id: UUID,
        event_type: FeatureEventType,
        user_id: UUID | None = None,
        organization_id: UUID | None = None,
        user_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> FeatureUsageEvent:
        event = FeatureUsageEvent(
            flag_id=flag_id,
            event_type=event_type.value,
            user_id=user_id,
            organization_id=organization_id,
            user_type=user_type,
            event_metadata=metadata or {},
        )
        self.session.add(event)
        await self.session.commit()
        return event

    @staticmethod
    def _count(event_type: FeatureEventType) -> Any:
        return func.count(case((FeatureUsageEvent.event_type == event_type.value, 1)))

    async def get_feature_stats(
        self, flag_id: UUID, start: datetime, end: datetime
    ) -> dict[str, int]:
        """Count events by type and distinct users for a flag in [start, end]."""
        stmt = select(
            self._count(FeatureEventType.ACCESS).label("access_count"),
            self._count(FeatureEventType.BLOCKED).label("blocked_count"),
            self._count(FeatureEventType.UPGRADE_PROMPT).label("upgrade_prompt_count"),
            self._count(FeatureEventType.UPGRADE_CLICKED).label("upgrade_clicked_count"),
            self._count(FeatureEventType.TOGGLED_ON).label("toggled_on_count"),
            self._count(FeatureEventType.TOGGLED_OFF).label("toggled_off_count"),
            func.count(func.distinct(FeatureUsageEvent.user_id)).label("unique_users"),
        ).where(
            FeatureUsageEvent.flag_id == flag_id,
            FeatureUsageEvent.created_at >= start,
            FeatureUsageEvent.created_at <= end,
        )
        row = (await self.session.execute(stmt)).one()
        return {name: int(value or 0) for name, value in row._mapping.items()}

    async def get_stats_by_user_type(
        self, flag_id: UUID, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        stmt = (
            select(
                FeatureUsageEvent.user_type,
                self._count(FeatureEventType.ACCESS).label("access_count"),
                self._count(FeatureEventType.BLOCKED).label("blocked_count"),
                func.count(func.distinct(FeatureUsageEvent.user_id)).label("unique_users"),
            )
            .where(
                FeatureUsageEvent.flag_id == flag_id,
                FeatureUsageEvent.created_at >= start,
                FeatureUsageEvent.created_at <= end,
            )
            .group_by(FeatureUsageEvent.user_type)
            .order_by(FeatureUsageEvent.user_type)
        )
        result = await self.session.execute(stmt)
        return [dict(row._mapping) for row in result.all()]
