"""
Feature access models.

Flags, scoped overrides, the per-user-type access matrix, UI descriptors,
purchasable packages, organization subscriptions, user preferences and
usage events.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ppt.platform.db import Base, TimestampMixin, utcnow


class FeatureAccessState(str, Enum):
    """Visibility of a feature for a user type."""

    INCLUDED = "included"  # available, state taken from default_enabled
    OPTIONAL = "optional"  # available, user may toggle it
    EXCLUDED = "excluded"  # hidden


class OverrideScope(str, Enum):
    """Scope an override applies to, highest priority first."""

    USER = "user"
    ORGANIZATION = "organization"
    ROLE = "role"


class ResolutionSource(str, Enum):
    """Where a resolved feature state came from."""

    OVERRIDE = "override"
    PACKAGE = "package"
    DEFAULT = "default"
    GLOBAL = "global"


class FeatureEventType(str, Enum):
    """Type of feature usage event."""

    ACCESS = "access"
    BLOCKED = "blocked"
    UPGRADE_PROMPT = "upgrade_prompt"
    UPGRADE_CLICKED = "upgrade_clicked"
    TOGGLED_ON = "toggled_on"
    TOGGLED_OFF = "toggled_off"


class FeatureFlag(Base, TimestampMixin):
    """Named boolean feature toggle with a global default."""

    __tablename__ = "feature_flags"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class FeatureFlagOverride(Base, TimestampMixin):
    """Forced value for a flag within a user, organization or role scope."""

    __tablename__ = "feature_flag_overrides"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    flag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False
    )
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)

    __table_args__ = (
        UniqueConstraint("flag_id", "scope_type", "scope_id", name="uq_feature_flag_override_scope"),
        Index("ix_feature_flag_overrides_scope", "scope_type", "scope_id"),
    )


class UserTypeFeatureAccess(Base, TimestampMixin):
    """Access matrix entry for a flag and a user type."""

    __tablename__ = "user_type_feature_access"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    flag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False
    )
    user_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    access_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeatureAccessState.INCLUDED.value
    )
    default_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("flag_id", "user_type", name="uq_user_type_feature_access"),
    )


class FeatureDescriptor(Base, TimestampMixin):
    """UI display metadata for a feature flag."""

    __tablename__ = "feature_descriptors"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    flag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    short_description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    long_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    badge_text: Mapped[str | None] = mapped_column(String(50), nullable=True)
    help_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class FeaturePackage(Base, TimestampMixin):
    """Purchasable bundle of feature flags."""

    __tablename__ = "feature_packages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    price_monthly_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_yearly_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)


class FeaturePackageItem(Base):
    """Membership of a flag in a package."""

    __tablename__ = "feature_package_items"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    package_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_packages.id", ondelete="CASCADE"), nullable=False
    )
    flag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("package_id", "flag_id", name="uq_feature_package_item"),
    )


class OrganizationFeaturePackage(Base):
    """Organization subscription to a feature package."""

    __tablename__ = "organization_feature_packages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    package_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_packages.id", ondelete="CASCADE"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "package_id", name="uq_organization_feature_package"),
    )


class UserFeaturePreference(Base, TimestampMixin):
    """User opt-in/opt-out for an optional feature."""

    __tablename__ = "user_feature_preferences"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    flag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "flag_id", name="uq_user_feature_preference"),
    )


class FeatureUsageEvent(Base):
    """Feature usage analytics event."""

    __tablename__ = "feature_usage_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    flag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    organization_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    user_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_feature_usage_events_flag_created", "flag_id", "created_at"),
    )
