"""
Pydantic request and response models for the feature access API.
"""

from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import FeatureAccessState, FeatureEventType, OverrideScope, ResolutionSource

# ============================================
# Flags and overrides
# ============================================


class PartialUpdate(BaseModel):
    """Partial update where only nullable columns may be cleared with null."""

    required_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_null_required(self) -> "PartialUpdate":
        for name in self.required_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class FeatureFlagCreate(BaseModel):
    """Create a feature flag."""

    model_config = ConfigDict(str_strip_whitespace=True)

    key: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_.\-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    is_enabled: bool = False


class FeatureFlagUpdate(PartialUpdate):
    """Partial update of a feature flag."""

    required_fields = ("name", "is_enabled")

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    is_enabled: bool | None = None


class FeatureFlagResponse(BaseModel):
    """Feature flag as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    key: str
    name: str
    description: str | None = None
    is_enabled: bool
    created_at: datetime
    updated_at: datetime


class FeatureOverrideSet(BaseModel):
    """Set an override for a flag within a scope."""

    scope_type: OverrideScope
    scope_id: UUID
    is_enabled: bool


class FeatureOverrideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    flag_id: UUID
    scope_type: OverrideScope
    scope_id: UUID
    is_enabled: bool


# ============================================
# Access matrix and descriptors
# ============================================


class UserTypeAccessSet(BaseModel):
    """Set the access state of a flag for a user type."""

    user_type: str = Field(..., min_length=1, max_length=50)
    access_state: FeatureAccessState
    default_enabled: bool = True


class UserTypeAccessResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    flag_id: UUID
    user_type: str
    access_state: FeatureAccessState
    default_enabled: bool


class FeatureDescriptorSet(BaseModel):
    """UI metadata for a flag."""

    display_name: str = Field(..., min_length=1, max_length=255)
    short_description: str | None = Field(None, max_length=500)
    long_description: str | None = None
    icon: str | None = Field(None, max_length=100)
    badge_text: str | None = Field(None, max_length=50)
    help_url: str | None = Field(None, max_length=500)
    category: str | None = Field(None, max_length=100)
    sort_order: int = 0
    is_premium: bool = False


class FeatureDescriptorResponse(FeatureDescriptorSet):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    flag_id: UUID


class DescriptorSummary(BaseModel):
    """Descriptor fields shown next to a resolved feature."""

    display_name: str
    short_description: str | None = None
    icon: str | None = None
    badge_text: str | None = None


# ============================================
# Resolution
# ============================================


class ResolvedFeatureResponse(BaseModel):
    """A feature as resolved for the current user."""

    key: str
    is_enabled: bool
    access_state: FeatureAccessState
    can_toggle: bool
    source: ResolutionSource
    descriptor: DescriptorSummary | None = None


class ResolvedFeaturesResponse(BaseModel):
    features: list[ResolvedFeatureResponse]


class FeatureCheckResponse(BaseModel):
    key: str
    is_enabled: bool


class PreferenceUpdate(BaseModel):
    """Toggle an optional feature for the current user."""

    is_enabled: bool


class PreferenceUpdateResponse(BaseModel):
    success: bool
    is_enabled: bool


# ============================================
# Packages and subscriptions
# ============================================


class FeaturePackageCreate(BaseModel):
    """Create a purchasable feature package."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9\-]+$")
    description: str | None = None
    is_active: bool = True
    price_monthly_cents: int | None = Field(None, ge=0)
    price_yearly_cents: int | None = Field(None, ge=0)


class FeaturePackageUpdate(PartialUpdate):
    required_fields = ("name", "is_active")

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None
    price_monthly_cents: int | None = Field(None, ge=0)
    price_yearly_cents: int | None = Field(None, ge=0)


class FeaturePackageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    description: str | None = None
    is_active: bool
    price_monthly_cents: int | None = None
    price_yearly_cents: int | None = None


class UpgradeOptionsResponse(BaseModel):
    """Active packages that would unlock a feature, cheapest first."""

    feature_key: str
    packages: list[FeaturePackageResponse]


class PublicPackageResponse(FeaturePackageResponse):
    """Package as listed in the public catalog."""

    feature_count: int = 0


class PackageFeature(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    name: str
    description: str | None = None


class PackageDetailResponse(PublicPackageResponse):
    features: list[PackageFeature]


class FeatureComparisonRow(BaseModel):
    """One feature across the compared packages, keyed by package ID."""

    feature_key: str
    feature_name: str
    feature_description: str | None = None
    packages: dict[str, bool]


class PackageComparisonResponse(BaseModel):
    packages: list[PublicPackageResponse]
    features: list[FeatureComparisonRow]


class SubscriptionCreate(BaseModel):
    package_id: UUID
    expires_at: datetime | None = None


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    package_id: UUID
    is_active: bool
    started_at: datetime
    expires_at: datetime | None = None


# ============================================
# Analytics
# ============================================


class FeatureEventCreate(BaseModel):
    """Usage event reported by a client."""

    feature_key: str = Field(..., min_length=1, max_length=100)
    event_type: FeatureEventType
    metadata: dict[str, Any] = Field(default_factory=dict)


class FeatureEventResponse(BaseModel):
    success: bool


class FeatureStatsResponse(BaseModel):
    """Event counts for one flag over a time window."""

    flag_id: UUID
    start_date: datetime
    end_date: datetime
    access_count: int = 0
    blocked_count: int = 0
    upgrade_prompt_count: int = 0
    upgrade_clicked_count: int = 0
    toggled_on_count: int = 0
    toggled_off_count: int = 0
    unique_users: int = 0


class UserTypeStatsResponse(BaseModel):
    user_type: str | None
    access_count: int = 0
    blocked_count: int = 0
    unique_users: int = 0
