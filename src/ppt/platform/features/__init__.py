"""
Feature access: flags, overrides, packages, access rules and preferences.

Resolution is done by the pure ``FeatureResolver``; ``FeatureService``
loads the per-request snapshot it needs from the database.
"""

from .exceptions import (
    DuplicateFeatureError,
    DuplicatePackageError,
    FeatureDisabledError,
    FeatureError,
    FeatureNotFoundError,
    InvalidIdentifierError,
    InvalidTimeWindowError,
    MissingContextError,
    NotToggleableError,
    PackageComparisonError,
    PackageNotFoundError,
)
from .guard import FeatureContext, get_feature_context, require_feature
from .models import FeatureAccessState, FeatureEventType, OverrideScope, ResolutionSource
from .packages import FeaturePackageCatalog, subscription_is_active
from .resolver import FeatureResolver, Resolution, ResolutionContext, ResolvedFeature
from .service import FeatureService

__all__ = [
    "DuplicateFeatureError",
    "DuplicatePackageError",
    "FeatureAccessState",
    "FeatureContext",
    "FeatureDisabledError",
    "FeatureError",
    "FeatureEventType",
    "FeatureNotFoundError",
    "FeaturePackageCatalog",
    "FeatureResolver",
    "FeatureService",
    "InvalidIdentifierError",
    "InvalidTimeWindowError",
    "MissingContextError",
    "NotToggleableError",
    "OverrideScope",
    "PackageComparisonError",
    "PackageNotFoundError",
    "Resolution",
    "ResolutionContext",
    "ResolutionSource",
    "ResolvedFeature",
    "get_feature_context",
    "require_feature",
    "subscription_is_active",
]
