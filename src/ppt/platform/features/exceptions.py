"""
Feature access exceptions.

Each error carries an HTTP status code, a machine-readable error code and
optional context so the API layer can render it without extra mapping.
"""

from datetime import datetime
from typing import Any


class FeatureError(Exception):
    """
    Base feature access error.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "FEATURE_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


class FeatureNotFoundError(FeatureError):
    """Feature flag not found."""

    def __init__(self, feature_key: str) -> None:
        super().__init__(
            f"Feature '{feature_key}' not found",
            "FEATURE_NOT_FOUND",
            status_code=404,
            context={"feature_key": feature_key},
        )


class NotToggleableError(FeatureError):
    """Preference change attempted on a feature that is not optional for the user type."""

    def __init__(self, feature_key: str, user_type: str, access_state: str | None = None) -> None:
        context: dict[str, Any] = {"feature_key": feature_key, "user_type": user_type}
        if access_state:
            context["access_state"] = access_state
        super().__init__(
            "This feature cannot be toggled by the user",
            "NOT_TOGGLEABLE",
            status_code=400,
            context=context,
            recovery_hint="Only features marked optional for your user type can be toggled",
        )


class DuplicateFeatureError(FeatureError):
    """Feature flag key already exists."""

    def __init__(self, feature_key: str) -> None:
        super().__init__(
            f"Feature '{feature_key}' already exists",
            "DUPLICATE_FEATURE",
            status_code=409,
            context={"feature_key": feature_key},
            recovery_hint="Use a unique key or update the existing feature",
        )


class PackageNotFoundError(FeatureError):
    """Feature package not found."""

    def __init__(self, package_id: str | None = None, slug: str | None = None) -> None:
        context = {}
        if package_id:
            context["package_id"] = package_id
        if slug:
            context["slug"] = slug
        super().__init__(
            "Feature package not found",
            "PACKAGE_NOT_FOUND",
            status_code=404,
            context=context,
            recovery_hint="Verify the package ID or slug",
        )


class DuplicatePackageError(FeatureError):
    """Feature package slug already exists."""

    def __init__(self, slug: str) -> None:
        super().__init__(
            f"Feature package '{slug}' already exists",
            "DUPLICATE_PACKAGE",
            status_code=409,
            context={"slug": slug},
        )


class FeatureDisabledError(FeatureError):
    """A guarded route was called while the feature is disabled for the caller."""

    def __init__(
        self,
        feature_key: str,
        message: str | None = None,
        upgrade_path: str | None = None,
    ) -> None:
        context: dict[str, Any] = {"feature_key": feature_key}
        if upgrade_path:
            context["upgrade_path"] = upgrade_path
        super().__init__(
            message or f"The '{feature_key}' feature is not enabled for your account",
            "FEATURE_DISABLED",
            status_code=403,
            context=context,
        )
        self.feature_key = feature_key
        self.upgrade_path = upgrade_path

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["feature_key"] = self.feature_key
        if self.upgrade_path:
            data["upgrade_path"] = self.upgrade_path
        return data


class MissingContextError(FeatureError):
    """Request lacks the organization or user context needed for resolution."""

    def __init__(self, message: str = "Organization context required") -> None:
        super().__init__(message, "MISSING_ORG", status_code=400)


class InvalidIdentifierError(FeatureError):
    """A scope identifier is not a valid UUID."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(
            f"Invalid {field}",
            "INVALID_IDENTIFIER",
            status_code=400,
            context={"field": field, "value": value},
        )


class InvalidTimeWindowError(FeatureError):
    """Statistics window starts after it ends."""

    def __init__(self, start: datetime, end: datetime) -> None:
        super().__init__(
            "start_date must not be after end_date",
            "INVALID_TIME_WINDOW",
            status_code=400,
            context={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


class PackageComparisonError(FeatureError):
    """Package comparison asked for too few or too many packages."""

    def __init__(self, count: int, limit: int) -> None:
        super().__init__(
            f"Provide between 1 and {limit} package IDs",
            "INVALID_IDS",
            status_code=400,
            context={"count": count, "limit": limit},
        )
