"""
Feature resolution.

Pure, stateless evaluation of a feature's effective state for one user.
The resolver never touches the database: callers load a per-request
snapshot (flags, access rules, overrides, package membership and
preferences) and hand it in.

Precedence, first match wins:

1. no access row, or access state ``excluded``: hidden
2. override for the user, then the organization, then the role
3. flag included in an active package of the organization
4. ``optional``: the user's preference, else the access default
5. ``included``: the access default
6. the flag's global default
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from uuid import UUID

from .models import FeatureAccessState, OverrideScope, ResolutionSource

# Override scopes in priority order
OVERRIDE_PRIORITY: tuple[OverrideScope, ...] = (
    OverrideScope.USER,
    OverrideScope.ORGANIZATION,
    OverrideScope.ROLE,
)


@dataclass(frozen=True)
class FlagSnapshot:
    id: UUID
    key: str
    is_enabled: bool


@dataclass(frozen=True)
class AccessRule:
    access_state: FeatureAccessState
    default_enabled: bool = True


@dataclass(frozen=True)
class OverrideSnapshot:
    scope_type: OverrideScope
    scope_id: UUID
    is_enabled: bool


@dataclass(frozen=True)
class DescriptorSnapshot:
    display_name: str
    short_description: str | None = None
    icon: str | None = None
    badge_text: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class FlagInputs:
    """Everything known about one flag for the current request."""

    flag: FlagSnapshot
    access: AccessRule | None = None
    overrides: tuple[OverrideSnapshot, ...] = ()
    descriptor: DescriptorSnapshot | None = None


@dataclass(frozen=True)
class ResolutionContext:
    """Who is asking, plus the per-user data shared by every flag."""

    user_id: UUID
    organization_id: UUID
    user_type: str
    role_id: UUID | None = None
    package_flag_ids: frozenset[UUID] = field(default_factory=frozenset)
    preferences: Mapping[UUID, bool] = field(default_factory=dict)

    def scope_id(self, scope: OverrideScope) -> UUID | None:
        if scope is OverrideScope.USER:
            return self.user_id
        if scope is OverrideScope.ORGANIZATION:
            return self.organization_id
        return self.role_id


@dataclass(frozen=True)
class Resolution:
    is_enabled: bool
    source: ResolutionSource


@dataclass(frozen=True)
class ResolvedFeature:
    key: str
    is_enabled: bool
    access_state: FeatureAccessState
    can_toggle: bool
    source: ResolutionSource
    descriptor: DescriptorSnapshot | None = None


class FeatureResolver:
    """Applies the precedence ladder to flag snapshots."""

    def find_override(
        self, overrides: Iterable[OverrideSnapshot], context: ResolutionContext
    ) -> bool | None:
        """Return the highest-priority override value matching the context."""
        by_scope = {(o.scope_type, o.scope_id): o.is_enabled for o in overrides}
        for scope in OVERRIDE_PRIORITY:
            scope_id = context.scope_id(scope)
            if scope_id is None:
                continue
            value = by_scope.get((scope, scope_id))
            if value is not None:
                return value
        return None

    def resolve(self, inputs: FlagInputs, context: ResolutionContext) -> Resolution | None:
        """Resolve one flag, or None when it is hidden for the user type."""
        access = inputs.access
        if access is None or access.access_state == FeatureAccessState.EXCLUDED:
            return None

        override = self.find_override(inputs.overrides, context)
        if override is not None:
            return Resolution(override, ResolutionSource.OVERRIDE)

        if inputs.flag.id in context.package_flag_ids:
            return Resolution(True, ResolutionSource.PACKAGE)

        if access.access_state == FeatureAccessState.OPTIONAL:
            preference = context.preferences.get(inputs.flag.id)
            if preference is not None:
                return Resolution(preference, ResolutionSource.DEFAULT)
            return Resolution(access.default_enabled, ResolutionSource.DEFAULT)

        if access.access_state == FeatureAccessState.INCLUDED:
            return Resolution(access.default_enabled, ResolutionSource.DEFAULT)

        return Resolution(inputs.flag.is_enabled, ResolutionSource.GLOBAL)

    def resolve_all(
        self,
        flags: Iterable[FlagInputs],
        context: ResolutionContext,
        category: str | None = None,
        enabled_only: bool = False,
    ) -> list[ResolvedFeature]:
        """Resolve every visible flag, ordered by key."""
        resolved: list[ResolvedFeature] = []
        for inputs in flags:
            if category is not None and (
                inputs.descriptor is None or inputs.descriptor.category != category
            ):
                continue

            resolution = self.resolve(inputs, context)
            if resolution is None:
                continue
            if enabled_only and not resolution.is_enabled:
                continue

            # resolve() returned a value, so access is set
            access_state = inputs.access.access_state  # type: ignore[union-attr]
            resolved.append(
                ResolvedFeature(
                    key=inputs.flag.key,
                    is_enabled=resolution.is_enabled,
                    access_state=access_state,
                    can_toggle=access_state == FeatureAccessState.OPTIONAL,
                    source=resolution.source,
                    descriptor=inputs.descriptor,
                )
            )

        resolved.sort(key=lambda feature: feature.key)
        return resolved
