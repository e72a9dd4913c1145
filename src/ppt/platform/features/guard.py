"""
Route guards for feature-gated endpoints.

Usage::

    @router.post("/ai/suggest", dependencies=[Depends(require_feature("ai_suggestions"))])
    async def suggest(...): ...

    @router.get("/dashboard")
    async def dashboard(features: FeatureContext = Depends(get_feature_context)):
        if features.is_enabled("advanced_reports"):
            ...
"""

from collections.abc import Awaitable, Callable

import structlog
from fastapi import Depends

from .dependencies import get_feature_service, get_resolution_context
from .exceptions import FeatureDisabledError
from .models import FeatureEventType
from .resolver import ResolutionContext, ResolvedFeature
from .service import FeatureService

logger = structlog.get_logger(__name__)


class FeatureContext:
    """Resolved features of the current user, for handlers that branch on several flags."""

    def __init__(self, context: ResolutionContext, features: list[ResolvedFeature]):
        self.context = context
        self._features = {feature.key: feature for feature in features}

    def is_enabled(self, key: str) -> bool:
        feature = self._features.get(key)
        return feature is not None and feature.is_enabled

    def all_enabled(self, *keys: str) -> bool:
        return all(self.is_enabled(key) for key in keys)

    def any_enabled(self, *keys: str) -> bool:
        return any(self.is_enabled(key) for key in keys)

    def enabled_features(self) -> list[str]:
        return [key for key, feature in self._features.items() if feature.is_enabled]

    def disabled_features(self) -> list[str]:
        return [key for key, feature in self._features.items() if not feature.is_enabled]


async def get_feature_context(
    context: ResolutionContext = Depends(get_resolution_context),
    service: FeatureService = Depends(get_feature_service),
) -> FeatureContext:
    features = await service.resolve_features_for_user(context)
    return FeatureContext(context, features)


def require_feature(
    feature_key: str, upgrade_path: str | None = None
) -> Callable[..., Awaitable[ResolutionContext]]:
    """Dependency factory that rejects the request when a feature is disabled.

    Raises FeatureDisabledError (403). Denials are recorded as ``blocked``
    usage events when ``log_denials`` is configured.
    """

    async def check_feature(
        context: ResolutionContext = Depends(get_resolution_context),
        service: FeatureService = Depends(get_feature_service),
    ) -> ResolutionContext:
        if await service.check_feature(feature_key, context):
            return context

        if service.config.log_denials:
            logger.info(
                "feature.access.denied",
                feature_key=feature_key,
                user_id=str(context.user_id),
                organization_id=str(context.organization_id),
                user_type=context.user_type,
            )
            await service.log_feature_event(
                feature_key,
                FeatureEventType.BLOCKED,
                user_id=context.user_id,
                organization_id=context.organization_id,
                user_type=context.user_type,
            )
        raise FeatureDisabledError(feature_key, upgrade_path=upgrade_path)

    return check_feature
