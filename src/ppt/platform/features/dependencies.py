"""
FastAPI dependencies for feature access.

Turns the authenticated user's claims into a resolution context. Scope
identifiers are validated here so the resolver only ever sees UUIDs.
"""

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ppt.platform.auth.core import UserInfo, ensure_uuid, get_current_user
from ppt.platform.db import get_async_session
from ppt.platform.settings import FeatureAccessSettings, get_feature_settings

from .exceptions import InvalidIdentifierError, MissingContextError
from .resolver import ResolutionContext
from .service import FeatureService


def parse_uuid(field: str, value: str | UUID) -> UUID:
    """Parse a scope identifier, rejecting malformed values."""
    try:
        return ensure_uuid(value)
    except (ValueError, AttributeError, TypeError) as e:
        raise InvalidIdentifierError(field, str(value)) from e


def get_feature_service(
    session: AsyncSession = Depends(get_async_session),
    config: FeatureAccessSettings = Depends(get_feature_settings),
) -> FeatureService:
    return FeatureService(session, config)


async def get_resolution_context(
    user: UserInfo = Depends(get_current_user),
    service: FeatureService = Depends(get_feature_service),
) -> ResolutionContext:
    """Build the resolution context for the current user.

    Raises:
        MissingContextError: Token carries no organization
        InvalidIdentifierError: User, organization or role ID is not a UUID
    """
    if not user.tenant_id:
        raise MissingContextError()

    return await service.build_context(
        user_id=parse_uuid("user_id", user.user_id),
        organization_id=parse_uuid("organization_id", user.tenant_id),
        user_type=user.user_type,
        role_id=parse_uuid("role_id", user.role_id) if user.role_id else None,
    )
