"""
Authentication dependencies for FastAPI routes.

These can be used to protect endpoints that require authentication.
"""

from fastapi import Depends, HTTPException, status

from ppt.platform.auth.core import UserInfo, get_current_user
from ppt.platform.settings import FeatureAccessSettings, get_feature_settings


def require_admin(
    user: UserInfo = Depends(get_current_user),
    config: FeatureAccessSettings = Depends(get_feature_settings),
) -> UserInfo:
    """Require one of the configured admin roles."""
    if not any(role in config.admin_roles for role in user.roles):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


__all__ = [
    "require_admin",
    "get_current_user",
    "UserInfo",
]
