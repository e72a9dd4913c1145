"""
Authentication for the platform API.

JWT access tokens (Authlib) and FastAPI dependencies for the current user
and admin-only routes.
"""

from ppt.platform.auth.core import (
    JWTService,
    TokenType,
    UserInfo,
    create_access_token,
    ensure_uuid,
    get_current_user,
    get_jwt_service,
)
from ppt.platform.auth.dependencies import require_admin

__all__ = [
    "JWTService",
    "TokenType",
    "UserInfo",
    "create_access_token",
    "ensure_uuid",
    "get_current_user",
    "get_jwt_service",
    "require_admin",
]
