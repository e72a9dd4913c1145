"""
Auth core - JWT access tokens and the current-user dependency.

Tokens are signed and verified with Authlib. Claims carry the user's
organization, user type and role so feature resolution can run without an
extra lookup.
"""

import secrets
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, cast
from uuid import UUID

import structlog
from authlib.jose import JoseError, jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from ppt.platform.settings import JWTSettings, get_settings

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class TokenType(str, Enum):
    """Token types."""

    ACCESS = "access"
    REFRESH = "refresh"


class UserInfo(BaseModel):
    """User information from auth.

    User IDs are stored as strings for JWT/HTTP compatibility. Convert with
    ensure_uuid() before handing them to repositories.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str
    email: EmailStr | None = None
    username: str | None = None
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    tenant_id: str | None = None  # organization the user acts for
    user_type: str | None = None
    role_id: str | None = None


def ensure_uuid(value: str | UUID) -> UUID:
    """Convert string to UUID if needed.

    Raises:
        ValueError: If string is not a valid UUID format
    """
    if isinstance(value, str):
        return UUID(value)
    return value


# ============================================
# JWT Service
# ============================================


class JWTService:
    """JWT service using Authlib."""

    def __init__(self, config: JWTSettings | None = None):
        config = config or get_settings().jwt
        self.secret = config.secret_key
        self.algorithm = config.algorithm
        self.issuer = config.issuer
        self.expire_minutes = config.access_token_expire_minutes
        self.header = {"alg": self.algorithm}

    def create_access_token(
        self,
        subject: str,
        additional_claims: dict[str, Any] | None = None,
        expire_minutes: int | None = None,
    ) -> str:
        """Create access token."""
        data: dict[str, Any] = {"sub": subject, "type": TokenType.ACCESS.value}
        if additional_claims:
            data.update(additional_claims)

        now = datetime.now(UTC)
        expire = now + timedelta(minutes=expire_minutes or self.expire_minutes)
        data.update(
            {
                "exp": int(expire.timestamp()),
                "iat": int(now.timestamp()),
                "iss": self.issuer,
                "jti": secrets.token_urlsafe(16),
            }
        )

        token = jwt.encode(self.header, data, self.secret)
        return token.decode("utf-8") if isinstance(token, bytes) else token

    def verify_token(self, token: str, expected_type: TokenType | None = None) -> dict[str, Any]:
        """Verify and decode token.

        Raises:
            HTTPException: If token is invalid, expired, or has wrong type
        """
        try:
            claims_raw = jwt.decode(token, self.secret)
            claims_raw.validate()
            claims = cast(dict[str, Any], dict(claims_raw))

            if expected_type:
                token_type = claims.get("type")
                if token_type != expected_type.value:
                    raise JoseError(
                        f"Invalid token type. Expected {expected_type.value}, got {token_type}"
                    )

            return claims
        except JoseError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid token: {e}",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get the process JWT service, built from settings on first use."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service


# ============================================
# Dependencies
# ============================================


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserInfo:
    """Get current authenticated user from a Bearer token or access_token cookie."""
    token = credentials.credentials if credentials and credentials.credentials else None
    if token is None:
        token = request.cookies.get("access_token")

    if token:
        claims = get_jwt_service().verify_token(token, TokenType.ACCESS)
        return _claims_to_user_info(claims)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _claims_to_user_info(claims: dict) -> UserInfo:
    """Convert JWT claims to UserInfo.

    Identifier claims are kept as strings; UUID validation happens where
    they are used.

    Raises:
        HTTPException: 401 if the claims do not describe a valid user
    """
    try:
        return UserInfo(
            user_id=str(claims.get("sub", "")),
            email=claims.get("email"),
            username=claims.get("username"),
            roles=claims.get("roles", []),
            permissions=claims.get("permissions", []),
            tenant_id=_optional_str(claims.get("tenant_id") or claims.get("org_id")),
            user_type=_optional_str(claims.get("user_type")),
            role_id=_optional_str(claims.get("role_id")),
        )
    except ValidationError as e:
        logger.warning("auth.token.invalid_claims", errors=e.error_count())
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def create_access_token(user_id: str, **kwargs: Any) -> str:
    """Create access token."""
    return get_jwt_service().create_access_token(user_id, kwargs)
