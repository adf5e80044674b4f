"""
Authentication and authorization utilities.

Staff tokens are HS256 JWTs issued by the user service and carry
sub (user id), restaurant_id and roles. Customers are anonymous.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt
from fastapi import Header

from shared.config.settings import (
    JWT_SECRET,
    JWT_ISSUER,
    JWT_AUDIENCE,
    settings,
)
from shared.config.logging import get_logger
from shared.utils.exceptions import (
    AuthenticationError,
    InsufficientRoleError,
    RestaurantAccessError,
)

logger = get_logger(__name__)


# =============================================================================
# JWT Functions (staff authentication)
# =============================================================================


def sign_jwt(payload: dict[str, Any], ttl_seconds: int | None = None) -> str:
    """
    Sign an access token with the given claims.

    Tokens are normally minted by the user service; this is used by
    operational scripts and the test-suite.

    Args:
        payload: Claims to include (sub, restaurant_id, roles).
        ttl_seconds: Token lifetime in seconds. Defaults to access token expiry.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_access_token_expire_minutes * 60

    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a staff JWT.

    Returns:
        Decoded claims, with sub validated as an integer string,
        restaurant_id as an integer and roles as a list.

    Raises:
        AuthenticationError: If the token is invalid, expired or malformed.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        # Generic message to the client, details in the log
        logger.warning("JWT validation failed", error=str(e))
        raise AuthenticationError("Invalid token")

    if "sub" not in payload:
        raise AuthenticationError("Invalid token: missing subject claim")

    try:
        int(payload["sub"])
    except (ValueError, TypeError):
        raise AuthenticationError("Invalid token: malformed subject claim")

    if not isinstance(payload.get("restaurant_id"), int):
        raise AuthenticationError("Invalid token: missing restaurant_id claim")

    if payload.get("type") not in ("access", None):
        raise AuthenticationError("Invalid token: invalid type claim")

    if not isinstance(payload.get("roles", []), list):
        raise AuthenticationError("Invalid token: malformed roles claim")

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract the bearer token from an Authorization header.

    Raises:
        AuthenticationError: If the header is missing or malformed.
    """
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise AuthenticationError(
            "Invalid Authorization header format. Expected: Bearer <token>"
        )
    return authorization.split(" ", 1)[1].strip()


def current_user_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency returning the staff claims from the bearer JWT.

    Usage:
        @router.patch("/{order_id}/accept")
        def accept(order_id: int, ctx: dict = Depends(current_user_context)):
            require_roles(ctx, [Roles.ADMIN, Roles.WAITER])
            waiter_id = int(ctx["sub"])
    """
    token = get_bearer_token(authorization)
    return verify_jwt(token)


def require_roles(ctx: dict[str, Any], allowed: list[str]) -> None:
    """
    Verify that the user has at least one of the allowed roles.

    Raises:
        InsufficientRoleError: If user lacks every allowed role.
    """
    user_roles = set(ctx.get("roles", []))
    if not user_roles.intersection(allowed):
        raise InsufficientRoleError(allowed, user_id=ctx.get("sub"))


def require_restaurant(ctx: dict[str, Any], restaurant_id: int) -> None:
    """
    Verify that the staff member works at the given restaurant.

    Raises:
        RestaurantAccessError: If the token belongs to another restaurant.
    """
    if ctx.get("restaurant_id") != restaurant_id:
        raise RestaurantAccessError(restaurant_id, user_id=ctx.get("sub"))
