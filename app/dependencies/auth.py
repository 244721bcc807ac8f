import logging
from typing import Optional

import jwt  # PyJWT
from fastapi import Header, Request

from app.core.errors import AppError, UnauthorizedError
from app.dependencies.state import get_settings

logger = logging.getLogger(__name__)


def verify_supabase_token(authorization: Optional[str], secret: str) -> dict:
    """
    Verifies a Supabase HS256 JWT and returns its payload.

    We decode AND get the payload in one step; callers never decode again.
    """
    if not authorization:
        raise UnauthorizedError("Missing authorization header")

    if not authorization.startswith("Bearer "):
        raise UnauthorizedError("Invalid header format. Expected 'Bearer <token>'")

    token = authorization[len("Bearer "):].strip()

    # Reject common invalid token values
    if token.lower() in ("", "null", "undefined", "none"):
        raise UnauthorizedError("Missing token")

    if not secret:
        logger.error("[AUTH] SUPABASE_JWT_SECRET is missing in environment variables")
        raise AppError("Server misconfiguration: SUPABASE_JWT_SECRET not set")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience="authenticated",
            options={"verify_aud": True, "require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Invalid or expired token")
    except jwt.PyJWTError as e:
        logger.info("[AUTH] Token verification failed: %s", e)
        raise UnauthorizedError("Invalid or expired token")


def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> str:
    """
    FastAPI dependency that verifies the bearer token and returns the user id
    (the token's sub claim), which is the primary key of user_entitlements.
    """
    settings = get_settings(request)
    payload = verify_supabase_token(authorization, settings.supabase_jwt_secret)

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")
    return str(user_id)
