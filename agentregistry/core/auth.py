from datetime import datetime, timedelta, timezone

from fastapi import Header
from jose import JWTError, jwt

from agentregistry.config import settings
from agentregistry.core.exceptions import UnauthorizedError


def create_access_token(user_id: str, wallet_address: str) -> str:
    """Create a session JWT for a wallet-authenticated user."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expire_hours)
    payload = {
        "sub": user_id,
        "address": wallet_address.lower(),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Returns the payload."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    if payload.get("sub") is None:
        raise UnauthorizedError("Token missing subject")
    return payload


def get_current_user(authorization: str = Header(None)) -> dict:
    """FastAPI dependency returning the session payload from the Authorization header."""
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Authorization header must be: Bearer <token>")

    return decode_token(parts[1])


def get_current_user_id(authorization: str = Header(None)) -> str:
    """FastAPI dependency that extracts the user id from the Authorization header."""
    return get_current_user(authorization)["sub"]
