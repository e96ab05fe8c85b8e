"""
Password hashing, JWT session tokens and request authentication.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from .config import config
from .responses import ForbiddenError, TokenExpiredError, UnauthorizedError

logger = logging.getLogger(__name__)

HASH_ALGORITHM = "pbkdf2_sha256"
HASH_ITERATIONS = 120_000
JWT_ALGORITHM = "HS256"
MANAGER_POSITION = "Manager"


def hash_password(password: str, iterations: int = HASH_ITERATIONS) -> str:
    """Hash a password as pbkdf2_sha256$iterations$salt$hash."""
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{HASH_ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    """Check a password against a stored hash; malformed hashes never match."""
    try:
        algorithm, iterations, salt_hex, hash_hex = (stored or "").split("$")
        if algorithm != HASH_ALGORITHM:
            return False
        digest = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations)
        )
    except ValueError:
        return False
    return hmac.compare_digest(digest.hex(), hash_hex)


def create_access_token(user: dict) -> str:
    """Create a new access token for a user item."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user["id"],
        "email": user.get("email", ""),
        "userPosition": user.get("userPosition", "user"),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(hours=config.jwt_expires_hours),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: str) -> str:
    """Create a new refresh token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "refresh",
        "iat": now,
        "exp": now + timedelta(days=config.jwt_refresh_days),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        logger.info("Token expired")
        raise TokenExpiredError() from e
    except InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token") from e

    if payload.get("type") != expected_type:
        raise UnauthorizedError(f"Not an {expected_type} token")
    if not payload.get("sub"):
        raise UnauthorizedError("Invalid token")
    return payload


def get_header(event: dict, name: str) -> str:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in (event.get("headers") or {}).items():
        if key.lower() == wanted:
            return value or ""
    return ""


def authenticate(event: dict) -> dict[str, Any]:
    """Validate the bearer token of a request and return its claims."""
    header = get_header(event, "Authorization")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Authentication required")
    return decode_token(token.strip())


def is_manager(claims: dict) -> bool:
    return str(claims.get("userPosition", "")).lower() == MANAGER_POSITION.lower()


def require_manager(claims: dict) -> None:
    if not is_manager(claims):
        raise ForbiddenError("Manager permission required")
