"""
Account endpoints: login, logout, token refresh, profile and password.
"""

import logging

from .responses import (
    BadRequestError,
    NotFoundError,
    UnauthorizedError,
    create_response,
    parse_body,
)
from .security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from .users import (
    apply_user_update,
    get_user_by_email,
    get_user_item,
    public_user,
    validate_password,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def login(event: dict, claims: dict = None) -> dict:
    """Exchange email and password for access and refresh tokens."""
    body = parse_body(event)
    email = (body.get("email") or "").strip().lower()
    password = body.get("password") or ""
    if not email or not password:
        raise BadRequestError("Email and password are required")

    user = get_user_by_email(email)
    if not user or not verify_password(password, user.get("passwordHash", "")):
        logger.info(f"Failed login for {email}")
        raise UnauthorizedError(INVALID_CREDENTIALS)

    logger.info(f"User {user['id']} logged in")
    return create_response(
        200,
        {
            "user": public_user(user),
            "token": create_access_token(user),
            "refreshToken": create_refresh_token(user["id"]),
        },
        "Login successful",
    )


def logout(event: dict, claims: dict) -> dict:
    """Tokens are stateless; logout is recorded and acknowledged."""
    logger.info(f"User {claims.get('sub')} logged out")
    return create_response(200, message="Logout successful")


def refresh(event: dict, claims: dict = None) -> dict:
    """Issue a new access token from a refresh token."""
    body = parse_body(event)
    refresh_token = body.get("refreshToken") or body.get("refresh_token")
    if not refresh_token:
        raise BadRequestError("refreshToken is required")

    payload = decode_token(refresh_token, expected_type="refresh")
    user = get_user_item(payload["sub"])
    if not user:
        raise UnauthorizedError("User no longer exists")

    return create_response(200, {"token": create_access_token(user)}, "Token refreshed")


def get_profile(event: dict, claims: dict) -> dict:
    user = get_user_item(claims["sub"])
    if not user:
        raise NotFoundError("User not found")
    return create_response(200, public_user(user))


def update_profile(event: dict, claims: dict) -> dict:
    """Users may change their own display name."""
    body = parse_body(event)
    user_name = (body.get("userName") or body.get("name") or "").strip()
    if not user_name:
        raise BadRequestError("userName is required")
    user = apply_user_update(claims["sub"], {"userName": user_name})
    return create_response(200, public_user(user), "Profile updated successfully")


def change_password(event: dict, claims: dict) -> dict:
    body = parse_body(event)
    current = body.get("currentPassword") or ""
    new_password = validate_password(body.get("newPassword"))

    user = get_user_item(claims["sub"])
    if not user:
        raise NotFoundError("User not found")
    if not verify_password(current, user.get("passwordHash", "")):
        raise BadRequestError("Current password is incorrect")

    apply_user_update(user["id"], {"passwordHash": hash_password(new_password)})
    logger.info(f"User {user['id']} changed password")
    return create_response(200, message="Password changed successfully")
