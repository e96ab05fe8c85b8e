"""
User management for the OneSupport console.

Users are stored in DynamoDB keyed by id, with an EmailIndex GSI for login.
"""

import logging
import re
import uuid
from typing import Any, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from .config import config
from .responses import (
    ApiError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    create_response,
    get_current_timestamp,
    int_param,
    paginate,
    parse_body,
    path_param,
    query_params,
    scan_all,
)
from .security import hash_password, is_manager, require_manager

logger = logging.getLogger(__name__)

dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
users_table = dynamodb.Table(config.users_table)

EMAIL_INDEX = "EmailIndex"
POSITIONS = ("user", "Manager")
MIN_PASSWORD_LENGTH = 8


def format_user_name(email: Optional[str]) -> str:
    """Derive a display name from an email address."""
    if not email:
        return "User"
    local = email.split("@")[0]
    parts = [p for p in re.split(r"[._-]", local) if p]
    return " ".join(p[0].upper() + p[1:] for p in parts) or "User"


def normalize_position(value: Optional[str]) -> str:
    for position in POSITIONS:
        if (value or "").lower() == position.lower():
            return position
    raise BadRequestError(f"userPosition must be one of: {', '.join(POSITIONS)}")


def validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def public_user(item: dict) -> dict:
    """User fields safe to return to clients."""
    user = {k: v for k, v in item.items() if k != "passwordHash"}
    user["userID"] = item.get("id")
    user["isManager"] = is_manager(item)
    return user


def get_user_item(user_id: str) -> Optional[dict]:
    response = users_table.get_item(Key={"id": user_id})
    return response.get("Item")


def get_user_by_email(email: str) -> Optional[dict]:
    response = users_table.query(
        IndexName=EMAIL_INDEX,
        KeyConditionExpression=Key("email").eq(email.strip().lower()),
        Limit=1,
    )
    items = response.get("Items", [])
    return items[0] if items else None


def list_users(event: dict, claims: dict) -> dict:
    """List users with pagination and an optional search term."""
    params = query_params(event)
    page = int_param(params, "page", 1)
    limit = int_param(params, "limit", 10, maximum=100)
    search = (params.get("search") or "").strip().lower()

    try:
        items = scan_all(users_table)
    except ClientError as e:
        logger.error(f"Failed to list users: {e}")
        raise ApiError("Failed to list users") from e

    if search:
        items = [
            u
            for u in items
            if search in str(u.get("userName", "")).lower()
            or search in str(u.get("email", "")).lower()
        ]
    items.sort(key=lambda u: u.get("Entry_Time", ""), reverse=True)

    page_items, pagination = paginate([public_user(u) for u in items], page, limit)
    return create_response(200, {"users": page_items, "pagination": pagination})


def create_user(event: dict, claims: dict) -> dict:
    """Create a new console user (managers only)."""
    require_manager(claims)
    body = parse_body(event)

    email = (body.get("email") or "").strip().lower()
    if "@" not in email:
        raise BadRequestError("A valid email is required")
    password = validate_password(body.get("password"))
    position = normalize_position(body.get("userPosition") or "user")
    user_name = (body.get("userName") or body.get("name") or "").strip() or format_user_name(email)

    if get_user_by_email(email):
        raise ConflictError(f"A user with email {email} already exists")

    timestamp = get_current_timestamp()
    user = {
        "id": str(uuid.uuid4()),
        "userName": user_name,
        "email": email,
        "passwordHash": hash_password(password),
        "userPosition": position,
        "Entry_Time": timestamp,
        "updatedAt": timestamp,
    }

    try:
        users_table.put_item(Item=user, ConditionExpression="attribute_not_exists(id)")
    except ClientError as e:
        logger.error(f"Failed to create user: {e}")
        raise ApiError("Failed to create user") from e

    logger.info(f"Created user {user['id']} ({position})")
    return create_response(201, public_user(user), "User created successfully")


def get_user(event: dict, claims: dict) -> dict:
    user_id = path_param(event, "userId")
    item = get_user_item(user_id)
    if not item:
        raise NotFoundError(f"User {user_id} not found")
    return create_response(200, public_user(item))


def update_user(event: dict, claims: dict) -> dict:
    """Update a user's name, position or password (managers only)."""
    require_manager(claims)
    user_id = path_param(event, "userId")
    body = parse_body(event)

    updates: dict[str, Any] = {}
    if body.get("userName") or body.get("name"):
        updates["userName"] = (body.get("userName") or body.get("name")).strip()
    if body.get("userPosition"):
        updates["userPosition"] = normalize_position(body["userPosition"])
    if body.get("password"):
        updates["passwordHash"] = hash_password(validate_password(body["password"]))
    if not updates:
        raise BadRequestError("No valid fields to update")

    return create_response(200, public_user(apply_user_update(user_id, updates)), "User updated successfully")


def apply_user_update(user_id: str, updates: dict) -> dict:
    """Write attribute updates to an existing user and return the new item."""
    updates = {**updates, "updatedAt": get_current_timestamp()}
    names = {f"#{k}": k for k in updates}
    values = {f":{k}": v for k, v in updates.items()}

    try:
        response = users_table.update_item(
            Key={"id": user_id},
            UpdateExpression="SET " + ", ".join(f"#{k} = :{k}" for k in updates),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ConditionExpression="attribute_exists(id)",
            ReturnValues="ALL_NEW",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            raise NotFoundError(f"User {user_id} not found") from e
        logger.error(f"Failed to update user: {e}")
        raise ApiError("Failed to update user") from e

    logger.info(f"Updated user {user_id}: {sorted(k for k in updates if k != 'passwordHash')}")
    return response["Attributes"]


def delete_user(event: dict, claims: dict) -> dict:
    """Delete a user (managers only, never yourself)."""
    require_manager(claims)
    user_id = path_param(event, "userId")
    if user_id == claims.get("sub"):
        raise BadRequestError("You cannot delete your own account")

    try:
        users_table.delete_item(
            Key={"id": user_id},
            ConditionExpression="attribute_exists(id)",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            raise NotFoundError(f"User {user_id} not found") from e
        logger.error(f"Failed to delete user: {e}")
        raise ApiError("Failed to delete user") from e

    logger.info(f"Deleted user {user_id}")
    return create_response(200, {"id": user_id}, f"User {user_id} deleted successfully")
