"""
Response envelope, request parsing and API errors shared by all resources.
"""

import base64
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import unquote

from .config import config

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder for Decimal types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return float(obj) if obj % 1 else int(obj)
        if isinstance(obj, set):
            return sorted(obj)
        return super().default(obj)


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.error_code = error_code


class BadRequestError(ApiError):
    status_code = 400


class UnauthorizedError(ApiError):
    status_code = 401


class TokenExpiredError(UnauthorizedError):
    def __init__(self, message: str = "Token has expired"):
        super().__init__(message, error_code="TOKEN_EXPIRED")


class ForbiddenError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


def get_current_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def cors_headers(origin: Optional[str] = None) -> dict:
    """CORS headers, echoing the request origin when it is allowed."""
    allowed = config.allowed_origins
    if origin and origin in allowed:
        allow_origin = origin
    else:
        allow_origin = allowed[0] if allowed else "*"
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
        "Access-Control-Allow-Credentials": "true",
    }


def create_response(
    status_code: int,
    data: Any = None,
    message: str = "Success",
    code: Any = None,
) -> dict:
    """Create a standardized API response."""
    body: dict[str, Any] = {
        "code": code if code is not None else status_code,
        "message": message,
        "timestamp": get_current_timestamp(),
    }
    if data is not None:
        body["data"] = data

    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **cors_headers()},
        "body": json.dumps(body, cls=DecimalEncoder),
    }


def error_response(error: ApiError) -> dict:
    """Render an ApiError."""
    return create_response(
        error.status_code,
        message=error.message,
        code=error.error_code or error.status_code,
    )


def parse_body(event: dict) -> dict:
    """Parse a JSON request body; an empty body parses as {}."""
    raw = event.get("body")
    if not raw:
        return {}
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise BadRequestError("Invalid request body encoding") from e
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BadRequestError("Invalid JSON in request body") from e
    if not isinstance(body, dict):
        raise BadRequestError("Request body must be a JSON object")
    return body


def path_param(event: dict, name: str) -> str:
    """Get a required, URL-decoded path parameter."""
    value = (event.get("pathParameters") or {}).get(name)
    if not value:
        raise BadRequestError(f"{name} is required")
    return unquote(value)


def query_params(event: dict) -> dict:
    return event.get("queryStringParameters") or {}


def int_param(params: dict, name: str, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    """Read an integer query parameter, clamped to a range."""
    try:
        value = int(params.get(name, default))
    except (TypeError, ValueError) as e:
        raise BadRequestError(f"{name} must be an integer") from e
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def bool_param(params: dict, name: str, default: bool = False) -> bool:
    value = params.get(name)
    if value is None:
        return default
    return str(value).lower() in ("1", "true", "yes")


def paginate(items: list, page: int, limit: int) -> tuple[list, dict]:
    """Slice a page out of a list and describe the pagination."""
    total = len(items)
    total_pages = max(1, (total + limit - 1) // limit)
    start = (page - 1) * limit
    return items[start : start + limit], {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


def scan_all(table, **kwargs) -> list[dict]:
    """Scan a table following LastEvaluatedKey until exhausted."""
    items = []
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def to_dynamo(value: Any) -> Any:
    """Convert floats to Decimal, which is what DynamoDB accepts for numbers."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    return value
