"""
OneSupport API - Lambda Handler

Entry point for the API Gateway HTTP API. Routes requests to the resource
modules, authenticates them and renders errors in the standard envelope.
"""

import json
import logging
import re
from typing import Any, Callable, Optional

from . import auth, cases, conversations, documents, products, transcripts, users
from .config import config, validate_config
from .responses import (
    ApiError,
    cors_headers,
    create_response,
    error_response,
    get_current_timestamp,
)
from .security import authenticate, get_header

# Configure logging
logger = logging.getLogger()
logger.setLevel(config.log_level)

validate_config(config)

Handler = Callable[[dict, dict], dict]


def health_check(event: dict, claims: Optional[dict] = None) -> dict:
    """Health check endpoint."""
    return create_response(
        200,
        {
            "status": "healthy",
            "service": "onesupport-api",
            "environment": config.environment,
            "timestamp": get_current_timestamp(),
        },
    )


def _route(method: str, pattern: str, handler: Handler, public: bool = False) -> tuple:
    regex = re.sub(r"\{(\w+)\}", r"(?P<\1>[^/]+)", pattern)
    return method, re.compile(f"^{regex}$"), handler, public


# Literal paths come before parameterised siblings.
ROUTES = [
    _route("GET", "/health", health_check, public=True),
    # Auth
    _route("POST", "/auth/login", auth.login, public=True),
    _route("POST", "/auth/refresh", auth.refresh, public=True),
    _route("POST", "/auth/logout", auth.logout),
    _route("GET", "/user/profile", auth.get_profile),
    _route("PUT", "/user/profile", auth.update_profile),
    _route("POST", "/users/password", auth.change_password),
    # Users
    _route("GET", "/users", users.list_users),
    _route("POST", "/users", users.create_user),
    _route("GET", "/users/{userId}", users.get_user),
    _route("PUT", "/users/{userId}", users.update_user),
    _route("DELETE", "/users/{userId}", users.delete_user),
    # Cases
    _route("GET", "/cases/alert", cases.alert_cases),
    _route("GET", "/cases/search", cases.search_cases),
    _route("GET", "/cases/dashboard", cases.case_dashboard),
    _route("GET", "/cases/status/{status}", cases.cases_by_status),
    _route("POST", "/cases/phone", cases.cases_by_phone),
    _route("GET", "/cases", cases.list_cases),
    _route("POST", "/cases", cases.create_case),
    _route("GET", "/cases/{caseId}", cases.get_case),
    _route("PUT", "/cases/{caseId}", cases.update_case),
    # Products
    _route("GET", "/products", products.list_products),
    _route("GET", "/products/door-counts", products.door_counts),
    _route("GET", "/products/type/{productType}", products.products_by_type),
    _route("GET", "/products/name/{productName}", products.product_by_name),
    _route("POST", "/products/search", products.search_products),
    _route("GET", "/products/{productId}", products.get_product),
    # Documents
    _route("GET", "/s3/files/raw", documents.list_raw_files),
    _route("POST", "/s3/upload/raw", documents.upload_raw_file),
    _route("DELETE", "/s3/files/raw/{fileName}", documents.delete_raw_file),
    _route("GET", "/s3/presigned-url/raw/{fileName}", documents.presigned_url),
    _route("POST", "/jobs/kb/sync", documents.kb_sync),
    # Assistant
    _route("POST", "/conversation", conversations.chat),
    _route("POST", "/conversation/history", conversations.conversation_history),
    _route("GET", "/conversation/list", conversations.list_conversations),
    _route("GET", "/conversation/user/list", conversations.list_user_conversations),
    _route("DELETE", "/conversation/{conversationId}", conversations.delete_conversation),
    _route("PUT", "/conversation/{conversationId}/name", conversations.rename_conversation),
    # Transcripts
    _route("POST", "/transcript/generate-case", transcripts.generate_case),
    _route("GET", "/transcript/{contactId}", transcripts.get_transcript),
]


def match_route(method: str, path: str) -> Optional[tuple[Handler, bool, dict]]:
    """Find the handler for a request; returns (handler, public, path params)."""
    for route_method, regex, handler, public in ROUTES:
        if route_method != method:
            continue
        match = regex.match(path)
        if match:
            return handler, public, match.groupdict()
    return None


def normalize_path(path: str) -> str:
    if path == "/api" or path.startswith("/api/"):
        path = path[len("/api"):]
    path = "/" + path.strip("/")
    return path


def _loggable(event: dict) -> str:
    redacted = dict(event)
    headers = dict(event.get("headers") or {})
    for key in headers:
        if key.lower() == "authorization":
            headers[key] = "[REDACTED]"
    redacted["headers"] = headers
    redacted.pop("body", None)
    return json.dumps(redacted, default=str)


def _dispatch(event: dict, method: str, path: str) -> dict:
    if method == "OPTIONS":
        return {"statusCode": 204, "headers": cors_headers(), "body": ""}

    found = match_route(method, path)
    if found is None:
        return create_response(404, message=f"Route not found: {method} {path}")

    handler, public, params = found
    event["pathParameters"] = params
    claims = {} if public else authenticate(event)
    return handler(event, claims)


def lambda_handler(event: dict, context: Any) -> dict:
    """Main Lambda handler - routes requests to appropriate handlers."""
    logger.info(f"Received event: {_loggable(event)}")

    # Get HTTP method and path
    method = event.get("requestContext", {}).get("http", {}).get("method", "").upper()
    path = normalize_path(event.get("rawPath", ""))

    try:
        response = _dispatch(event, method, path)
    except ApiError as e:
        logger.info(f"{method} {path} -> {e.status_code}: {e.message}")
        response = error_response(e)
    except Exception:
        logger.exception(f"Unhandled error for {method} {path}")
        response = create_response(500, message="Internal server error")

    response["headers"].update(cors_headers(get_header(event, "Origin")))
    return response
