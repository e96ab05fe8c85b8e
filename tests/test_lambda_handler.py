"""
Unit tests for the Lambda API handler, routing and response envelope.
"""

import base64
import json
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import jwt
import pytest
from botocore.exceptions import ClientError

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


def make_event(method, path, body=None, token=None, query=None, headers=None):
    event_headers = dict(headers or {})
    if token:
        event_headers["authorization"] = f"Bearer {token}"
    return {
        "rawPath": path,
        "requestContext": {"http": {"method": method}},
        "headers": event_headers,
        "queryStringParameters": query,
        "body": json.dumps(body) if body is not None else None,
    }


def agent_token(position="user"):
    from onesupport_api.security import create_access_token

    return create_access_token({"id": "agent-1", "email": "agent@example.com", "userPosition": position})


class TestCreateResponse:
    """Tests for the create_response function."""

    def test_creates_envelope(self):
        from onesupport_api.responses import create_response

        response = create_response(200, {"value": 1})
        body = json.loads(response["body"])

        assert response["statusCode"] == 200
        assert body["code"] == 200
        assert body["message"] == "Success"
        assert body["data"] == {"value": 1}
        assert "timestamp" in body

    def test_omits_data_when_none(self):
        from onesupport_api.responses import create_response

        body = json.loads(create_response(404, message="missing")["body"])

        assert "data" not in body
        assert body["message"] == "missing"

    def test_encodes_decimals(self):
        from onesupport_api.responses import create_response

        body = json.loads(create_response(200, {"a": Decimal("2"), "b": Decimal("1.5")})["body"])

        assert body["data"] == {"a": 2, "b": 1.5}
        assert isinstance(body["data"]["a"], int)

    def test_token_expired_code(self):
        from onesupport_api.responses import TokenExpiredError, error_response

        response = error_response(TokenExpiredError())
        body = json.loads(response["body"])

        assert response["statusCode"] == 401
        assert body["code"] == "TOKEN_EXPIRED"

    def test_api_error_arguments(self):
        from onesupport_api.responses import ApiError, NotFoundError, error_response

        error = ApiError("Assistant unavailable", status_code=503, error_code="ASSISTANT_DOWN")
        body = json.loads(error_response(error)["body"])

        assert error.status_code == 503
        assert body["code"] == "ASSISTANT_DOWN"
        assert body["message"] == "Assistant unavailable"
        assert ApiError("boom").status_code == 500
        assert NotFoundError("gone").status_code == 404


class TestRequestParsing:
    """Tests for request parsing helpers."""

    def test_parse_body_rejects_invalid_json(self):
        from onesupport_api.responses import BadRequestError, parse_body

        with pytest.raises(BadRequestError):
            parse_body({"body": "not valid json"})

    def test_parse_body_rejects_non_object(self):
        from onesupport_api.responses import BadRequestError, parse_body

        with pytest.raises(BadRequestError):
            parse_body({"body": "[1, 2]"})

    def test_parse_body_decodes_base64(self):
        from onesupport_api.responses import parse_body

        raw = base64.b64encode(b'{"a": 1}').decode()
        assert parse_body({"body": raw, "isBase64Encoded": True}) == {"a": 1}

    def test_empty_body_is_empty_dict(self):
        from onesupport_api.responses import parse_body

        assert parse_body({}) == {}

    def test_int_param_clamps(self):
        from onesupport_api.responses import int_param

        assert int_param({"limit": "500"}, "limit", 10, maximum=100) == 100
        assert int_param({"limit": "-3"}, "limit", 10) == 1
        assert int_param({}, "limit", 10) == 10

    def test_paginate(self):
        from onesupport_api.responses import paginate

        items, pagination = paginate(list(range(25)), 3, 10)

        assert items == list(range(20, 25))
        assert pagination == {
            "page": 3,
            "limit": 10,
            "total": 25,
            "totalPages": 3,
            "hasNext": False,
            "hasPrev": True,
        }


class TestRouting:
    """Tests for route matching."""

    def test_literal_paths_win_over_parameters(self):
        from onesupport_api import cases
        from onesupport_api.handler import match_route

        handler, public, params = match_route("GET", "/cases/alert")

        assert handler is cases.alert_cases
        assert public is False
        assert params == {}

    def test_extracts_path_parameters(self):
        from onesupport_api import conversations
        from onesupport_api.handler import match_route

        handler, _, params = match_route("PUT", "/conversation/abc-123/name")

        assert handler is conversations.rename_conversation
        assert params == {"conversationId": "abc-123"}

    def test_normalizes_api_prefix(self):
        from onesupport_api.handler import normalize_path

        assert normalize_path("/api/cases/") == "/cases"
        assert normalize_path("/apiary") == "/apiary"
        assert normalize_path("") == "/"


class TestLambdaHandler:
    """Tests for the main Lambda handler."""

    def test_routes_health_check(self):
        from onesupport_api.handler import lambda_handler

        response = lambda_handler(make_event("GET", "/api/health"), None)
        body = json.loads(response["body"])

        assert response["statusCode"] == 200
        assert body["data"]["status"] == "healthy"

    def test_returns_404_for_unknown_route(self):
        from onesupport_api.handler import lambda_handler

        response = lambda_handler(make_event("GET", "/unknown"), None)
        body = json.loads(response["body"])

        assert response["statusCode"] == 404
        assert body["message"] == "Route not found: GET /unknown"

    def test_answers_preflight(self):
        from onesupport_api.handler import lambda_handler

        response = lambda_handler(make_event("OPTIONS", "/cases"), None)

        assert response["statusCode"] == 204
        assert "Access-Control-Allow-Methods" in response["headers"]

    def test_requires_token(self):
        from onesupport_api.handler import lambda_handler

        response = lambda_handler(make_event("GET", "/cases"), None)

        assert response["statusCode"] == 401

    def test_expired_token(self):
        from onesupport_api.config import config
        from onesupport_api.handler import lambda_handler

        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "agent-1", "type": "access", "iat": past - timedelta(hours=8), "exp": past},
            config.jwt_secret,
            algorithm="HS256",
        )
        response = lambda_handler(make_event("GET", "/cases", token=token), None)
        body = json.loads(response["body"])

        assert response["statusCode"] == 401
        assert body["code"] == "TOKEN_EXPIRED"

    def test_rejects_refresh_token_as_access(self):
        from onesupport_api.handler import lambda_handler
        from onesupport_api.security import create_refresh_token

        token = create_refresh_token("agent-1")
        response = lambda_handler(make_event("GET", "/cases", token=token), None)

        assert response["statusCode"] == 401

    @patch("onesupport_api.cases.cases_table")
    def test_routes_authenticated_request(self, mock_table):
        from onesupport_api.handler import lambda_handler

        mock_table.get_item = MagicMock(return_value={"Item": {"caseId": "CS-1", "status": "pending"}})

        response = lambda_handler(make_event("GET", "/cases/CS-1", token=agent_token()), None)
        body = json.loads(response["body"])

        assert response["statusCode"] == 200
        assert body["data"]["caseId"] == "CS-1"
        mock_table.get_item.assert_called_once_with(Key={"caseId": "CS-1"})

    @patch("onesupport_api.cases.cases_table")
    def test_unexpected_errors_return_500(self, mock_table):
        from onesupport_api.handler import lambda_handler

        mock_table.get_item.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "GetItem"
        )

        response = lambda_handler(make_event("GET", "/cases/CS-1", token=agent_token()), None)
        body = json.loads(response["body"])

        assert response["statusCode"] == 500
        assert body["message"] == "Internal server error"

    def test_echoes_allowed_origin(self):
        from onesupport_api.handler import lambda_handler

        event = make_event("GET", "/health", headers={"Origin": "http://localhost:5000"})
        response = lambda_handler(event, None)

        assert response["headers"]["Access-Control-Allow-Origin"] == "http://localhost:5000"

    def test_does_not_echo_unknown_origin(self):
        from onesupport_api.handler import lambda_handler

        event = make_event("GET", "/health", headers={"Origin": "https://evil.example.com"})
        response = lambda_handler(event, None)

        assert response["headers"]["Access-Control-Allow-Origin"] == "http://localhost:3000"

    def test_redacts_authorization_in_logs(self):
        from onesupport_api.handler import _loggable

        logged = _loggable(make_event("GET", "/cases", token="secret-token"))

        assert "secret-token" not in logged
        assert "[REDACTED]" in logged
