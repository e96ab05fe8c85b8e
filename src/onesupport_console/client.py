"""
HTTP client for the OneSupport API.

Every call returns an ApiResult; HTTP errors, timeouts and connection
failures are reported in the result instead of raised.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

TOKEN_EXPIRED = "TOKEN_EXPIRED"


@dataclass
class ApiResult:
    """Result from an API call."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    message: str = ""
    token_expired: bool = False


class SupportApiClient:
    """Client for the OneSupport API."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: int = 10):
        """
        Initialize the client.

        Args:
            base_url: API base URL, e.g. https://api.example.com/api
            token: Access token from a previous login
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.refresh_token: Optional[str] = None
        self.token: Optional[str] = None
        self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        self.token = token
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        else:
            self.session.headers.pop("Authorization", None)

    def _call_api(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> ApiResult:
        """Make an API call and unwrap the response envelope."""
        url = f"{self.base_url}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = self.session.request(
                method, url, json=data, params=params or None, timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            logger.error(f"API timeout: {method} {path}")
            return ApiResult(success=False, error="API request timed out")
        except requests.exceptions.RequestException as e:
            logger.error(f"API connection error: {method} {path}: {e}")
            return ApiResult(success=False, error=f"Could not reach the API: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        message = body.get("message", "")
        if response.ok:
            return ApiResult(
                success=True,
                data=body.get("data"),
                status_code=response.status_code,
                message=message,
            )

        logger.error(f"API error: {method} {path} -> {response.status_code} {message}")
        return ApiResult(
            success=False,
            error=message or f"HTTP {response.status_code}",
            status_code=response.status_code,
            message=message,
            token_expired=response.status_code == 401 and body.get("code") == TOKEN_EXPIRED,
        )

    # Auth

    def login(self, email: str, password: str) -> ApiResult:
        result = self._call_api("POST", "/auth/login", {"email": email, "password": password})
        if result.success and result.data:
            self.set_token(result.data.get("token"))
            self.refresh_token = result.data.get("refreshToken")
        return result

    def logout(self) -> ApiResult:
        """Log out; the local token is cleared even if the call fails."""
        result = self._call_api("POST", "/auth/logout")
        self.set_token(None)
        self.refresh_token = None
        return result

    def refresh(self) -> ApiResult:
        if not self.refresh_token:
            return ApiResult(success=False, error="No refresh token")
        result = self._call_api("POST", "/auth/refresh", {"refreshToken": self.refresh_token})
        if result.success and result.data:
            self.set_token(result.data.get("token"))
        return result

    def get_profile(self) -> ApiResult:
        return self._call_api("GET", "/user/profile")

    def update_profile(self, user_name: str) -> ApiResult:
        return self._call_api("PUT", "/user/profile", {"userName": user_name})

    def change_password(self, current_password: str, new_password: str) -> ApiResult:
        return self._call_api(
            "POST",
            "/users/password",
            {"currentPassword": current_password, "newPassword": new_password},
        )

    # Users

    def list_users(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> ApiResult:
        return self._call_api("GET", "/users", params={"page": page, "limit": limit, "search": search})

    def create_user(self, name: str, email: str, password: str, position: str = "user") -> ApiResult:
        return self._call_api(
            "POST",
            "/users",
            {"userName": name, "email": email, "password": password, "userPosition": position},
        )

    def get_user(self, user_id: str) -> ApiResult:
        return self._call_api("GET", f"/users/{quote(user_id, safe='')}")

    def update_user(self, user_id: str, **fields) -> ApiResult:
        return self._call_api("PUT", f"/users/{quote(user_id, safe='')}", fields)

    def delete_user(self, user_id: str) -> ApiResult:
        return self._call_api("DELETE", f"/users/{quote(user_id, safe='')}")

    # Cases

    def create_case(self, case: dict) -> ApiResult:
        return self._call_api("POST", "/cases", case)

    def get_case(self, case_id: str) -> ApiResult:
        return self._call_api("GET", f"/cases/{quote(case_id, safe='')}")

    def update_case(self, case_id: str, updates: dict) -> ApiResult:
        return self._call_api("PUT", f"/cases/{quote(case_id, safe='')}", updates)

    def list_cases(self, limit: int = 10, last_id: Optional[str] = None, asc: bool = False) -> ApiResult:
        return self._call_api(
            "GET", "/cases", params={"limit": limit, "lastId": last_id, "asc": str(asc).lower()}
        )

    def cases_by_status(
        self,
        status: str,
        limit: int = 10,
        last_key: Optional[dict] = None,
        asc: bool = False,
    ) -> ApiResult:
        params = {"limit": limit, "asc": str(asc).lower()}
        if last_key:
            params.update({"lastId": last_key.get("lastId"), "createdAt": last_key.get("createdAt")})
        return self._call_api("GET", f"/cases/status/{quote(status, safe='')}", params=params)

    def alert_cases(self, limit: int = 10, last_key: Optional[dict] = None) -> ApiResult:
        params = {"limit": limit}
        if last_key:
            params.update({"lastId": last_key.get("lastId"), "createdAt": last_key.get("createdAt")})
        return self._call_api("GET", "/cases/alert", params=params)

    def cases_by_phone(self, phone_number: str) -> ApiResult:
        return self._call_api("POST", "/cases/phone", {"phoneNumber": phone_number})

    def search_cases(self, query: str) -> ApiResult:
        return self._call_api("GET", "/cases/search", params={"q": query})

    def case_dashboard(self, user_id: Optional[str] = None, start_date: Optional[str] = None) -> ApiResult:
        return self._call_api(
            "GET", "/cases/dashboard", params={"userId": user_id, "startDate": start_date}
        )

    # Products

    def list_products(self, page: int = 1, limit: int = 10) -> ApiResult:
        return self._call_api("GET", "/products", params={"page": page, "limit": limit})

    def get_product(self, product_id: str) -> ApiResult:
        return self._call_api("GET", f"/products/{quote(product_id, safe='')}")

    def products_by_type(self, product_type: str, page: int = 1, limit: int = 10) -> ApiResult:
        return self._call_api(
            "GET",
            f"/products/type/{quote(product_type, safe='')}",
            params={"page": page, "limit": limit},
        )

    def product_by_name(self, name: str) -> ApiResult:
        return self._call_api("GET", f"/products/name/{quote(name, safe='')}")

    def door_counts(self) -> ApiResult:
        return self._call_api("GET", "/products/door-counts")

    def search_products(self, query: str, search_type: str = "all") -> ApiResult:
        return self._call_api("POST", "/products/search", {"query": query, "searchType": search_type})

    # Documents

    def list_documents(self) -> ApiResult:
        return self._call_api("GET", "/s3/files/raw")

    def upload_document(self, file_name: str, file_data_b64: str) -> ApiResult:
        return self._call_api(
            "POST",
            "/s3/upload/raw",
            {"fileName": file_name, "fileData": file_data_b64, "contentType": "application/pdf"},
        )

    def delete_document(self, file_name: str) -> ApiResult:
        return self._call_api("DELETE", f"/s3/files/raw/{quote(file_name, safe='')}")

    def document_url(self, file_name: str) -> ApiResult:
        return self._call_api("GET", f"/s3/presigned-url/raw/{quote(file_name, safe='')}")

    def sync_knowledge_base(self) -> ApiResult:
        return self._call_api("POST", "/jobs/kb/sync")

    # Assistant

    def ask(self, question: str, conversation_id: Optional[str] = None, session_id: Optional[str] = None) -> ApiResult:
        data = {"question": question}
        if conversation_id:
            data["conversation_id"] = conversation_id
        if session_id:
            data["session_id"] = session_id
        return self._call_api("POST", "/conversation", data)

    def conversation_history(self, conversation_id: str) -> ApiResult:
        return self._call_api("POST", "/conversation/history", {"conversation_id": conversation_id})

    def list_conversations(self, page: int = 1, limit: int = 20) -> ApiResult:
        return self._call_api("GET", "/conversation/user/list", params={"page": page, "limit": limit})

    def list_user_conversations(self, user_id: str, page: int = 1, limit: int = 20) -> ApiResult:
        """Manager view of another user's conversations."""
        return self._call_api(
            "GET", "/conversation/list", params={"userId": user_id, "page": page, "limit": limit}
        )

    def delete_conversation(self, conversation_id: str) -> ApiResult:
        return self._call_api("DELETE", f"/conversation/{quote(conversation_id, safe='')}")

    def rename_conversation(self, conversation_id: str, title: str) -> ApiResult:
        return self._call_api(
            "PUT", f"/conversation/{quote(conversation_id, safe='')}/name", {"title": title}
        )

    # Transcripts

    def get_transcript(self, contact_id: str) -> ApiResult:
        return self._call_api("GET", f"/transcript/{quote(contact_id, safe='')}")

    def generate_case(self, contact_id: str, contact_number: str = "") -> ApiResult:
        return self._call_api(
            "POST",
            "/transcript/generate-case",
            {"contactId": contact_id, "contactNumber": contact_number},
        )

    def health_check(self) -> ApiResult:
        return self._call_api("GET", "/health")
