"""
Unit tests for the console API client and response cache.
"""

import os
import sys
from unittest.mock import MagicMock

import requests

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


def http_response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.json.return_value = body
    return response


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestApiResult:
    """Tests for ApiResult."""

    def test_success_result(self):
        from onesupport_console.client import ApiResult

        result = ApiResult(success=True, data={"id": "1"})

        assert result.success is True
        assert result.error is None
        assert result.token_expired is False

    def test_error_result(self):
        from onesupport_console.client import ApiResult

        result = ApiResult(success=False, error="Something went wrong")

        assert result.success is False
        assert result.data is None


class TestSupportApiClient:
    """Tests for the HTTP client."""

    def test_unwraps_envelope(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com/api/")
        client.session.request = MagicMock(
            return_value=http_response(200, {"code": 200, "message": "Success", "data": {"caseId": "CS-1"}})
        )

        result = client.get_case("CS-1")

        assert result.success
        assert result.data == {"caseId": "CS-1"}
        method, url = client.session.request.call_args.args
        assert (method, url) == ("GET", "https://api.example.com/api/cases/CS-1")

    def test_login_stores_token(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com")
        client.session.request = MagicMock(
            return_value=http_response(
                200, {"code": 200, "data": {"user": {"id": "u1"}, "token": "abc", "refreshToken": "ref"}}
            )
        )

        result = client.login("a@b.com", "password1")

        assert result.success
        assert client.token == "abc"
        assert client.refresh_token == "ref"
        assert client.session.headers["Authorization"] == "Bearer abc"

    def test_logout_clears_token_even_on_failure(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com", token="abc")
        client.session.request = MagicMock(side_effect=requests.exceptions.ConnectionError("down"))

        result = client.logout()

        assert not result.success
        assert client.token is None
        assert "Authorization" not in client.session.headers

    def test_token_expired(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com", token="old")
        client.session.request = MagicMock(
            return_value=http_response(401, {"code": "TOKEN_EXPIRED", "message": "Token has expired"})
        )

        result = client.list_cases()

        assert not result.success
        assert result.token_expired
        assert result.status_code == 401
        assert result.error == "Token has expired"

    def test_plain_unauthorized_is_not_expiry(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com")
        client.session.request = MagicMock(
            return_value=http_response(401, {"code": 401, "message": "Authentication required"})
        )

        assert client.list_cases().token_expired is False

    def test_timeout(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com")
        client.session.request = MagicMock(side_effect=requests.exceptions.Timeout())

        result = client.health_check()

        assert not result.success
        assert result.error == "API request timed out"

    def test_non_json_error_body(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com")
        response = http_response(502, None)
        response.json.side_effect = ValueError("not json")
        client.session.request = MagicMock(return_value=response)

        result = client.health_check()

        assert not result.success
        assert result.error == "HTTP 502"

    def test_quotes_path_segments_and_drops_empty_params(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com")
        client.session.request = MagicMock(return_value=http_response(200, {"data": {}}))

        client.delete_document("install guide.pdf")
        assert client.session.request.call_args.args[1].endswith("/s3/files/raw/install%20guide.pdf")

        client.case_dashboard(start_date="2025-06-01")
        assert client.session.request.call_args.kwargs["params"] == {"startDate": "2025-06-01"}

    def test_profile_user_and_manager_conversation_endpoints(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com")
        client.session.request = MagicMock(return_value=http_response(200, {"data": {}}))

        client.update_profile("Ana Smith")
        args, kwargs = client.session.request.call_args
        assert args == ("PUT", "https://api.example.com/user/profile")
        assert kwargs["json"] == {"userName": "Ana Smith"}

        client.get_user("user 1")
        assert client.session.request.call_args.args == ("GET", "https://api.example.com/users/user%201")

        client.list_user_conversations("agent-2", page=2)
        args, kwargs = client.session.request.call_args
        assert args == ("GET", "https://api.example.com/conversation/list")
        assert kwargs["params"] == {"userId": "agent-2", "page": 2, "limit": 20}

    def test_status_paging_passes_last_key(self):
        from onesupport_console.client import SupportApiClient

        client = SupportApiClient("https://api.example.com")
        client.session.request = MagicMock(return_value=http_response(200, {"data": {"items": []}}))

        client.cases_by_status("pending", last_key={"lastId": "CS-1", "createdAt": "2025-01-01"})

        params = client.session.request.call_args.kwargs["params"]
        assert params["lastId"] == "CS-1"
        assert params["createdAt"] == "2025-01-01"


class TestResponseCache:
    """Tests for the two-tier cache."""

    def test_memory_entries_expire(self):
        from onesupport_console.cache import ResponseCache

        clock = FakeClock()
        cache = ResponseCache(clock=clock)
        cache.set("k", {"v": 1}, ttl=60)

        assert cache.get("k") == {"v": 1}
        clock.now += 61
        assert cache.get("k") is None
        assert not cache.is_valid("k")

    def test_no_ttl_never_expires(self):
        from onesupport_console.cache import ResponseCache

        clock = FakeClock()
        cache = ResponseCache(clock=clock)
        cache.set("k", "v")
        clock.now += 10**9

        assert cache.get("k") == "v"

    def test_persisted_entries_survive_restart(self, tmp_path):
        from onesupport_console.cache import ResponseCache

        path = str(tmp_path / "cache.json")
        clock = FakeClock()
        ResponseCache(path, clock=clock).set("products", [1, 2], ttl=3600, persist=True)

        restarted = ResponseCache(path, clock=clock)
        assert restarted.get("products") == [1, 2]
        clock.now += 3601
        assert ResponseCache(path, clock=clock).get("products") is None

    def test_unreadable_storage_is_empty(self, tmp_path):
        from onesupport_console.cache import ResponseCache

        path = tmp_path / "cache.json"
        path.write_text("{not json")

        cache = ResponseCache(str(path))

        assert cache.get("anything") is None
        assert cache.info()["storedEntries"] == 0

    def test_clear(self, tmp_path):
        from onesupport_console.cache import ResponseCache

        cache = ResponseCache(str(tmp_path / "cache.json"))
        cache.set("a", 1, persist=True)
        cache.set("b", 2, persist=True)

        cache.clear("a")
        assert cache.get("a") is None
        assert cache.get("b") == 2

        cache.clear()
        assert cache.info() == {"memoryEntries": 0, "storedEntries": 0, "keys": []}


class TestCachedProductService:
    """Tests for product caching rules."""

    def make_service(self, tmp_path=None):
        from onesupport_console.cache import CachedProductService, ResponseCache
        from onesupport_console.client import ApiResult

        clock = FakeClock()
        client = MagicMock()
        client.door_counts.return_value = ApiResult(success=True, data={"total": 3})
        client.search_products.return_value = ApiResult(success=True, data={"products": []})
        client.products_by_type.return_value = ApiResult(success=True, data={"products": ["d1"]})
        path = str(tmp_path / "cache.json") if tmp_path else None
        return CachedProductService(client, ResponseCache(path, clock=clock)), client, clock

    def test_door_counts_cached_for_three_hours(self):
        service, client, clock = self.make_service()

        service.door_counts()
        service.door_counts()
        assert client.door_counts.call_count == 1

        clock.now += 3 * 3600 + 1
        service.door_counts()
        assert client.door_counts.call_count == 2

    def test_search_cached_for_five_minutes_in_memory_only(self, tmp_path):
        service, client, clock = self.make_service(tmp_path)

        service.search("patio", "doors")
        service.search("patio", "doors")
        assert client.search_products.call_count == 1
        assert "doors::patio" in service.cache_info()["keys"]

        service.search("Patio", "doors")
        assert client.search_products.call_count == 2
        assert "doors::Patio" in service.cache_info()["keys"]
        assert service.cache_info()["storedEntries"] == 0

        clock.now += 301
        service.search("patio", "doors")
        assert client.search_products.call_count == 3

    def test_doors_home_is_stored_not_in_memory(self, tmp_path):
        service, client, _ = self.make_service(tmp_path)

        service.doors_home()
        info = service.cache_info()

        assert info["memoryEntries"] == 0
        assert info["storedEntries"] == 1

    def test_failures_are_not_cached(self):
        from onesupport_console.client import ApiResult

        service, client, _ = self.make_service()
        client.get_product.return_value = ApiResult(success=False, error="boom")

        service.product("p1")
        service.product("p1")

        assert client.get_product.call_count == 2

    def test_clear_all(self):
        service, client, _ = self.make_service()

        service.door_counts()
        service.clear_all()
        service.door_counts()

        assert client.door_counts.call_count == 2
