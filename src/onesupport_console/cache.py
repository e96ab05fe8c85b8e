"""
Response caching for the console.

ResponseCache keeps entries in memory and, for entries that ask for it, in
a JSON file that survives restarts. CachedProductService applies the
product caching rules on top of the API client.
"""

import json
import logging
import os
import time
from typing import Any, Callable, Optional

from .client import ApiResult, SupportApiClient

logger = logging.getLogger(__name__)

HOUR = 3600
PRODUCTS_TTL = 3 * HOUR
DOOR_COUNTS_TTL = 3 * HOUR
DOORS_HOME_TTL = 3 * HOUR
SEARCH_TTL = 5 * 60


class ResponseCache:
    """Two-tier cache of {value, expiry} entries."""

    def __init__(self, storage_path: Optional[str] = None, clock: Callable[[], float] = time.time):
        self.storage_path = storage_path
        self.clock = clock
        self._memory: dict[str, dict] = {}

    def _expired(self, entry: dict) -> bool:
        expiry = entry.get("expiry")
        return expiry is not None and self.clock() >= expiry

    def _read_storage(self) -> dict[str, dict]:
        if not self.storage_path or not os.path.exists(self.storage_path):
            return {}
        try:
            with open(self.storage_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache storage {self.storage_path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_storage(self, data: dict[str, dict]) -> None:
        if not self.storage_path:
            return
        try:
            with open(self.storage_path, "w", encoding="utf-8") as f:
                json.dump(data, f)
        except OSError as e:
            logger.warning(f"Could not write cache storage {self.storage_path}: {e}")

    def get(self, key: str) -> Any:
        """Return a cached value, or None when missing or expired."""
        entry = self._memory.get(key)
        if entry is not None:
            if not self._expired(entry):
                return entry["value"]
            del self._memory[key]

        entry = self._read_storage().get(key)
        if isinstance(entry, dict) and "value" in entry and not self._expired(entry):
            # Promote to memory
            self._memory[key] = entry
            return entry["value"]
        return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None, persist: bool = False, memory: bool = True) -> None:
        """
        Cache a value.

        Args:
            key: Cache key
            value: JSON-serialisable value
            ttl: Lifetime in seconds; None never expires
            persist: Also write the entry to the storage file
            memory: Keep the entry in memory
        """
        entry = {"value": value, "expiry": self.clock() + ttl if ttl is not None else None}
        if memory:
            self._memory[key] = entry
        if persist and self.storage_path:
            data = self._read_storage()
            data[key] = entry
            self._write_storage(data)

    def is_valid(self, key: str) -> bool:
        return self.get(key) is not None

    def clear(self, key: Optional[str] = None) -> None:
        """Remove one key, or everything when key is None."""
        if key is None:
            self._memory.clear()
            if self.storage_path and os.path.exists(self.storage_path):
                self._write_storage({})
            return

        self._memory.pop(key, None)
        data = self._read_storage()
        if key in data:
            del data[key]
            self._write_storage(data)

    def info(self) -> dict:
        stored = self._read_storage()
        return {
            "memoryEntries": len(self._memory),
            "storedEntries": len(stored),
            "keys": sorted(set(self._memory) | set(stored)),
        }


class CachedProductService:
    """Product lookups through the API client with caching rules applied."""

    def __init__(self, client: SupportApiClient, cache: Optional[ResponseCache] = None):
        self.client = client
        self.cache = cache or ResponseCache()

    def _cached(
        self,
        key: str,
        fetch: Callable[[], ApiResult],
        ttl: Optional[float],
        persist: bool = False,
        memory: bool = True,
    ) -> ApiResult:
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return ApiResult(success=True, data=cached, status_code=200)

        result = fetch()
        if result.success and result.data is not None:
            self.cache.set(key, result.data, ttl=ttl, persist=persist, memory=memory)
        return result

    def suggested_products(self, limit: int = 10) -> ApiResult:
        return self._cached(
            "products", lambda: self.client.list_products(page=1, limit=limit), PRODUCTS_TTL, persist=True
        )

    def door_counts(self) -> ApiResult:
        return self._cached("door_counts", self.client.door_counts, DOOR_COUNTS_TTL, persist=True)

    def doors_home(self, limit: int = 10) -> ApiResult:
        return self._cached(
            "doors_home",
            lambda: self.client.products_by_type("doors", page=1, limit=limit),
            DOORS_HOME_TTL,
            persist=True,
            memory=False,
        )

    def search(self, query: str, search_type: str = "all") -> ApiResult:
        key = f"{search_type}::{query}"
        return self._cached(
            key, lambda: self.client.search_products(query, search_type), SEARCH_TTL
        )

    def product(self, product_id: str) -> ApiResult:
        return self._cached(
            f"product::{product_id}", lambda: self.client.get_product(product_id), None
        )

    def clear_all(self) -> None:
        self.cache.clear()

    def cache_info(self) -> dict:
        return self.cache.info()
