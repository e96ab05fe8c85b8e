"""
OneSupport Console

API client, response caching and the Streamlit operator console.
"""

from .cache import CachedProductService, ResponseCache
from .client import ApiResult, SupportApiClient

__all__ = ["ApiResult", "CachedProductService", "ResponseCache", "SupportApiClient"]
