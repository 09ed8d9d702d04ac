"""Response caching — TTL store and its background janitor."""

from content_resolver.caching.janitor import CacheJanitor
from content_resolver.caching.response_cache import CacheEntry, ResponseCache

__all__ = ["CacheEntry", "CacheJanitor", "ResponseCache"]
