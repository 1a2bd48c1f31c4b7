"""Resolution cache feature."""

from .resolution_cache import ResolutionCache, ResolutionCacheEntry, CacheStats

__all__ = [
    "ResolutionCache",
    "ResolutionCacheEntry",
    "CacheStats",
]
