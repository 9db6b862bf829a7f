"""Process-lifetime stores used by the pipeline."""

from .skip_cache import CacheService, SkipCache, fingerprint

__all__ = ["CacheService", "SkipCache", "fingerprint"]
