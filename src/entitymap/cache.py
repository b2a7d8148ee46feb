"""
Unified caching for entity metadata.

Metadata is read-only once built, so entries never expire; caches are
bounded LRU caches from cachetools.
"""
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)

DEFAULT_MAXSIZE = 256


class Cache:
    """Cache manager for the entitymap package.

    Thread-safe singleton that manages named LRU caches.
    """

    _instance = None
    _caches: dict[str, cachetools.LRUCache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get_cache(self, name: str, maxsize: int | None = None) -> cachetools.LRUCache:
        """Get or create an LRU cache with the given name.

        Args:
            name: Name of the cache
            maxsize: Maximum cache size (default 256 on creation). A different
                size for an existing cache rebuilds it with that size, keeping
                as many entries as fit.

        Returns
            LRUCache instance
        """
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                cache = cachetools.LRUCache(maxsize=maxsize or DEFAULT_MAXSIZE)
                self._caches[name] = cache
                logger.debug(f'Created cache {name} (maxsize={cache.maxsize})')
            elif maxsize is not None and maxsize != cache.maxsize:
                resized = cachetools.LRUCache(maxsize=maxsize)
                for key, value in list(cache.items()):
                    resized[key] = value
                self._caches[name] = cache = resized
                logger.debug(f'Resized cache {name} (maxsize={maxsize})')
            return cache

    def clear_all(self) -> None:
        """Clear all managed caches."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_cache(self, name: str) -> None:
        """Clear a specific cache by name."""
        with self._lock:
            if name in self._caches:
                self._caches[name].clear()

    def get_metadata_cache(self, maxsize: int | None = None) -> cachetools.LRUCache:
        """Get the cache holding per-class entity metadata."""
        return self.get_cache('entity_metadata', maxsize=maxsize)
