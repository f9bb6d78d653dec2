"""
Read cache keyed like the console's query keys, e.g. ("bank_accounts", "ACTIVE").
Mutations invalidate by the first key element so every variant of a list is refetched.
"""

import time
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Tuple

from opsconsole.core.config import settings

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]


class QueryCache:
    def __init__(self, default_ttl: int = 60):
        self._cache: Dict[QueryKey, Dict[str, Any]] = {}
        self.default_ttl = default_ttl
        self.stats = {"hits": 0, "misses": 0, "invalidations": 0}

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._cache.get(key)
        if entry and entry["expires_at"] > time.time():
            self.stats["hits"] += 1
            return entry["value"]
        if entry:
            del self._cache[key]
        self.stats["misses"] += 1
        return default

    def set(self, key: QueryKey, value: Any, ttl: int = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = {"value": value, "expires_at": time.time() + ttl}

    async def fetch(self, key: QueryKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            value = await loader()
            self.set(key, value)
        return value

    def invalidate(self, *prefixes: str) -> int:
        doomed = [k for k in self._cache if k and k[0] in prefixes]
        for k in doomed:
            del self._cache[k]
        self.stats["invalidations"] += len(doomed)
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cached queries for {prefixes}")
        return len(doomed)

    def clear(self) -> None:
        self._cache.clear()


query_cache = QueryCache(default_ttl=settings.QUERY_CACHE_TTL)
