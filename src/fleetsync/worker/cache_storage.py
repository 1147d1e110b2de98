"""Named, versioned response caches.

Mirrors the browser ``CacheStorage`` API: buckets are opened by name,
enumerated, matched across, and deleted as a whole. Every ``put`` stores a
clone, so the caller keeps a response it can still hand out.
"""

from __future__ import annotations

import logging

from fleetsync.exceptions import FleetSyncWorkerError
from fleetsync.worker._http import HttpRequest, HttpResponse

_logger = logging.getLogger(__name__)

RequestLike = HttpRequest | str


def _key(request: RequestLike) -> tuple[str, str]:
    if isinstance(request, str):
        return HttpRequest(url=request).cache_key
    return request.cache_key


class Cache:
    """One cache bucket (a generation of cached responses)."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[tuple[str, str], HttpResponse] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, request: RequestLike, response: HttpResponse) -> None:
        method, url = _key(request)
        if method != "GET":
            raise FleetSyncWorkerError(f"Only GET responses can be cached, got {method} {url}")
        self._entries[(method, url)] = response.clone()

    async def match(self, request: RequestLike) -> HttpResponse | None:
        cached = self._entries.get(_key(request))
        return cached.clone() if cached is not None else None

    async def delete(self, request: RequestLike) -> bool:
        return self._entries.pop(_key(request), None) is not None

    async def keys(self) -> list[str]:
        return [url for _method, url in self._entries]


class CacheStorage:
    """All cache buckets of one origin, in creation order."""

    def __init__(self) -> None:
        self._caches: dict[str, Cache] = {}

    async def open(self, name: str) -> Cache:
        cache = self._caches.get(name)
        if cache is None:
            cache = Cache(name)
            self._caches[name] = cache
        return cache

    async def has(self, name: str) -> bool:
        return name in self._caches

    async def keys(self) -> list[str]:
        return list(self._caches)

    async def delete(self, name: str) -> bool:
        removed = self._caches.pop(name, None) is not None
        if removed:
            _logger.debug("Deleted cache %s", name)
        return removed

    async def match(self, request: RequestLike) -> HttpResponse | None:
        """First match across buckets, oldest bucket first."""
        for cache in list(self._caches.values()):
            cached = await cache.match(request)
            if cached is not None:
                return cached
        return None
