"""Request-keyed response caches.

``HttpCache`` holds independent ``ResponseData`` copies keyed by method and
URL. Only ok responses are returned from lookups. ``add`` fetches through an
``HttpFetcher``, sending ``If-None-Match``/``If-Modified-Since`` from a cached
entry and keeping that entry when the server answers 304.

``HttpCacheStorage`` manages named caches versioned as
``<prefix>_<base>_<version>`` and removes caches left by prior versions.
"""

import asyncio
import re
from collections.abc import Iterable
from typing import Any

import structlog

from httpfacade.constants import (
    DEFAULT_CACHE_NAME,
    DEFAULT_CACHE_PREFIX,
    DEFAULT_CACHE_VERSION,
)
from httpfacade.errors import IllegalArgumentError
from httpfacade.request import HttpRequest, resolve_request
from httpfacade.response import ResponseData
from httpfacade.transport import HttpFetcher


logger = structlog.get_logger()

CacheKey = tuple[str, str]

_CACHE_NAME = re.compile(r"(?P<prefix>[^_]+)_(?P<base>.+)_(?P<version>[0-9]+)")


def cache_key(request: Any) -> CacheKey:
    """Key a URL or request-like value by method and URL.

    Raises:
        IllegalArgumentError: If no request can be resolved from the value.
    """
    resolved = resolve_request(request)
    return resolved.method.value, resolved.url


class HttpCache:
    """In-memory store of response copies keyed by request.

    Every response going in or coming out is a clone, so callers can read
    bodies freely without affecting the stored entry.
    """

    def __init__(
        self, fetcher: HttpFetcher | None = None, name: str = DEFAULT_CACHE_NAME
    ) -> None:
        """Initialize the cache.

        Args:
            fetcher: Used by ``add`` and ``add_all``; lookups work without one.
            name: Cache name, used for logging.
        """
        self._fetcher = fetcher
        self._name = name
        self._entries: dict[CacheKey, tuple[HttpRequest, ResponseData]] = {}
        self._log = logger.bind(component="cache", cache=name)

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request: object) -> bool:
        try:
            return cache_key(request) in self._entries
        except IllegalArgumentError:
            return False

    async def put(self, request: Any, response: ResponseData) -> None:
        """Store a copy of ``response`` under ``request``.

        The body is resolved first so the stored copy can be read again.
        """
        resolved = resolve_request(request)
        await response.resolve_data()
        key = (resolved.method.value, resolved.url)
        self._entries[key] = (resolved.clone(), response.clone())
        self._log.debug("cache_put", method=key[0], url=key[1], status=response.status)

    async def match(self, request: Any) -> ResponseData | None:
        """Return a copy of the ok response stored for ``request``, or None."""
        entry = self._entries.get(cache_key(request))
        if entry is None or not entry[1].ok:
            return None
        return entry[1].clone()

    async def match_all(self, request: Any = None) -> list[ResponseData]:
        """Return copies of every ok response, or only the one for ``request``."""
        if request is not None:
            found = await self.match(request)
            return [] if found is None else [found]
        return [response.clone() for _, response in self._entries.values() if response.ok]

    async def add(self, request: Any) -> ResponseData:
        """Fetch ``request`` and cache the response when it is ok.

        A stored entry supplies conditional headers; a 304 answer keeps
        that entry and returns a copy of it.

        Returns:
            The response to use: the fresh one, or the cached copy on 304.

        Raises:
            RuntimeError: If the cache has no fetcher.
        """
        if self._fetcher is None:
            msg = f"Cache {self._name!r} has no fetcher"
            raise RuntimeError(msg)

        resolved = resolve_request(request)
        key = (resolved.method.value, resolved.url)
        outgoing = resolved.clone()
        cached = self._entries.get(key)
        if cached is not None:
            etag = cached[1].headers.get("etag")
            last_modified = cached[1].headers.get("last-modified")
            if etag:
                outgoing.headers.set("If-None-Match", etag)
            if last_modified:
                outgoing.headers.set("If-Modified-Since", last_modified)

        response = await self._fetcher.fetch(outgoing)
        if response.is_use_cached() and cached is not None:
            self._log.debug("cache_revalidated", method=key[0], url=key[1])
            return cached[1].clone()
        if response.ok:
            await self.put(resolved, response)
        else:
            self._log.info(
                "cache_add_skipped", method=key[0], url=key[1], status=response.status
            )
        return response

    async def add_all(self, requests: Iterable[Any]) -> list[ResponseData]:
        """Run ``add`` for each request concurrently."""
        return list(await asyncio.gather(*(self.add(r) for r in requests)))

    async def delete(self, request: Any) -> bool:
        """Remove the entry for ``request``; True if one was stored."""
        key = cache_key(request)
        removed = self._entries.pop(key, None) is not None
        if removed:
            self._log.debug("cache_delete", method=key[0], url=key[1])
        return removed

    async def keys(self) -> list[HttpRequest]:
        """Copies of the requests that have stored entries, in insertion order."""
        return [request.clone() for request, _ in self._entries.values()]


class HttpCacheStorage:
    """Named, versioned ``HttpCache`` instances.

    Names are normalized to ``<prefix>_<base>_<version>``. Underscores are
    dropped from the prefix. A bare base
    name refers to the current version. Caches with this storage's prefix
    and an older version are obsolete; ``remove_obsolete_caches`` deletes
    them, first copying ``preserve_keys`` into the current version, and
    skips base names listed in ``preserve_caches``.
    """

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        prefix: str = DEFAULT_CACHE_PREFIX,
        version: int = DEFAULT_CACHE_VERSION,
        preserve_caches: Iterable[str] = (),
        preserve_keys: Iterable[Any] = (),
    ) -> None:
        self._fetcher = fetcher
        self._prefix = prefix.replace("_", "") or DEFAULT_CACHE_PREFIX
        self._version = max(1, version)
        self._preserve_caches = frozenset(self.base_name(n) for n in preserve_caches)
        self._preserve_keys = list(preserve_keys)
        self._caches: dict[str, HttpCache] = {}
        self._log = logger.bind(component="cache", prefix=self._prefix)

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def version(self) -> int:
        return self._version

    @staticmethod
    def generate_cache_name(
        name: str = DEFAULT_CACHE_NAME,
        prefix: str = DEFAULT_CACHE_PREFIX,
        version: int = DEFAULT_CACHE_VERSION,
    ) -> str:
        """Build ``<prefix>_<base>_<version>`` from a bare or full name."""
        base = HttpCacheStorage.base_name(name) or DEFAULT_CACHE_NAME
        return f"{prefix.replace('_', '') or DEFAULT_CACHE_PREFIX}_{base}_{max(1, version)}"

    @staticmethod
    def base_name(name: str) -> str:
        match = _CACHE_NAME.fullmatch(name.strip())
        return match["base"] if match else name.strip().strip("_")

    def calculate_cache_name(self, name: str) -> str:
        """Full name for ``name``; bare names get this storage's prefix and version."""
        match = _CACHE_NAME.fullmatch(name.strip())
        if match:
            return self.generate_cache_name(
                match["base"], match["prefix"], int(match["version"])
            )
        return self.generate_cache_name(name, self._prefix, self._version)

    def is_owned_cache(self, name: str) -> bool:
        match = _CACHE_NAME.fullmatch(self.calculate_cache_name(name))
        return match is not None and match["prefix"] == self._prefix

    def is_prior_version(self, name: str) -> bool:
        match = _CACHE_NAME.fullmatch(self.calculate_cache_name(name))
        return match is not None and int(match["version"]) < self._version

    async def open(self, name: str = DEFAULT_CACHE_NAME) -> HttpCache:
        """Return the cache called ``name``, creating it when missing."""
        full_name = self.calculate_cache_name(name)
        cache = self._caches.get(full_name)
        if cache is None:
            cache = HttpCache(self._fetcher, full_name)
            self._caches[full_name] = cache
            self._log.debug("cache_opened", cache=full_name)
        return cache

    async def has(self, name: str) -> bool:
        return self.calculate_cache_name(name) in self._caches

    async def delete(self, name: str) -> bool:
        """Delete an owned cache; caches with another prefix are left alone."""
        full_name = self.calculate_cache_name(name)
        if not self.is_owned_cache(full_name) or full_name not in self._caches:
            return False
        del self._caches[full_name]
        self._log.info("cache_removed", cache=full_name)
        return True

    async def keys(self) -> list[str]:
        return list(self._caches)

    async def match(self, request: Any) -> ResponseData | None:
        """First ok response for ``request`` across all caches, in open order."""
        for cache in self._caches.values():
            found = await cache.match(request)
            if found is not None:
                return found
        return None

    async def remove_obsolete_caches(self) -> list[str]:
        """Delete owned caches from prior versions.

        Entries for ``preserve_keys`` are copied into the current version
        of the same base name before the old cache is deleted. Base names
        in ``preserve_caches`` are kept as they are.

        Returns:
            Full names of the removed caches.
        """
        removed: list[str] = []
        for name in await self.keys():
            if not (self.is_owned_cache(name) and self.is_prior_version(name)):
                continue
            base = self.base_name(name)
            if base in self._preserve_caches:
                continue
            if self._preserve_keys:
                await self._copy_preserved(self._caches[name], await self.open(base))
            if await self.delete(name):
                removed.append(name)
        if removed:
            self._log.info("obsolete_caches_removed", caches=removed)
        return removed

    async def _copy_preserved(self, source: HttpCache, target: HttpCache) -> None:
        for key in self._preserve_keys:
            if key in target:
                continue
            found = await source.match(key)
            if found is not None:
                await target.put(key, found)
