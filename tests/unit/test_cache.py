"""Unit tests for request-keyed response caches."""

import pytest

from httpfacade.cache import HttpCache, HttpCacheStorage, cache_key
from httpfacade.response import ResponseData


URL = "https://api.example.com/items"
OTHER_URL = "https://api.example.com/other"


def _response(status: int = 200, data: object = None) -> ResponseData:
    return ResponseData.from_value(
        {"status": status, "headers": {"ETag": '"v1"'}, "data": data or {"a": 1}}
    )


class TestHttpCache:
    """Tests for HttpCache lookups and storage."""

    def test_key_is_method_and_url(self) -> None:
        """Test that requests are keyed by verb and URL."""
        assert cache_key(URL) == ("GET", URL)
        assert cache_key({"url": URL, "method": "post"}) == ("POST", URL)

    @pytest.mark.asyncio
    async def test_match_returns_independent_copies(self) -> None:
        """Test that each lookup yields a fresh copy with a readable body."""
        cache = HttpCache()
        await cache.put(URL, _response(data={"items": [1]}))

        first = await cache.match(URL)
        second = await cache.match({"url": URL})

        assert first is not None
        assert second is not None
        assert first is not second
        assert await first.json() == {"items": [1]}
        assert await second.json() == {"items": [1]}
        first.headers.set("X-Seen", "1")
        assert not second.headers.has("X-Seen")

    @pytest.mark.asyncio
    async def test_method_is_part_of_the_key(self) -> None:
        """Test that a POST entry does not answer a GET lookup."""
        cache = HttpCache()
        await cache.put({"url": URL, "method": "POST"}, _response())

        assert await cache.match(URL) is None
        assert await cache.match({"url": URL, "method": "POST"}) is not None

    @pytest.mark.asyncio
    async def test_non_ok_entries_do_not_match(self) -> None:
        """Test that stored error responses are never returned."""
        cache = HttpCache()
        await cache.put(URL, _response(404))
        await cache.put(OTHER_URL, _response())

        assert URL in cache
        assert await cache.match(URL) is None
        assert [r.status for r in await cache.match_all()] == [200]
        assert await cache.match_all(URL) == []

    @pytest.mark.asyncio
    async def test_delete_and_keys(self) -> None:
        """Test that delete reports removal and keys follow insertion order."""
        cache = HttpCache()
        await cache.put(URL, _response())
        await cache.put(OTHER_URL, _response())

        assert [r.url for r in await cache.keys()] == [URL, OTHER_URL]
        assert await cache.delete(URL) is True
        assert await cache.delete(URL) is False
        assert len(cache) == 1

    def test_unresolvable_value_is_not_contained(self) -> None:
        """Test that membership never raises."""
        assert None not in HttpCache()

    @pytest.mark.asyncio
    async def test_add_without_fetcher_raises(self) -> None:
        """Test that add needs a fetcher."""
        with pytest.raises(RuntimeError):
            await HttpCache().add(URL)


class TestHttpCacheStorage:
    """Tests for named, versioned caches."""

    def test_cache_names(self) -> None:
        """Test name generation and parsing."""
        storage = HttpCacheStorage(prefix="App_", version=3)

        assert HttpCacheStorage.generate_cache_name("Images", "App", 2) == "App_Images_2"
        assert storage.calculate_cache_name("Images") == "App_Images_3"
        assert storage.calculate_cache_name("App_Images_1") == "App_Images_1"
        assert HttpCacheStorage.base_name("App_Images_1") == "Images"
        assert storage.is_owned_cache("App_Images_1")
        assert not storage.is_owned_cache("Other_Images_1")
        assert storage.is_prior_version("App_Images_1")
        assert not storage.is_prior_version("Images")

    @pytest.mark.asyncio
    async def test_open_returns_the_same_cache(self) -> None:
        """Test that opening a name twice yields one cache."""
        storage = HttpCacheStorage(prefix="App")

        first = await storage.open("Images")
        second = await storage.open("App_Images_1")

        assert first is second
        assert await storage.has("Images")
        assert await storage.keys() == ["App_Images_1"]

    @pytest.mark.asyncio
    async def test_match_searches_every_cache(self) -> None:
        """Test that storage lookups fall through to later caches."""
        storage = HttpCacheStorage(prefix="App")
        await storage.open("Empty")
        images = await storage.open("Images")
        await images.put(URL, _response())

        found = await storage.match(URL)

        assert found is not None
        assert found.status == 200
        assert await storage.match(OTHER_URL) is None

    @pytest.mark.asyncio
    async def test_delete_only_owned_caches(self) -> None:
        """Test that delete leaves caches with another prefix alone."""
        storage = HttpCacheStorage(prefix="App")
        await storage.open("Other_Images_1")
        await storage.open("Images")

        assert await storage.delete("Other_Images_1") is False
        assert await storage.delete("Images") is True
        assert await storage.keys() == ["Other_Images_1"]

    @pytest.mark.asyncio
    async def test_remove_obsolete_caches(self) -> None:
        """Test that prior versions go, preserved names stay, keys are copied."""
        storage = HttpCacheStorage(
            prefix="App", version=2, preserve_caches=["Fonts"], preserve_keys=[URL]
        )
        old = await storage.open("App_Images_1")
        await old.put(URL, _response(data={"kept": True}))
        await old.put(OTHER_URL, _response())
        await storage.open("App_Fonts_1")
        await storage.open("Other_Images_1")

        removed = await storage.remove_obsolete_caches()

        assert removed == ["App_Images_1"]
        assert sorted(await storage.keys()) == [
            "App_Fonts_1",
            "App_Images_2",
            "Other_Images_1",
        ]
        current = await storage.open("Images")
        copied = await current.match(URL)
        assert copied is not None
        assert await copied.json() == {"kept": True}
        assert await current.match(OTHER_URL) is None
