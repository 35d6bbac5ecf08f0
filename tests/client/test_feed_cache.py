"""Tests for the stale-while-revalidate feed cache."""

import pytest

from feedline.client.feed_cache import FeedCache
from feedline.core.errors import FeedUnavailableError, StoreUnavailableError


@pytest.fixture()
def cache(feed_service, clock) -> FeedCache:
    return FeedCache(feed_service, ttl=60, clock=clock)


@pytest.mark.asyncio
async def test_fresh_entry_is_served_without_refetching(seed, cache, feed_service, mocker) -> None:
    seed.posts(3)
    spy = mocker.spy(feed_service, "fetch_page")

    first = await cache.get_page("all")
    second = await cache.get_page("all")

    assert spy.call_count == 1
    assert [item.id for item in second.items] == [item.id for item in first.items]
    assert second.stale is False


@pytest.mark.asyncio
async def test_stale_entry_is_served_then_revalidated(seed, cache, clock) -> None:
    seed.posts(3)
    await cache.get_page("all")
    seed.post("new")
    clock.advance(61)

    stale = await cache.get_page("all")
    assert stale.stale is True
    assert "new" not in [item.id for item in stale.items]
    assert cache.is_revalidating("all") is True

    await cache.drain()

    fresh = await cache.get_page("all")
    assert fresh.stale is False
    assert fresh.items[0].id == "new"
    assert cache.is_revalidating("all") is False


@pytest.mark.asyncio
async def test_one_revalidation_per_scope(seed, cache, clock, feed_service, mocker) -> None:
    seed.posts(2)
    await cache.get_page("all")
    clock.advance(61)
    spy = mocker.spy(feed_service, "fetch_page")

    await cache.get_page("all")
    await cache.get_page("all")
    await cache.drain()

    assert spy.call_count == 1


@pytest.mark.asyncio
async def test_next_page_without_entry_is_empty(cache) -> None:
    page = await cache.get_next_page("all")

    assert page.items == []
    assert page.has_more is False


@pytest.mark.asyncio
async def test_next_pages_append_until_exhausted(seed, cache) -> None:
    seed.posts(40)
    await cache.get_page("all")

    second = await cache.get_next_page("all")
    third = await cache.get_next_page("all")
    after_end = await cache.get_next_page("all")

    assert len(second.items) == 15
    assert len(third.items) == 10
    assert third.has_more is False
    assert after_end.items == []
    ids = [item.id for item in cache.items("all")]
    assert len(ids) == len(set(ids)) == 40


@pytest.mark.asyncio
async def test_refresh_replaces_all_loaded_pages(seed, cache) -> None:
    seed.posts(40)
    await cache.get_page("all")
    await cache.get_next_page("all")
    assert len(cache.items("all")) == 30

    page = await cache.refresh("all")

    assert len(page.items) == 15
    assert len(cache.items("all")) == 15


@pytest.mark.asyncio
async def test_next_page_is_discarded_when_entry_is_replaced(seed, cache, feed_service, mocker) -> None:
    seed.posts(40)
    await cache.get_page("all")
    original_fetch = feed_service.fetch_page

    async def fetch_and_invalidate(scope_key, cursor=None, limit=None):
        cache.invalidate("all")
        return await original_fetch(scope_key, cursor=cursor, limit=limit)

    mocker.patch.object(feed_service, "fetch_page", new=fetch_and_invalidate)

    page = await cache.get_next_page("all")

    assert page.items == []
    assert cache.items("all") == []


@pytest.mark.asyncio
async def test_first_load_failure_raises_feed_unavailable(cache, feed_service, mocker) -> None:
    mocker.patch.object(feed_service, "fetch_page", side_effect=StoreUnavailableError("offline"))

    with pytest.raises(FeedUnavailableError):
        await cache.get_page("all")


@pytest.mark.asyncio
async def test_failed_refresh_serves_cached_page(seed, cache, feed_service, mocker) -> None:
    seed.posts(3)
    await cache.get_page("all")
    mocker.patch.object(feed_service, "fetch_page", side_effect=StoreUnavailableError("offline"))

    page = await cache.refresh("all")

    assert page.stale is True
    assert len(page.items) == 3


@pytest.mark.asyncio
async def test_background_failure_keeps_the_entry(seed, cache, clock, feed_service, mocker) -> None:
    seed.posts(3)
    await cache.get_page("all")
    clock.advance(61)
    mocker.patch.object(feed_service, "fetch_page", side_effect=StoreUnavailableError("offline"))

    page = await cache.get_page("all")
    await cache.drain()

    assert page.stale is True
    assert len(cache.items("all")) == 3
    assert cache.is_revalidating("all") is False


@pytest.mark.asyncio
async def test_failed_next_page_keeps_cursor(seed, cache, feed_service, mocker) -> None:
    seed.posts(20)
    first = await cache.get_page("all")
    mocker.patch.object(feed_service, "fetch_page", side_effect=StoreUnavailableError("offline"))

    page = await cache.get_next_page("all")

    assert page.stale is True
    assert page.cursor == first.cursor
    assert page.has_more is True


@pytest.mark.asyncio
async def test_scopes_are_cached_separately(seed, cache) -> None:
    seed.post("a1", community_id="c1")
    seed.post("b1", community_id="c2")

    c1 = await cache.get_page("community:c1")
    c2 = await cache.get_page("c2")

    assert [item.id for item in c1.items] == ["a1"]
    assert [item.id for item in c2.items] == ["b1"]
    cache.invalidate("community:c1")
    assert cache.items("c1") == []
    assert [item.id for item in cache.items("community:c2")] == ["b1"]
