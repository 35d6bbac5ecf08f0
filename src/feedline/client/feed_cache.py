"""Per-scope feed cache with stale-while-revalidate.

Each scope key (``all``, ``community:<id>``, ``user:<id>``) has at most one
entry holding every page loaded so far. A fresh entry is served without
touching the store. A stale entry is served immediately while a single
background task per scope fetches page one and replaces the entry. Pages
loaded with :meth:`FeedCache.get_next_page` are appended to the entry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from feedline.core.errors import EngagementError, FeedUnavailableError
from feedline.core.settings import settings
from feedline.db.time import utcnow
from feedline.schemas.feed import FeedPage
from feedline.schemas.post import PostSummary
from feedline.services.feed import FeedService, FetchedPage, parse_scope

logger = logging.getLogger(__name__)


@dataclass
class FeedEntry:
    scope: str
    items: list[PostSummary]
    cursor: str | None
    has_more: bool
    fetched_at: datetime
    # Clock reading used for TTL checks.
    loaded_at: float
    generation: int
    seen_ids: set[str] = field(default_factory=set)

    def page(self, *, stale: bool = False) -> FeedPage:
        return FeedPage(
            scope=self.scope,
            items=list(self.items),
            cursor=self.cursor,
            has_more=self.has_more,
            fetched_at=self.fetched_at,
            stale=stale,
        )


class FeedCache:
    """Feed pages keyed by scope, owned by the app state."""

    def __init__(
        self,
        service: FeedService,
        *,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service = service
        self.ttl = settings.feed_cache_ttl_seconds if ttl is None else ttl
        self._clock = clock
        self._entries: dict[str, FeedEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._revalidations: dict[str, asyncio.Task[None]] = {}
        self._generation = 0

    def _is_fresh(self, entry: FeedEntry) -> bool:
        return self._clock() - entry.loaded_at < self.ttl

    def _lock(self, scope: str) -> asyncio.Lock:
        return self._locks.setdefault(scope, asyncio.Lock())

    def _store_first_page(self, scope: str, fetched: FetchedPage) -> FeedEntry:
        self._generation += 1
        entry = FeedEntry(
            scope=scope,
            items=list(fetched.items),
            cursor=fetched.cursor,
            has_more=fetched.has_more,
            fetched_at=fetched.fetched_at,
            loaded_at=self._clock(),
            generation=self._generation,
            seen_ids={item.id for item in fetched.items},
        )
        self._entries[scope] = entry
        return entry

    def is_revalidating(self, scope_key: str) -> bool:
        task = self._revalidations.get(parse_scope(scope_key).key)
        return task is not None and not task.done()

    def items(self, scope_key: str) -> list[PostSummary]:
        """Return every item loaded so far for ``scope_key``."""
        entry = self._entries.get(parse_scope(scope_key).key)
        return list(entry.items) if entry else []

    async def get_page(self, scope_key: str, force_refresh: bool = False) -> FeedPage:
        """Return the cached feed for ``scope_key``, fetching page one if needed.

        Raises:
            FeedUnavailableError: If the fetch fails and nothing is cached.
        """
        scope = parse_scope(scope_key).key
        entry = self._entries.get(scope)
        if entry is not None and not force_refresh:
            if self._is_fresh(entry):
                return entry.page()
            self._schedule_revalidation(scope)
            return entry.page(stale=True)

        async with self._lock(scope):
            entry = self._entries.get(scope)
            # Another caller may have loaded it while we waited.
            if entry is not None and not force_refresh and self._is_fresh(entry):
                return entry.page()
            try:
                fetched = await self.service.fetch_page(scope)
            except EngagementError as err:
                if entry is not None:
                    logger.warning("Serving cached %s feed after failed fetch: %s", scope, err)
                    return entry.page(stale=True)
                logger.error("Feed %s unavailable: %s", scope, err)
                raise FeedUnavailableError(f"Could not load feed {scope!r}") from err
            return self._store_first_page(scope, fetched).page()

    async def refresh(self, scope_key: str) -> FeedPage:
        """Pull-to-refresh: refetch page one only and replace the entry."""
        scope = parse_scope(scope_key).key
        task = self._revalidations.pop(scope, None)
        if task is not None and not task.done():
            task.cancel()
        return await self.get_page(scope, force_refresh=True)

    async def get_next_page(self, scope_key: str) -> FeedPage:
        """Fetch the page after the scope's cursor and append it to the entry.

        The returned page holds only the newly loaded items. Without a cursor
        the page is empty and ``has_more`` is False.
        """
        scope = parse_scope(scope_key).key
        async with self._lock(scope):
            entry = self._entries.get(scope)
            if entry is None or entry.cursor is None or not entry.has_more:
                return FeedPage(scope=scope, items=[], fetched_at=utcnow())
            generation = entry.generation
            try:
                fetched = await self.service.fetch_page(scope, cursor=entry.cursor)
            except EngagementError as err:
                logger.warning("Could not load next page of %s: %s", scope, err)
                return FeedPage(
                    scope=scope,
                    items=[],
                    cursor=entry.cursor,
                    has_more=entry.has_more,
                    fetched_at=entry.fetched_at,
                    stale=True,
                )

            current = self._entries.get(scope)
            if current is None or current.generation != generation:
                logger.debug("Discarding next page of %s; entry was replaced", scope)
                if current is None:
                    return FeedPage(scope=scope, items=[], fetched_at=utcnow())
                return FeedPage(
                    scope=scope,
                    items=[],
                    cursor=current.cursor,
                    has_more=current.has_more,
                    fetched_at=current.fetched_at,
                )

            new_items = [item for item in fetched.items if item.id not in current.seen_ids]
            current.items.extend(new_items)
            current.seen_ids.update(item.id for item in new_items)
            current.cursor = fetched.cursor
            current.has_more = fetched.has_more
            return FeedPage(
                scope=scope,
                items=new_items,
                cursor=fetched.cursor,
                has_more=fetched.has_more,
                fetched_at=fetched.fetched_at,
            )

    def _schedule_revalidation(self, scope: str) -> None:
        task = self._revalidations.get(scope)
        if task is not None and not task.done():
            return
        self._revalidations[scope] = asyncio.create_task(self._revalidate(scope))

    async def _revalidate(self, scope: str) -> None:
        entry = self._entries.get(scope)
        generation = entry.generation if entry else None
        try:
            fetched = await self.service.fetch_page(scope)
        except EngagementError as err:
            logger.warning("Background refresh of %s failed; keeping cached page: %s", scope, err)
            return
        finally:
            if self._revalidations.get(scope) is asyncio.current_task():
                del self._revalidations[scope]
        current = self._entries.get(scope)
        if current is None or current.generation != generation:
            # Invalidated or refreshed while this fetch was running.
            return
        self._store_first_page(scope, fetched)
        logger.debug("Revalidated feed %s", scope)

    def invalidate(self, scope_key: str | None = None) -> None:
        """Drop one scope's entry, or every entry."""
        scopes = list(self._entries) if scope_key is None else [parse_scope(scope_key).key]
        for scope in scopes:
            self._entries.pop(scope, None)
            task = self._revalidations.pop(scope, None)
            if task is not None and not task.done():
                task.cancel()

    async def drain(self) -> None:
        """Wait for every background revalidation to finish."""
        tasks = [task for task in self._revalidations.values() if not task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._revalidations.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._revalidations.clear()
        self._entries.clear()
        self._locks.clear()
