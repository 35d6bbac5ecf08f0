"""TTL cache for profile and community lookups."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

from feedline.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    value: Any
    stored_at: float


class EntityCache:
    """Namespaced key/value cache whose entries expire after ``ttl`` seconds.

    Missing values (``None``) are not cached, so a lookup of an entity that
    does not exist yet is retried on the next call.
    """

    def __init__(
        self,
        ttl: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = settings.entity_cache_ttl_seconds if ttl is None else ttl
        self._clock = clock
        self._slots: dict[tuple[str, Hashable], _Slot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, namespace: str, key: Hashable) -> Any | None:
        slot = self._slots.get((namespace, key))
        if slot is None:
            return None
        if self._clock() - slot.stored_at >= self.ttl:
            del self._slots[(namespace, key)]
            return None
        return slot.value

    def set(self, namespace: str, key: Hashable, value: Any) -> None:
        self._slots[(namespace, key)] = _Slot(value, self._clock())

    async def get_or_load(
        self,
        namespace: str,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any | None:
        """Return the cached value or await ``loader`` and cache its result."""
        cached = self.get(namespace, key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            self.set(namespace, key, value)
        return value

    def invalidate(self, namespace: str | None = None, key: Hashable | None = None) -> None:
        """Drop one entry, one namespace, or everything."""
        if namespace is None:
            self._slots.clear()
        elif key is not None:
            self._slots.pop((namespace, key), None)
        else:
            for slot_key in [k for k in self._slots if k[0] == namespace]:
                del self._slots[slot_key]
        logger.debug("Invalidated entity cache (%s, %s)", namespace, key)

    def clear(self) -> None:
        self._slots.clear()
