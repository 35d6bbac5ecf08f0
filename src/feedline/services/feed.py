"""Cursor-paginated post feeds.

Feeds are ordered by ``(created_at, id)`` descending. A cursor is the
base64url-encoded JSON of the last item's ``[created_at, id]`` and continues
strictly after that item, so consecutive pages never overlap.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from feedline.core.errors import InvalidArgumentError, MissingIndexError
from feedline.core.settings import settings
from feedline.db.store import RelationStore
from feedline.db.time import as_utc, utcnow
from feedline.models import Post
from feedline.schemas.post import PostSummary
from feedline.services.relations import validate_identifier

logger = logging.getLogger(__name__)

ScopeKind = Literal["all", "community", "user"]

ALL_SCOPE = "all"
_SCOPE_COLUMNS: dict[str, str] = {"community": "community_id", "user": "author_id"}


@dataclass(frozen=True)
class FeedScope:
    """A feed selector: every post, one community, or one author."""

    kind: ScopeKind
    value: str | None = None

    @property
    def key(self) -> str:
        return ALL_SCOPE if self.kind == "all" else f"{self.kind}:{self.value}"

    def where(self) -> dict[str, Any]:
        if self.kind == "all":
            return {}
        return {_SCOPE_COLUMNS[self.kind]: self.value}


def parse_scope(scope_key: str | None) -> FeedScope:
    """Parse ``all``, ``community:<id>``, ``user:<id>`` or a bare community id."""
    if scope_key is None or not scope_key.strip():
        raise InvalidArgumentError("Feed scope is required")
    scope_key = scope_key.strip()
    if scope_key == ALL_SCOPE:
        return FeedScope("all")
    kind, sep, value = scope_key.partition(":")
    if not sep:
        return FeedScope("community", validate_identifier(scope_key, "community_id"))
    if kind not in _SCOPE_COLUMNS:
        raise InvalidArgumentError(f"Unknown feed scope: {scope_key!r}")
    return FeedScope(kind, validate_identifier(value, f"{kind}_id"))  # type: ignore[arg-type]


def encode_cursor(created_at: datetime, post_id: str) -> str:
    payload = json.dumps([as_utc(created_at).isoformat(), post_id], separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Return the ``(created_at, id)`` position encoded in ``cursor``."""
    padding = "=" * (-len(cursor) % 4)
    try:
        created_raw, post_id = json.loads(base64.urlsafe_b64decode(cursor + padding))
        created_at = as_utc(datetime.fromisoformat(created_raw))
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError) as err:
        raise InvalidArgumentError("Malformed feed cursor") from err
    if not isinstance(post_id, str) or not post_id:
        raise InvalidArgumentError("Malformed feed cursor")
    return created_at, post_id


@dataclass
class FetchedPage:
    """Raw result of one page query."""

    scope: FeedScope
    items: list[PostSummary]
    cursor: str | None
    has_more: bool
    fetched_at: datetime = field(default_factory=utcnow)
    used_fallback: bool = False


class FeedService:
    """Queries feed pages from the store."""

    def __init__(
        self,
        store: RelationStore,
        *,
        page_size: int | None = None,
        max_page_size: int | None = None,
    ) -> None:
        self.store = store
        self.page_size = page_size or settings.feed_page_size
        self.max_page_size = max_page_size or settings.feed_max_page_size

    def _page_size(self, limit: int | None) -> int:
        if limit is None:
            return self.page_size
        if limit < 1:
            raise InvalidArgumentError("limit must be positive")
        return min(limit, self.max_page_size)

    async def fetch_page(
        self,
        scope_key: str,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> FetchedPage:
        """Return one page of ``scope_key`` continuing after ``cursor``.

        ``has_more`` is False once a page comes back shorter than the page
        size; the cursor is None in that case.
        """
        scope = parse_scope(scope_key)
        size = self._page_size(limit)
        start_after = decode_cursor(cursor) if cursor else None

        used_fallback = False
        try:
            rows = await self.store.query(
                Post,
                where=scope.where(),
                order_by="created_at",
                limit=size,
                start_after=start_after,
            )
        except MissingIndexError as err:
            logger.warning(
                "Feed %s has no usable index (%s); scanning and sorting in memory",
                scope.key,
                err,
            )
            rows = await self._scan(scope, size, start_after)
            used_fallback = True

        items = [PostSummary.model_validate(row) for row in rows]
        has_more = len(items) == size
        next_cursor = encode_cursor(items[-1].created_at, items[-1].id) if has_more else None
        logger.debug("Fetched %d posts for %s (more=%s)", len(items), scope.key, has_more)
        return FetchedPage(scope, items, next_cursor, has_more, used_fallback=used_fallback)

    async def _scan(
        self,
        scope: FeedScope,
        size: int,
        start_after: tuple[datetime, str] | None,
    ) -> list[Post]:
        rows = await self.store.query(Post)
        wanted = scope.where()
        matching = [
            row for row in rows if all(getattr(row, name) == value for name, value in wanted.items())
        ]
        matching.sort(key=lambda row: (as_utc(row.created_at), row.id), reverse=True)
        if start_after is not None:
            matching = [row for row in matching if (as_utc(row.created_at), row.id) < start_after]
        return matching[:size]
