"""Composition root for the client runtime.

``AppState`` builds every service and cache once and hands them to the
consumers that need them. Caches hold per-identity data, so signing out or
switching identity clears them.
"""

from __future__ import annotations

import logging

from feedline.client.cache import EntityCache
from feedline.client.engagement import EngagementController
from feedline.client.feed_cache import FeedCache
from feedline.client.notices import NoticeBoard
from feedline.client.optimistic import InFlightPolicy, OptimisticCoordinator
from feedline.db.store import RelationStore, get_store
from feedline.models import Community, UserProfile
from feedline.services.feed import FeedService
from feedline.services.notifications import NotificationDispatcher, NotificationService
from feedline.services.polls import PollService
from feedline.services.posts import PostService
from feedline.services.relations import RelationService, validate_identifier
from feedline.services.toggles import ToggleEngine

logger = logging.getLogger(__name__)

PROFILE_NAMESPACE = "profile"
COMMUNITY_NAMESPACE = "community"


class AppState:
    """Owns the store-backed services, caches and the signed-in identity."""

    def __init__(
        self,
        store: RelationStore | None = None,
        *,
        feed_ttl: float | None = None,
        entity_ttl: float | None = None,
        policy: InFlightPolicy | str | None = None,
        notifications_enabled: bool | None = None,
    ) -> None:
        self.store = store or get_store()
        self.actor_id: str | None = None

        self.relations = RelationService(self.store)
        self.notification_service = NotificationService(self.store)
        self.notifier = NotificationDispatcher(
            self.notification_service, enabled=notifications_enabled
        )
        self.toggles = ToggleEngine(self.relations, self.notifier)
        self.posts = PostService(self.store)
        self.polls = PollService(self.store)
        self.feed_service = FeedService(self.store)

        self.notices = NoticeBoard()
        self.entities = EntityCache(entity_ttl)
        self.feed_cache = FeedCache(self.feed_service, ttl=feed_ttl)
        self.coordinator = OptimisticCoordinator(self.notices, policy=policy)
        self.engagement = EngagementController(
            self.toggles, self.coordinator, self.notices, lambda: self.actor_id
        )

    @property
    def signed_in(self) -> bool:
        return self.actor_id is not None

    async def start(self) -> None:
        await self.notifier.start()

    async def close(self) -> None:
        await self.feed_cache.close()
        await self.notifier.stop()

    def sign_in(self, actor_id: str) -> None:
        """Adopt ``actor_id`` as the current identity, clearing caches on a switch."""
        actor = validate_identifier(actor_id, "actor_id")
        if self.actor_id is not None and self.actor_id != actor:
            self._clear_identity_state()
        self.actor_id = actor
        logger.info("Signed in as %s", actor)

    def sign_out(self) -> None:
        if self.actor_id is None:
            return
        logger.info("Signed out %s", self.actor_id)
        self._clear_identity_state()
        self.actor_id = None

    def _clear_identity_state(self) -> None:
        self.feed_cache.invalidate()
        self.entities.clear()
        self.engagement.reset()
        self.notices.clear()

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Return a user profile through the entity cache."""
        return await self.entities.get_or_load(
            PROFILE_NAMESPACE, user_id, lambda: self.store.get(UserProfile, user_id)
        )

    async def get_community(self, community_id: str) -> Community | None:
        """Return a community through the entity cache."""
        return await self.entities.get_or_load(
            COMMUNITY_NAMESPACE, community_id, lambda: self.store.get(Community, community_id)
        )
