"""Client-side state: optimistic toggles, feed and entity caches."""

from feedline.client.app_state import AppState
from feedline.client.cache import EntityCache
from feedline.client.engagement import EngagementController, RelationView, VoteView
from feedline.client.feed_cache import FeedCache
from feedline.client.notices import Notice, NoticeBoard, NoticeKind
from feedline.client.optimistic import (
    InFlightPolicy,
    OptimisticCoordinator,
    OptimisticOutcome,
    OutcomeStatus,
)

__all__ = [
    "AppState",
    "EngagementController",
    "EntityCache",
    "FeedCache",
    "InFlightPolicy",
    "Notice",
    "NoticeBoard",
    "NoticeKind",
    "OptimisticCoordinator",
    "OptimisticOutcome",
    "OutcomeStatus",
    "RelationView",
    "VoteView",
]
