"""Engagement, feed and content services."""

from feedline.services.feed import FeedService, FetchedPage, parse_scope
from feedline.services.notifications import NotificationDispatcher, NotificationService
from feedline.services.polls import PollService
from feedline.services.posts import PostService
from feedline.services.relations import RelationService, composite_key
from feedline.services.toggles import ToggleEngine, ToggleResult

__all__ = [
    "FeedService",
    "FetchedPage",
    "NotificationDispatcher",
    "NotificationService",
    "PollService",
    "PostService",
    "RelationService",
    "ToggleEngine",
    "ToggleResult",
    "composite_key",
    "parse_scope",
]
