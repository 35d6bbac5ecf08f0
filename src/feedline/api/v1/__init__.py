"""Version 1 API endpoints."""

from .endpoints import (
    engagement_router,
    feed_router,
    notifications_router,
    posts_router,
)

__all__ = [
    "engagement_router",
    "feed_router",
    "notifications_router",
    "posts_router",
]
