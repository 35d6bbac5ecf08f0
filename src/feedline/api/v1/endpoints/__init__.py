"""API endpoint modules for version 1."""

from .engagement import router as engagement_router
from .feed import router as feed_router
from .notifications import router as notifications_router
from .posts import router as posts_router

__all__ = [
    "engagement_router",
    "feed_router",
    "notifications_router",
    "posts_router",
]
