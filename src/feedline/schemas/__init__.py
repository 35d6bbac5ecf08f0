"""Pydantic schemas shared by the API and the client layer."""

from feedline.schemas.engagement import (
    RepostRequest,
    ToggleResponse,
    VoteRequest,
    VoteStats,
    agreement_percentage,
)
from feedline.schemas.feed import FeedPage
from feedline.schemas.notification import NotificationList, NotificationOut
from feedline.schemas.poll import PollOptionResult, PollResults, PollVoteRequest
from feedline.schemas.post import PollCreate, PostCreate, PostSummary

__all__ = [
    "FeedPage",
    "NotificationList",
    "NotificationOut",
    "PollCreate",
    "PollOptionResult",
    "PollResults",
    "PollVoteRequest",
    "PostCreate",
    "PostSummary",
    "RepostRequest",
    "ToggleResponse",
    "VoteRequest",
    "VoteStats",
    "agreement_percentage",
]
