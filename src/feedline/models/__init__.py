"""SQLAlchemy models for the Feedline application."""

from .comment import Comment
from .community import Community, CommunityMember
from .notification import Notification, NotificationType
from .poll import Poll, PollOption, PollVote
from .post import Post
from .relation import (
    CommentVote,
    Follow,
    PostLike,
    PostRepost,
    PostVote,
    RelationKind,
    RelationMixin,
    VoteType,
)
from .user import UserProfile

__all__ = [
    "Comment",
    "Community", "CommunityMember",
    "Notification", "NotificationType",
    "Poll", "PollOption", "PollVote",
    "Post",
    "CommentVote", "Follow", "PostLike", "PostRepost", "PostVote",
    "RelationKind", "RelationMixin", "VoteType",
    "UserProfile",
]
