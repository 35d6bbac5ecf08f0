# src/feedline/models/relation.py
"""Composite-key join tables recording one actor's relation to one target."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from feedline.db.session import Base
from feedline.db.time import utcnow

ID_LENGTH = 128


class RelationKind(str, Enum):
    """Relation namespaces. Each one lives in its own table."""

    LIKE = "like"
    FOLLOW = "follow"
    VOTE = "vote"
    COMMENT_VOTE = "comment_vote"
    MEMBERSHIP = "membership"
    REPOST = "repost"


class VoteType(str, Enum):
    """Agree/disagree stance stored on vote relations."""

    AGREE = "agree"
    DISAGREE = "disagree"

    @property
    def opposite(self) -> VoteType:
        return VoteType.DISAGREE if self is VoteType.AGREE else VoteType.AGREE


def vote_type_column() -> Any:
    """Column type storing :class:`VoteType` by value."""
    return SAEnum(
        VoteType,
        native_enum=False,
        length=16,
        values_callable=lambda members: [member.value for member in members],
    )


class RelationMixin:
    """Shared columns for every join table.

    ``id`` is the deterministic composite key so existence checks are a
    single primary-key lookup. The unique constraint keeps one row per
    (actor, target) pair even if two keys were ever derived differently.
    """

    id: Mapped[str] = mapped_column(String(2 * ID_LENGTH + 16), primary_key=True)
    actor_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    target_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        name = cls.__tablename__  # type: ignore[attr-defined]
        return (
            UniqueConstraint("actor_id", "target_id", name=f"uq_{name}_actor_target"),
            Index(f"ix_{name}_target_created", "target_id", "created_at"),
            Index(f"ix_{name}_actor_created", "actor_id", "created_at"),
        )


class PostLike(RelationMixin, Base):
    """A user's like on a post."""

    __tablename__ = "post_like"


class Follow(RelationMixin, Base):
    """A directed follow edge from ``actor_id`` to ``target_id``."""

    __tablename__ = "follow"


class PostVote(RelationMixin, Base):
    """Agree/disagree vote on a post. The type is mutated in place on change."""

    __tablename__ = "post_vote"

    vote_type: Mapped[VoteType] = mapped_column(vote_type_column(), nullable=False)


class CommentVote(RelationMixin, Base):
    """Agree/disagree vote on a comment."""

    __tablename__ = "comment_vote"

    vote_type: Mapped[VoteType] = mapped_column(vote_type_column(), nullable=False)


class PostRepost(RelationMixin, Base):
    """A user's repost of a post; points at the repost post created with it."""

    __tablename__ = "post_repost"

    repost_post_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
