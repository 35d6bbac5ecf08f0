# src/feedline/models/post.py
"""SQLAlchemy models for posts and their denormalized counters."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedline.db.session import Base
from feedline.db.time import utcnow
from feedline.models.relation import ID_LENGTH


class Post(Base):
    """Primary content entity produced by users.

    Engagement counters are denormalized here and only ever changed by the
    write batches that also create or delete the matching relation rows.
    """

    __tablename__ = "post"
    __table_args__ = (
        CheckConstraint("likes_count >= 0", name="ck_post_likes_count"),
        CheckConstraint("agreement_count >= 0", name="ck_post_agreement_count"),
        CheckConstraint("disagreement_count >= 0", name="ck_post_disagreement_count"),
        CheckConstraint("reposts_count >= 0", name="ck_post_reposts_count"),
        CheckConstraint("comments_count >= 0", name="ck_post_comments_count"),
        Index("ix_post_created", "created_at"),
        Index("ix_post_community_created", "community_id", "created_at"),
        Index("ix_post_author_created", "author_id", "created_at"),
        Index("ix_post_original", "original_post_id"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    author_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    # None for posts outside any community.
    community_id: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    hashtags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Reposts reference the original instead of copying it.
    is_repost: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_post_id: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)
    repost_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    agreement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disagreement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reposts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
