# src/feedline/models/user.py
"""SQLAlchemy model for public user profiles."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedline.db.session import Base
from feedline.db.time import utcnow
from feedline.models.relation import ID_LENGTH


class UserProfile(Base):
    """Public profile keyed by the identity provider's stable user id."""

    __tablename__ = "user_profile"
    __table_args__ = (
        CheckConstraint("followers_count >= 0", name="ck_user_followers_count"),
        CheckConstraint("following_count >= 0", name="ck_user_following_count"),
        CheckConstraint("posts_count >= 0", name="ck_user_posts_count"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")

    followers_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    following_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    posts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
