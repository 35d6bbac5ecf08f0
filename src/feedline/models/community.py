"""SQLAlchemy models for communities and their membership join table."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedline.db.session import Base
from feedline.db.time import utcnow
from feedline.models.relation import ID_LENGTH, RelationMixin


class Community(Base):
    """Community metadata used for grouping posts and members."""

    __tablename__ = "community"
    __table_args__ = (
        CheckConstraint("member_count >= 0", name="ck_community_member_count"),
        CheckConstraint("post_count >= 0", name="ck_community_post_count"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    slug: Mapped[str] = mapped_column(String(ID_LENGTH), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # "active" communities are listed; anything else is hidden.
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    is_official: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    post_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )


class CommunityMember(RelationMixin, Base):
    """Join table mapping users into communities."""

    __tablename__ = "community_member"
