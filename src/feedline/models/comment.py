"""SQLAlchemy model for comments on posts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedline.db.session import Base
from feedline.db.time import utcnow
from feedline.models.relation import ID_LENGTH


class Comment(Base):
    """A comment on a post, optionally replying to another comment."""

    __tablename__ = "comment"
    __table_args__ = (
        CheckConstraint("agreement_count >= 0", name="ck_comment_agreement_count"),
        CheckConstraint("disagreement_count >= 0", name="ck_comment_disagreement_count"),
        Index("ix_comment_post_created", "post_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    post_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    author_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    parent_comment_id: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    agreement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disagreement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
