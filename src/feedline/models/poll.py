"""SQLAlchemy models for single-choice polls attached to posts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedline.db.session import Base
from feedline.models.relation import ID_LENGTH, RelationMixin


class Poll(Base):
    """Poll header. ``total_votes`` always equals the sum of option votes."""

    __tablename__ = "poll"
    __table_args__ = (CheckConstraint("total_votes >= 0", name="ck_poll_total_votes"),)

    post_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PollOption(Base):
    """One choice of a poll, keyed ``{post_id}:{position}``."""

    __tablename__ = "poll_option"
    __table_args__ = (
        CheckConstraint("votes >= 0", name="ck_poll_option_votes"),
        Index("ix_poll_option_post_position", "post_id", "position"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH + 16), primary_key=True)
    post_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PollVote(RelationMixin, Base):
    """Voter set membership: one row per (voter, poll) holding the chosen option."""

    __tablename__ = "poll_vote"

    option_position: Mapped[int] = mapped_column(Integer, nullable=False)
