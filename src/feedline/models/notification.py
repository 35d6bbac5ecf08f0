"""SQLAlchemy model for in-app notification records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from feedline.db.session import Base
from feedline.db.time import utcnow
from feedline.models.relation import ID_LENGTH


class NotificationType(str, Enum):
    """Kinds of engagement that notify the target's owner."""

    LIKE = "like"
    FOLLOW = "follow"
    REPOST = "repost"


class Notification(Base):
    """Notification for ``recipient_id`` caused by ``sender_id``."""

    __tablename__ = "notification"
    __table_args__ = (
        Index("ix_notification_recipient_created", "recipient_id", "created_at"),
        Index("ix_notification_recipient_read", "recipient_id", "read"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(
            NotificationType,
            native_enum=False,
            length=16,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
    )
    recipient_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    # Post the notification refers to; follow notifications have none.
    post_id: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
