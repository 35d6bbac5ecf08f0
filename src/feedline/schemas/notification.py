"""Notification schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from feedline.models import NotificationType


class NotificationOut(BaseModel):
    id: str
    type: NotificationType
    recipient_id: str
    sender_id: str
    post_id: str | None = None
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    items: list[NotificationOut]
    unread_count: int
