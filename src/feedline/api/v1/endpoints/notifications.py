"""Notification endpoints."""

from fastapi import APIRouter, HTTPException, Query, Response, status

from feedline.api.v1.dependencies import CurrentActorDep, NotificationServiceDep, StoreDep
from feedline.models import Notification
from feedline.schemas.notification import NotificationList, NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
async def list_notifications(
    actor_id: CurrentActorDep,
    notifications: NotificationServiceDep,
    limit: int = Query(20, ge=1, le=100),
) -> NotificationList:
    """Return the caller's notifications, newest first."""
    rows = await notifications.list_for(actor_id, limit)
    unread = await notifications.unread_count(actor_id)
    return NotificationList(
        items=[NotificationOut.model_validate(row) for row in rows],
        unread_count=unread,
    )


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notification_read(
    notification_id: str,
    actor_id: CurrentActorDep,
    notifications: NotificationServiceDep,
    store: StoreDep,
) -> Response:
    notification = await store.get(Notification, notification_id)
    if notification is None or notification.recipient_id != actor_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    await notifications.mark_read(notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
