"""Tests for notification records and the background dispatcher."""

import pytest

from feedline.models import NotificationType, RelationKind
from feedline.services.notifications import (
    NotificationAction,
    NotificationDispatcher,
    NotificationEvent,
)


@pytest.mark.asyncio
async def test_create_list_and_mark_read(notification_service) -> None:
    first = await notification_service.create(NotificationType.LIKE, "bob", "alice", "p1")
    await notification_service.create(NotificationType.FOLLOW, "bob", "carol")

    assert await notification_service.unread_count("bob") == 2
    await notification_service.mark_read(first)

    assert await notification_service.unread_count("bob") == 1
    notes = await notification_service.list_for("bob")
    assert [note.type for note in notes] == [NotificationType.FOLLOW, NotificationType.LIKE]


@pytest.mark.asyncio
async def test_no_notification_to_yourself(notification_service) -> None:
    assert await notification_service.create(NotificationType.LIKE, "bob", "bob", "p1") is None
    assert await notification_service.list_for("bob") == []


@pytest.mark.asyncio
async def test_delete_matches_sender_and_post(notification_service) -> None:
    await notification_service.create(NotificationType.LIKE, "bob", "alice", "p1")
    await notification_service.create(NotificationType.LIKE, "bob", "alice", "p2")

    removed = await notification_service.delete(NotificationType.LIKE, "bob", "alice", "p1")

    assert removed == 1
    assert [note.post_id for note in await notification_service.list_for("bob")] == ["p2"]


@pytest.mark.asyncio
async def test_events_for_deleted_posts_are_skipped(notification_service) -> None:
    await notification_service.handle(
        NotificationEvent(NotificationAction.CREATE, RelationKind.LIKE, "alice", "ghost")
    )

    assert await notification_service.unread_count("ghost") == 0


def test_disabled_dispatcher_ignores_events(notification_service) -> None:
    dispatcher = NotificationDispatcher(notification_service, enabled=False)

    dispatcher.emit(NotificationEvent(NotificationAction.CREATE, RelationKind.LIKE, "a", "p1"))

    assert dispatcher.running is False
    assert dispatcher.delivered == 0


@pytest.mark.asyncio
async def test_full_queue_drops_events(notification_service) -> None:
    dispatcher = NotificationDispatcher(notification_service, enabled=True, maxsize=1)
    event = NotificationEvent(NotificationAction.CREATE, RelationKind.FOLLOW, "alice", "bob")

    dispatcher.emit(event)
    dispatcher.emit(event)
    await dispatcher.start()
    await dispatcher.drain()
    await dispatcher.stop()

    assert dispatcher.delivered == 1
    assert len(await notification_service.list_for("bob")) == 1


@pytest.mark.asyncio
async def test_delivery_errors_are_counted_not_raised(notification_service, mocker) -> None:
    mocker.patch.object(notification_service, "handle", side_effect=RuntimeError("boom"))
    dispatcher = NotificationDispatcher(notification_service, enabled=True)
    await dispatcher.start()

    dispatcher.emit(NotificationEvent(NotificationAction.CREATE, RelationKind.LIKE, "a", "p1"))
    await dispatcher.drain()
    await dispatcher.stop()

    assert dispatcher.failed == 1
    assert dispatcher.running is False
