"""Best-effort engagement notifications.

Toggles emit :class:`NotificationEvent` values after their batch commits.
The :class:`NotificationDispatcher` consumes them in the background and hands
them to :class:`NotificationService`, which resolves the recipient and writes
or removes the notification record. Nothing on this path can fail a toggle:
delivery errors are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from feedline.core.errors import EngagementError
from feedline.core.settings import settings
from feedline.db.store import RelationStore
from feedline.db.time import utcnow
from feedline.models import Notification, NotificationType, Post, RelationKind

logger = logging.getLogger(__name__)

_NOTIFYING_KINDS: dict[RelationKind, NotificationType] = {
    RelationKind.LIKE: NotificationType.LIKE,
    RelationKind.FOLLOW: NotificationType.FOLLOW,
    RelationKind.REPOST: NotificationType.REPOST,
}


class NotificationAction(str, Enum):
    CREATE = "create"
    DELETE = "delete"


@dataclass(frozen=True)
class NotificationEvent:
    """A relation transition that may notify the target's owner."""

    action: NotificationAction
    kind: RelationKind
    actor_id: str
    target_id: str


def notification_type_for(kind: RelationKind) -> NotificationType | None:
    """Return the notification type emitted by ``kind``, if any."""
    return _NOTIFYING_KINDS.get(kind)


class NotificationService:
    """Writes notification records for engagement events."""

    def __init__(self, store: RelationStore) -> None:
        self.store = store

    async def handle(self, event: NotificationEvent) -> None:
        """Create or delete the notification described by ``event``."""
        notification_type = notification_type_for(event.kind)
        if notification_type is None:
            return
        recipient_id, post_id = await self._resolve_recipient(event)
        if recipient_id is None:
            logger.debug("No recipient for %s on %s", event.kind.value, event.target_id)
            return
        if recipient_id == event.actor_id:
            return
        if event.action is NotificationAction.CREATE:
            await self.create(notification_type, recipient_id, event.actor_id, post_id)
        else:
            await self.delete(notification_type, recipient_id, event.actor_id, post_id)

    async def _resolve_recipient(self, event: NotificationEvent) -> tuple[str | None, str | None]:
        if event.kind is RelationKind.FOLLOW:
            return event.target_id, None
        post = await self.store.get(Post, event.target_id)
        if post is None:
            return None, None
        return post.author_id, post.id

    async def create(
        self,
        notification_type: NotificationType,
        recipient_id: str,
        sender_id: str,
        post_id: str | None = None,
    ) -> str | None:
        """Insert a notification unless sender and recipient are the same user."""
        if sender_id == recipient_id:
            return None
        notification_id = uuid.uuid4().hex
        batch = self.store.batch()
        batch.create(
            Notification,
            id=notification_id,
            type=notification_type,
            recipient_id=recipient_id,
            sender_id=sender_id,
            post_id=post_id,
            read=False,
            created_at=utcnow(),
        )
        await batch.commit()
        logger.info("Created %s notification for %s", notification_type.value, recipient_id)
        return notification_id

    async def delete(
        self,
        notification_type: NotificationType,
        recipient_id: str,
        sender_id: str,
        post_id: str | None = None,
    ) -> int:
        """Delete matching notifications. Returns how many were removed."""
        where: dict[str, Any] = {
            "recipient_id": recipient_id,
            "sender_id": sender_id,
            "type": notification_type,
        }
        if post_id is not None:
            where["post_id"] = post_id
        rows = await self.store.query(Notification, where=where)
        if not rows:
            return 0
        batch = self.store.batch()
        for row in rows:
            batch.delete(Notification, row.id, must_exist=False)
        await batch.commit()
        logger.info("Deleted %d %s notifications for %s", len(rows), notification_type.value, recipient_id)
        return len(rows)

    async def list_for(self, recipient_id: str, limit: int = 20) -> list[Notification]:
        """Return a recipient's notifications newest first."""
        return await self.store.query(
            Notification,
            where={"recipient_id": recipient_id},
            order_by="created_at",
            limit=limit,
        )

    async def unread_count(self, recipient_id: str) -> int:
        return await self.store.count(
            Notification, where={"recipient_id": recipient_id, "read": False}
        )

    async def mark_read(self, notification_id: str) -> None:
        batch = self.store.batch()
        batch.update(Notification, notification_id, read=True)
        await batch.commit()


class NotificationDispatcher:
    """Background consumer of notification events.

    ``emit`` never blocks and never raises. Events are delivered in order by a
    single worker task started with :meth:`start`.
    """

    def __init__(
        self,
        service: NotificationService,
        *,
        enabled: bool | None = None,
        maxsize: int | None = None,
    ) -> None:
        self.service = service
        self.enabled = settings.notifications_enabled if enabled is None else enabled
        self._maxsize = settings.notification_queue_size if maxsize is None else maxsize
        self._queue: asyncio.Queue[NotificationEvent | None] | None = None
        self._task: asyncio.Task[None] | None = None
        self.delivered = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _ensure_queue(self) -> asyncio.Queue[NotificationEvent | None]:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._maxsize)
        return self._queue

    async def start(self) -> None:
        """Start the background delivery loop."""
        if not self.enabled:
            return
        if self._task is None or self._task.done():
            self._ensure_queue()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Deliver queued events, then stop the loop."""
        if self._task is None:
            return
        await self._ensure_queue().put(None)
        await self._task
        self._task = None

    def emit(self, event: NotificationEvent) -> None:
        """Queue ``event`` for delivery; drops it if the queue is full."""
        if not self.enabled:
            return
        try:
            self._ensure_queue().put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Notification queue full; dropping %s", event)

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def _run(self) -> None:
        queue = self._ensure_queue()
        while True:
            event = await queue.get()
            try:
                if event is None:
                    return
                await self._deliver(event)
            finally:
                queue.task_done()

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            await self.service.handle(event)
        except EngagementError as err:
            self.failed += 1
            logger.warning("Failed to deliver %s notification: %s", event.kind.value, err)
        except Exception as err:  # noqa: BLE001
            self.failed += 1
            logger.error("Unexpected error delivering %s: %s", event, err, exc_info=True)
        else:
            self.delivered += 1
