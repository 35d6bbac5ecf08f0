"""User-visible, non-fatal notices raised by the client layer."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from feedline.db.time import utcnow

logger = logging.getLogger(__name__)


class NoticeKind(str, Enum):
    SIGN_IN_REQUIRED = "sign_in_required"
    ACTION_FAILED = "action_failed"
    FEED_UNAVAILABLE = "feed_unavailable"


@dataclass(frozen=True)
class Notice:
    """A transient message for the user; ``retryable`` offers a retry action."""

    kind: NoticeKind
    message: str
    key: str | None = None
    retryable: bool = False
    created_at: datetime = field(default_factory=utcnow)


NoticeListener = Callable[[Notice], None]


class NoticeBoard:
    """Bounded, in-order collection of pending notices."""

    def __init__(self, maxlen: int = 50) -> None:
        self._notices: deque[Notice] = deque(maxlen=maxlen)
        self._listeners: list[NoticeListener] = []

    def __len__(self) -> int:
        return len(self._notices)

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def latest(self) -> Notice | None:
        return self._notices[-1] if self._notices else None

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        """Call ``listener`` for every new notice; returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def post(self, notice: Notice) -> Notice:
        self._notices.append(notice)
        logger.info("Notice %s: %s", notice.kind.value, notice.message)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:  # noqa: BLE001
                logger.exception("Notice listener failed")
        return notice

    def dismiss(self, notice: Notice) -> None:
        if notice in self._notices:
            self._notices.remove(notice)

    def clear(self) -> None:
        self._notices.clear()
