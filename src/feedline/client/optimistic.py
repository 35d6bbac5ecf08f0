"""Optimistic local updates with snapshot rollback.

:meth:`OptimisticCoordinator.apply_optimistic` takes a snapshot of local
state, applies the intended change immediately, then awaits the remote
commit. If the commit fails the snapshot is restored exactly and a
retryable notice is posted. Requests on the same key never overlap: they
are either queued behind the in-flight one or rejected, depending on the
policy.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from feedline.client.notices import Notice, NoticeBoard, NoticeKind
from feedline.core.errors import EngagementError, ToggleInFlightError
from feedline.core.settings import settings

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT")


class InFlightPolicy(str, Enum):
    QUEUE = "queue"
    REJECT = "reject"


class OutcomeStatus(str, Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    # Dropped because another request on the same key was in flight.
    REJECTED = "rejected"
    # Refused before any local change: signed out, self-reference or bad input.
    UNAUTHENTICATED = "unauthenticated"
    BLOCKED = "blocked"
    IGNORED = "ignored"


@dataclass(frozen=True)
class OptimisticOutcome(Generic[StateT]):
    """What happened to one optimistic request and the local state afterwards."""

    key: Hashable
    status: OutcomeStatus
    state: StateT | None
    result: Any = None
    error: EngagementError | None = None

    @property
    def committed(self) -> bool:
        return self.status is OutcomeStatus.COMMITTED


class OptimisticCoordinator:
    """Runs optimistic updates with a per-key in-flight guard."""

    def __init__(
        self,
        notices: NoticeBoard,
        *,
        policy: InFlightPolicy | str | None = None,
    ) -> None:
        self.notices = notices
        self.policy = InFlightPolicy(policy or settings.toggle_inflight_policy)
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._pending: dict[Hashable, int] = {}

    def is_toggling(self, key: Hashable) -> bool:
        """Return True while a request on ``key`` is running or queued."""
        return self._pending.get(key, 0) > 0

    async def apply_optimistic(
        self,
        key: Hashable,
        *,
        get_state: Callable[[], StateT],
        set_state: Callable[[StateT], None],
        transform: Callable[[StateT], StateT],
        commit: Callable[[], Awaitable[Any]],
        failure_message: str = "Something went wrong. Try again.",
    ) -> OptimisticOutcome[StateT]:
        """Apply ``transform`` locally, then ``commit`` remotely, rolling back on failure.

        Args:
            key: Identity of the thing being changed, e.g. ``("like", post_id)``.
            get_state: Returns the current local state; its value is the rollback snapshot.
            set_state: Replaces the local state.
            transform: Computes the optimistic state from the snapshot.
            commit: Performs the remote write.
            failure_message: Text of the notice posted after a rollback.
        """
        if self.policy is InFlightPolicy.REJECT and self.is_toggling(key):
            logger.debug("Ignoring request on %s while one is in flight", key)
            return OptimisticOutcome(
                key,
                OutcomeStatus.REJECTED,
                get_state(),
                error=ToggleInFlightError(f"A request on {key} is already in flight"),
            )

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._pending[key] = self._pending.get(key, 0) + 1
        try:
            async with lock:
                snapshot = get_state()
                set_state(transform(snapshot))
                try:
                    result = await commit()
                except EngagementError as err:
                    set_state(snapshot)
                    logger.warning("Rolled back %s after failure: %s", key, err)
                    self.notices.post(
                        Notice(
                            NoticeKind.ACTION_FAILED,
                            failure_message,
                            key=str(key),
                            retryable=err.retryable,
                        )
                    )
                    return OptimisticOutcome(
                        key, OutcomeStatus.ROLLED_BACK, snapshot, error=err
                    )
                except BaseException:
                    set_state(snapshot)
                    raise
                return OptimisticOutcome(key, OutcomeStatus.COMMITTED, get_state(), result)
        finally:
            self._pending[key] -= 1
            if self._pending[key] == 0:
                del self._pending[key]
                self._locks.pop(key, None)
