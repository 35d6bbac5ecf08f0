"""Tests for optimistic updates and rollback."""

import asyncio

import pytest

from feedline.client.notices import NoticeKind
from feedline.client.optimistic import InFlightPolicy, OptimisticCoordinator, OutcomeStatus
from feedline.core.errors import (
    InvalidSelfReferenceError,
    StoreUnavailableError,
    ToggleInFlightError,
)


class Holder:
    def __init__(self, value):
        self.value = value

    def get(self):
        return self.value

    def set(self, value):
        self.value = value


@pytest.mark.asyncio
async def test_commit_keeps_optimistic_state(notices) -> None:
    coordinator = OptimisticCoordinator(notices, policy="queue")
    holder = Holder({"liked": False, "count": 5})

    async def commit():
        assert holder.value == {"liked": True, "count": 6}
        return "ok"

    outcome = await coordinator.apply_optimistic(
        "like:p1",
        get_state=holder.get,
        set_state=holder.set,
        transform=lambda state: {"liked": True, "count": state["count"] + 1},
        commit=commit,
    )

    assert outcome.committed
    assert outcome.result == "ok"
    assert holder.value == {"liked": True, "count": 6}
    assert len(notices) == 0
    assert coordinator.is_toggling("like:p1") is False


@pytest.mark.asyncio
async def test_failure_restores_the_exact_snapshot(notices) -> None:
    coordinator = OptimisticCoordinator(notices, policy="queue")
    before = {"liked": False, "count": 5}
    holder = Holder(before)

    async def commit():
        raise StoreUnavailableError("offline")

    outcome = await coordinator.apply_optimistic(
        "like:p1",
        get_state=holder.get,
        set_state=holder.set,
        transform=lambda state: {"liked": True, "count": 6},
        commit=commit,
        failure_message="Couldn't like",
    )

    assert outcome.status is OutcomeStatus.ROLLED_BACK
    assert holder.value is before
    notice = notices.latest()
    assert notice.kind is NoticeKind.ACTION_FAILED
    assert notice.message == "Couldn't like"
    assert notice.retryable is True


@pytest.mark.asyncio
async def test_non_retryable_failure(notices) -> None:
    coordinator = OptimisticCoordinator(notices, policy="queue")
    holder = Holder(0)

    async def commit():
        raise InvalidSelfReferenceError("nope")

    await coordinator.apply_optimistic(
        "k", get_state=holder.get, set_state=holder.set, transform=lambda s: s + 1, commit=commit
    )

    assert holder.value == 0
    assert notices.latest().retryable is False


@pytest.mark.asyncio
async def test_unexpected_errors_roll_back_and_propagate(notices) -> None:
    coordinator = OptimisticCoordinator(notices, policy="queue")
    holder = Holder(0)

    async def commit():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await coordinator.apply_optimistic(
            "k", get_state=holder.get, set_state=holder.set, transform=lambda s: s + 1, commit=commit
        )

    assert holder.value == 0
    assert coordinator.is_toggling("k") is False


@pytest.mark.asyncio
async def test_reject_policy_drops_overlapping_requests(notices) -> None:
    coordinator = OptimisticCoordinator(notices, policy=InFlightPolicy.REJECT)
    holder = Holder(0)
    release = asyncio.Event()

    async def slow_commit():
        await release.wait()

    first = asyncio.create_task(
        coordinator.apply_optimistic(
            "k", get_state=holder.get, set_state=holder.set, transform=lambda s: s + 1, commit=slow_commit
        )
    )
    await asyncio.sleep(0)
    assert coordinator.is_toggling("k") is True

    second = await coordinator.apply_optimistic(
        "k", get_state=holder.get, set_state=holder.set, transform=lambda s: s + 1, commit=slow_commit
    )
    release.set()
    first_outcome = await first

    assert second.status is OutcomeStatus.REJECTED
    assert isinstance(second.error, ToggleInFlightError)
    assert second.error.retryable is True
    assert first_outcome.committed
    assert holder.value == 1


@pytest.mark.asyncio
async def test_queue_policy_runs_requests_in_order(notices) -> None:
    coordinator = OptimisticCoordinator(notices, policy=InFlightPolicy.QUEUE)
    holder = Holder(False)
    seen: list[bool] = []

    async def commit():
        seen.append(holder.value)
        await asyncio.sleep(0)

    outcomes = await asyncio.gather(
        *(
            coordinator.apply_optimistic(
                "k", get_state=holder.get, set_state=holder.set, transform=lambda s: not s, commit=commit
            )
            for _ in range(3)
        )
    )

    assert all(outcome.committed for outcome in outcomes)
    assert seen == [True, False, True]
    assert holder.value is True
