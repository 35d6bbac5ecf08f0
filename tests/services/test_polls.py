"""Tests for poll voting."""

from datetime import timedelta

import pytest

from feedline.core.errors import (
    InvalidArgumentError,
    PollAlreadyVotedError,
    PollClosedError,
    TargetNotFoundError,
    UnauthenticatedError,
)
from feedline.db.time import utcnow
from feedline.models import Poll, PollVote
from feedline.services.polls import PollService


@pytest.fixture()
def polls(store) -> PollService:
    return PollService(store)


@pytest.mark.asyncio
async def test_votes_keep_total_equal_to_option_sum(seed, polls) -> None:
    seed.post("p1")
    seed.poll("p1", ["red", "green", "blue"])

    await polls.vote("p1", 0, "alice")
    await polls.vote("p1", 2, "bob")
    results = await polls.vote("p1", 2, "carol")

    assert [option.votes for option in results.options] == [1, 0, 2]
    assert results.total_votes == sum(option.votes for option in results.options) == 3
    assert results.user_choice == 2
    assert seed.get(PollVote, "carol:p1").option_position == 2


@pytest.mark.asyncio
async def test_second_vote_is_rejected(seed, polls) -> None:
    seed.post("p1")
    seed.poll("p1", ["yes", "no"])
    await polls.vote("p1", 0, "alice")

    with pytest.raises(PollAlreadyVotedError):
        await polls.vote("p1", 1, "alice")

    results = await polls.get_results("p1", "alice")
    assert [option.votes for option in results.options] == [1, 0]
    assert results.user_choice == 0


@pytest.mark.asyncio
async def test_closed_poll(seed, polls) -> None:
    seed.post("p1")
    seed.poll("p1", ["yes", "no"], ends_at=utcnow() - timedelta(minutes=1))

    with pytest.raises(PollClosedError):
        await polls.vote("p1", 0, "alice")

    results = await polls.get_results("p1")
    assert results.closed is True
    assert seed.get(Poll, "p1").total_votes == 0


@pytest.mark.asyncio
async def test_option_out_of_range(seed, polls) -> None:
    seed.post("p1")
    seed.poll("p1", ["yes", "no"])

    with pytest.raises(InvalidArgumentError):
        await polls.vote("p1", 2, "alice")


@pytest.mark.asyncio
async def test_vote_needs_a_poll_and_a_voter(seed, polls) -> None:
    seed.post("p1")

    with pytest.raises(TargetNotFoundError):
        await polls.vote("p1", 0, "alice")
    with pytest.raises(UnauthenticatedError):
        await polls.vote("p1", 0, None)
