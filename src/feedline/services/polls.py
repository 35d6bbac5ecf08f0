"""Single-choice polls attached to posts.

A vote writes the voter's row, the chosen option's ``votes`` and the poll's
``total_votes`` in one batch, so the total always equals the option sum.
The voter row is keyed by (voter, poll), which makes a second vote on the
same poll collide instead of counting twice.
"""

from __future__ import annotations

import logging

from feedline.core.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    InvalidArgumentError,
    PollAlreadyVotedError,
    PollClosedError,
    TargetNotFoundError,
    UnauthenticatedError,
)
from feedline.db.store import RelationStore
from feedline.db.time import as_utc, utcnow
from feedline.models import Poll, PollOption, PollVote
from feedline.schemas.poll import PollOptionResult, PollResults
from feedline.services.posts import poll_option_key
from feedline.services.relations import KEY_SEPARATOR, validate_identifier

logger = logging.getLogger(__name__)


def poll_vote_key(voter_id: str, post_id: str) -> str:
    return f"{voter_id}{KEY_SEPARATOR}{post_id}"


def is_closed(poll: Poll) -> bool:
    return poll.ends_at is not None and as_utc(poll.ends_at) <= utcnow()


class PollService:
    def __init__(self, store: RelationStore) -> None:
        self.store = store

    async def _load(self, post_id: str) -> tuple[Poll, list[PollOption]]:
        poll = await self.store.get(Poll, post_id)
        if poll is None:
            raise TargetNotFoundError(f"Post {post_id!r} has no poll")
        options = await self.store.query(
            PollOption,
            where={"post_id": post_id},
            order_by="position",
            descending=False,
        )
        return poll, options

    async def vote(self, post_id: str, option_index: int, voter_id: str | None) -> PollResults:
        """Record ``voter_id``'s choice and return the updated tally.

        Raises:
            PollClosedError: If the poll has ended.
            PollAlreadyVotedError: If the voter already chose an option.
            InvalidArgumentError: If ``option_index`` is out of range.
        """
        if voter_id is None:
            raise UnauthenticatedError("Sign in to vote")
        voter = validate_identifier(voter_id, "voter_id")
        target = validate_identifier(post_id, "post_id")
        poll, options = await self._load(target)
        if is_closed(poll):
            raise PollClosedError("This poll has ended")
        if not 0 <= option_index < len(options):
            raise InvalidArgumentError(f"Option {option_index} does not exist")

        key = poll_vote_key(voter, target)
        if await self.store.get(PollVote, key) is not None:
            raise PollAlreadyVotedError("You already voted in this poll")

        batch = self.store.batch()
        batch.create(
            PollVote,
            id=key,
            actor_id=voter,
            target_id=target,
            option_position=option_index,
            created_at=utcnow(),
        )
        batch.increment(PollOption, poll_option_key(target, option_index), "votes", 1)
        batch.increment(Poll, target, "total_votes", 1)
        try:
            await batch.commit()
        except DocumentExistsError as err:
            raise PollAlreadyVotedError("You already voted in this poll") from err
        except DocumentNotFoundError as err:
            raise TargetNotFoundError(str(err)) from err
        logger.info("Recorded poll vote %s on option %d", key, option_index)
        return await self.get_results(target, voter)

    async def get_results(self, post_id: str, voter_id: str | None = None) -> PollResults:
        """Return the tally and, when ``voter_id`` is given, that voter's choice."""
        target = validate_identifier(post_id, "post_id")
        poll, options = await self._load(target)
        user_choice = None
        if voter_id:
            vote = await self.store.get(PollVote, poll_vote_key(voter_id, target))
            user_choice = None if vote is None else vote.option_position
        return PollResults(
            post_id=target,
            options=[PollOptionResult.model_validate(option) for option in options],
            total_votes=poll.total_votes,
            ends_at=None if poll.ends_at is None else as_utc(poll.ends_at),
            closed=is_closed(poll),
            user_choice=user_choice,
        )
