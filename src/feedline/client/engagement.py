"""UI-facing engagement controller.

Holds the local view of every relation the UI shows (liked or not, and the
displayed counter) and routes toggles through the optimistic coordinator.
Nothing raised by the toggle engine escapes this module: failures become
rollbacks and notices, invalid requests become logged no-ops.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import Any

from feedline.client.notices import Notice, NoticeBoard, NoticeKind
from feedline.client.optimistic import (
    InFlightPolicy,
    OptimisticCoordinator,
    OptimisticOutcome,
    OutcomeStatus,
)
from feedline.core.errors import (
    InvalidArgumentError,
    InvalidSelfReferenceError,
    UnauthenticatedError,
)
from feedline.models import RelationKind, VoteType
from feedline.schemas.engagement import agreement_percentage
from feedline.schemas.post import PostSummary
from feedline.services.relations import composite_key, get_spec
from feedline.services.toggles import ToggleEngine

logger = logging.getLogger(__name__)

ActorProvider = Callable[[], str | None]
ViewKey = tuple[RelationKind, str]


@dataclass(frozen=True)
class RelationView:
    """Local state of an on/off relation and the counter shown next to it."""

    active: bool = False
    count: int = 0

    def toggled(self) -> RelationView:
        delta = -1 if self.active else 1
        return RelationView(active=not self.active, count=max(0, self.count + delta))


@dataclass(frozen=True)
class VoteView:
    """Local state of the actor's vote and the displayed aggregate."""

    vote: VoteType | None = None
    agreement_count: int = 0
    disagreement_count: int = 0

    @property
    def total_votes(self) -> int:
        return self.agreement_count + self.disagreement_count

    @property
    def agreement_percentage(self) -> int:
        return agreement_percentage(self.agreement_count, self.disagreement_count)

    def _moved(self, vote_type: VoteType, delta: int) -> VoteView:
        if vote_type is VoteType.AGREE:
            return replace(self, agreement_count=max(0, self.agreement_count + delta))
        return replace(self, disagreement_count=max(0, self.disagreement_count + delta))

    def toggled(self, vote_type: VoteType) -> VoteView:
        """Return the view after voting ``vote_type`` from the current state."""
        if self.vote is vote_type:
            return replace(self._moved(vote_type, -1), vote=None)
        view = self
        if self.vote is not None:
            view = view._moved(self.vote, -1)
        return replace(view._moved(vote_type, 1), vote=vote_type)


View = RelationView | VoteView


class EngagementController:
    """Optimistic toggles over local views, keyed by ``(kind, target_id)``."""

    def __init__(
        self,
        engine: ToggleEngine,
        coordinator: OptimisticCoordinator,
        notices: NoticeBoard,
        actor: ActorProvider,
    ) -> None:
        self.engine = engine
        self.coordinator = coordinator
        self.notices = notices
        self._actor = actor
        self._views: dict[ViewKey, View] = {}

    # --- Views ---------------------------------------------------------------------
    def view(self, kind: RelationKind, target_id: str) -> View | None:
        return self._views.get((RelationKind(kind), target_id))

    def _get(self, key: ViewKey) -> View:
        view = self._views.get(key)
        if view is None:
            view = VoteView() if get_spec(key[0]).is_vote else RelationView()
        return view

    def _set(self, key: ViewKey, view: View) -> None:
        self._views[key] = view

    def reset(self) -> None:
        """Forget every local view, e.g. after an identity switch."""
        self._views.clear()

    def is_toggling(self, kind: RelationKind, target_id: str) -> bool:
        return self.coordinator.is_toggling((RelationKind(kind), target_id))

    def can_toggle(self, kind: RelationKind, target_id: str) -> bool:
        """Return False when the toggle would be refused, so the UI can disable it."""
        actor = self._actor()
        if actor is None or not target_id:
            return False
        if not get_spec(kind).allow_self and actor == target_id:
            return False
        if self.coordinator.policy is InFlightPolicy.REJECT:
            return not self.is_toggling(kind, target_id)
        return True

    # --- Loading -------------------------------------------------------------------
    async def load_relation(
        self,
        kind: RelationKind,
        target_id: str,
        count: int | None = None,
    ) -> RelationView:
        """Load the actor's on/off state for ``target_id`` and its displayed counter."""
        spec = get_spec(kind)
        if spec.is_vote:
            raise InvalidArgumentError("Use load_vote for vote relations")
        if count is None:
            count = await self._target_counter(spec.kind, target_id, spec.counters[0].column)
        actor = self._actor()
        active = False
        if actor is not None:
            active = await self.engine.relations.has_relation(actor, target_id, spec.kind)
        view = RelationView(active=active, count=count)
        self._set((spec.kind, target_id), view)
        return view

    async def load_vote(
        self,
        target_id: str,
        kind: RelationKind = RelationKind.VOTE,
        *,
        agreement_count: int | None = None,
        disagreement_count: int | None = None,
    ) -> VoteView:
        """Load the actor's vote on ``target_id`` and its aggregate."""
        spec = get_spec(kind)
        if not spec.is_vote:
            raise InvalidArgumentError("load_vote only handles vote relations")
        if agreement_count is None or disagreement_count is None:
            target = await self.engine.store.get(spec.target_model, target_id)
            agreement_count = getattr(target, "agreement_count", 0) if target else 0
            disagreement_count = getattr(target, "disagreement_count", 0) if target else 0
        actor = self._actor()
        vote = None
        if actor is not None:
            vote = await self.engine.relations.get_vote(actor, target_id, spec.kind)
        view = VoteView(vote, agreement_count, disagreement_count)
        self._set((spec.kind, target_id), view)
        return view

    async def load_posts(self, posts: Iterable[PostSummary]) -> None:
        """Load like, repost and vote views for a page of posts in three reads."""
        posts = list(posts)
        if not posts:
            return
        actor = self._actor()
        post_ids = [post.id for post in posts]
        liked: dict[str, bool] = dict.fromkeys(post_ids, False)
        reposted: dict[str, bool] = dict.fromkeys(post_ids, False)
        votes: dict[str, VoteType] = {}
        if actor is not None:
            relations = self.engine.relations
            liked = await relations.has_relations(actor, post_ids, RelationKind.LIKE)
            reposted = await relations.has_relations(actor, post_ids, RelationKind.REPOST)
            vote_keys = {composite_key(RelationKind.VOTE, actor, pid): pid for pid in post_ids}
            vote_model = get_spec(RelationKind.VOTE).model
            rows = await self.engine.store.get_many(vote_model, vote_keys)
            votes = {vote_keys[key]: VoteType(row.vote_type) for key, row in rows.items()}
        for post in posts:
            self._set((RelationKind.LIKE, post.id), RelationView(liked[post.id], post.likes_count))
            self._set(
                (RelationKind.REPOST, post.id),
                RelationView(reposted[post.id], post.reposts_count),
            )
            self._set(
                (RelationKind.VOTE, post.id),
                VoteView(votes.get(post.id), post.agreement_count, post.disagreement_count),
            )

    async def _target_counter(self, kind: RelationKind, target_id: str, column: str) -> int:
        target = await self.engine.store.get(get_spec(kind).target_model, target_id)
        return int(getattr(target, column, 0)) if target is not None else 0

    # --- Toggles -------------------------------------------------------------------
    async def toggle_like(self, post_id: str) -> OptimisticOutcome[Any]:
        return await self._toggle(RelationKind.LIKE, post_id)

    async def toggle_follow(self, user_id: str) -> OptimisticOutcome[Any]:
        return await self._toggle(RelationKind.FOLLOW, user_id)

    async def toggle_membership(self, community_id: str) -> OptimisticOutcome[Any]:
        return await self._toggle(RelationKind.MEMBERSHIP, community_id)

    async def toggle_repost(self, post_id: str, comment: str | None = None) -> OptimisticOutcome[Any]:
        return await self._toggle(RelationKind.REPOST, post_id, comment=comment)

    async def toggle_vote(self, post_id: str, vote_type: VoteType | str) -> OptimisticOutcome[Any]:
        return await self._toggle(RelationKind.VOTE, post_id, vote_type)

    async def toggle_comment_vote(
        self,
        comment_id: str,
        vote_type: VoteType | str,
    ) -> OptimisticOutcome[Any]:
        return await self._toggle(RelationKind.COMMENT_VOTE, comment_id, vote_type)

    async def _toggle(
        self,
        kind: RelationKind,
        target_id: str,
        vote_type: VoteType | str | None = None,
        *,
        comment: str | None = None,
    ) -> OptimisticOutcome[Any]:
        key: ViewKey = (kind, target_id)
        actor = self._actor()
        try:
            _, _, _, vote = self.engine.validate(actor, target_id, kind, vote_type)
        except UnauthenticatedError:
            self.notices.post(
                Notice(NoticeKind.SIGN_IN_REQUIRED, "Sign in to continue", key=str(key))
            )
            return OptimisticOutcome(key, OutcomeStatus.UNAUTHENTICATED, self._views.get(key))
        except InvalidSelfReferenceError as err:
            logger.debug("Blocked %s on %s: %s", kind.value, target_id, err)
            return OptimisticOutcome(key, OutcomeStatus.BLOCKED, self._views.get(key), error=err)
        except InvalidArgumentError as err:
            return OptimisticOutcome(key, OutcomeStatus.IGNORED, self._views.get(key), error=err)

        def transform(view: View) -> View:
            if isinstance(view, VoteView):
                if vote is None:
                    raise InvalidArgumentError(f"{kind.value} toggles need a vote type")
                return view.toggled(vote)
            return view.toggled()

        async def commit() -> Any:
            return await self.engine.toggle(actor, target_id, kind, vote, comment=comment)

        return await self.coordinator.apply_optimistic(
            key,
            get_state=lambda: self._get(key),
            set_state=lambda view: self._set(key, view),
            transform=transform,
            commit=commit,
            failure_message=f"Couldn't update your {kind.value.replace('_', ' ')}. Try again.",
        )
