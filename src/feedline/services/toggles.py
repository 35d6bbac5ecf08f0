"""Toggle state machines on top of the relation service.

Like, follow, membership and repost toggle between inactive and active.
Votes move between none, agree and disagree. The stored state is read
before every decision, so calling ``toggle`` twice always flips twice.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from feedline.core.errors import (
    DocumentNotFoundError,
    InvalidArgumentError,
    InvalidSelfReferenceError,
    TargetNotFoundError,
    UnauthenticatedError,
)
from feedline.db.store import WriteBatch
from feedline.db.time import utcnow
from feedline.models import Post, RelationKind, VoteType
from feedline.schemas.engagement import VoteStats
from feedline.services.notifications import (
    NotificationAction,
    NotificationDispatcher,
    NotificationEvent,
    notification_type_for,
)
from feedline.services.relations import RelationService, get_spec, validate_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of one toggle.

    ``active`` is the stored state after the toggle; ``vote`` is the actor's
    vote afterwards for vote kinds (None otherwise or when removed).
    ``changed`` is False when the store was already in the resulting state.
    """

    kind: RelationKind
    target_id: str
    active: bool
    vote: VoteType | None = None
    changed: bool = True


class ToggleEngine:
    """Idempotent relation toggles with notification side effects."""

    def __init__(
        self,
        relations: RelationService,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self.relations = relations
        self.store = relations.store
        self.notifier = notifier

    def validate(
        self,
        actor_id: str | None,
        target_id: str | None,
        kind: RelationKind | str,
        vote_type: VoteType | str | None = None,
    ) -> tuple[str, str, RelationKind, VoteType | None]:
        """Check a toggle request before any I/O and return normalized arguments.

        Raises:
            UnauthenticatedError: If there is no actor.
            InvalidArgumentError: For missing identifiers or a bad kind/vote type.
            InvalidSelfReferenceError: For self-follow and similar requests.
        """
        if actor_id is None:
            raise UnauthenticatedError("Sign in to continue")
        spec = get_spec(kind)
        try:
            actor = validate_identifier(actor_id, "actor_id")
            target = validate_identifier(target_id, "target_id")
        except InvalidArgumentError as err:
            logger.warning("Rejected %s toggle: %s", spec.kind.value, err)
            raise

        vote: VoteType | None = None
        if spec.is_vote:
            if vote_type is None:
                logger.warning("Rejected %s toggle without a vote type", spec.kind.value)
                raise InvalidArgumentError(f"{spec.kind.value} toggles need a vote type")
            try:
                vote = VoteType(vote_type)
            except ValueError as err:
                raise InvalidArgumentError(f"Unknown vote type: {vote_type!r}") from err
        elif vote_type is not None:
            raise InvalidArgumentError(f"{spec.kind.value} toggles take no vote type")

        if not spec.allow_self and actor == target:
            raise InvalidSelfReferenceError(f"Cannot {spec.kind.value} yourself")
        return actor, target, spec.kind, vote

    async def toggle(
        self,
        actor_id: str | None,
        target_id: str | None,
        kind: RelationKind | str,
        vote_type: VoteType | str | None = None,
        *,
        comment: str | None = None,
    ) -> ToggleResult:
        """Flip the stored relation state and return the new state."""
        actor, target, relation_kind, vote = self.validate(actor_id, target_id, kind, vote_type)
        if vote is not None:
            return await self._toggle_vote(actor, target, relation_kind, vote)

        existing = await self.relations.get_relation(actor, target, relation_kind)
        if existing is None:
            changed = await self._activate(actor, target, relation_kind, comment)
            if changed:
                self._notify(NotificationAction.CREATE, relation_kind, actor, target)
            return ToggleResult(relation_kind, target, active=True, changed=changed)

        changed = await self._deactivate(actor, target, relation_kind)
        if changed:
            self._notify(NotificationAction.DELETE, relation_kind, actor, target)
        return ToggleResult(relation_kind, target, active=False, changed=changed)

    async def set_active(
        self,
        actor_id: str | None,
        target_id: str | None,
        kind: RelationKind | str,
        active: bool,
    ) -> ToggleResult:
        """Drive a non-vote relation to ``active`` regardless of its current state."""
        actor, target, relation_kind, _ = self.validate(actor_id, target_id, kind)
        if get_spec(relation_kind).is_vote:
            raise InvalidArgumentError("Use vote toggles for vote relations")
        if active:
            changed = await self._activate(actor, target, relation_kind, None)
            action = NotificationAction.CREATE
        else:
            changed = await self._deactivate(actor, target, relation_kind)
            action = NotificationAction.DELETE
        if changed:
            self._notify(action, relation_kind, actor, target)
        return ToggleResult(relation_kind, target, active=active, changed=changed)

    async def _activate(
        self,
        actor: str,
        target: str,
        kind: RelationKind,
        comment: str | None,
    ) -> bool:
        if kind is not RelationKind.REPOST:
            return await self.relations.set_relation(actor, target, kind)

        original = await self.store.get(Post, target)
        if original is None:
            raise TargetNotFoundError(f"Post {target!r} does not exist")
        if original.is_repost:
            raise InvalidArgumentError("Reposts cannot be reposted")
        repost_id = uuid.uuid4().hex
        text = comment.strip() if isinstance(comment, str) and comment.strip() else None

        def add_repost_post(batch: WriteBatch, _existing: Any) -> None:
            batch.create(
                Post,
                id=repost_id,
                author_id=actor,
                community_id=original.community_id,
                content="",
                hashtags=[],
                is_repost=True,
                original_post_id=target,
                repost_comment=text,
                created_at=utcnow(),
            )

        return await self.relations.set_relation(
            actor,
            target,
            kind,
            values={"repost_post_id": repost_id},
            extra=add_repost_post,
        )

    async def _deactivate(self, actor: str, target: str, kind: RelationKind) -> bool:
        extra = None
        if kind is RelationKind.REPOST:

            def remove_repost_post(batch: WriteBatch, existing: Any) -> None:
                batch.delete(Post, existing.repost_post_id, must_exist=False)

            extra = remove_repost_post
        return await self.relations.clear_relation(actor, target, kind, extra=extra)

    async def _toggle_vote(
        self,
        actor: str,
        target: str,
        kind: RelationKind,
        vote: VoteType,
    ) -> ToggleResult:
        current = await self.relations.get_vote(actor, target, kind)
        if current is None:
            changed = await self.relations.set_relation(actor, target, kind, vote_type=vote)
            if not changed:
                # Someone else's write landed first; report what is stored now.
                stored = await self.relations.get_vote(actor, target, kind)
                return ToggleResult(kind, target, stored is not None, stored, changed=False)
            return ToggleResult(kind, target, active=True, vote=vote)
        if current is vote:
            changed = await self.relations.clear_relation(actor, target, kind)
            return ToggleResult(kind, target, active=False, vote=None, changed=changed)
        try:
            changed = await self.relations.change_vote(actor, target, vote, kind)
        except DocumentNotFoundError:
            # Removed between read and switch; cast it fresh.
            changed = await self.relations.set_relation(actor, target, kind, vote_type=vote)
        return ToggleResult(kind, target, active=True, vote=vote, changed=changed)

    def _notify(
        self,
        action: NotificationAction,
        kind: RelationKind,
        actor: str,
        target: str,
    ) -> None:
        if self.notifier is None or notification_type_for(kind) is None:
            return
        try:
            self.notifier.emit(NotificationEvent(action, kind, actor, target))
        except Exception as err:  # noqa: BLE001
            logger.warning("Could not emit %s notification: %s", kind.value, err)

    async def get_vote_stats(self, post_id: str, actor_id: str | None = None) -> VoteStats:
        """Return the agree/disagree aggregate of a post and the actor's vote."""
        target = validate_identifier(post_id, "post_id")
        post = await self.store.get(Post, target)
        if post is None:
            raise TargetNotFoundError(f"Post {target!r} does not exist")
        user_vote = None
        if actor_id:
            user_vote = await self.relations.get_vote(actor_id, target, RelationKind.VOTE)
        return VoteStats(
            agreement_count=post.agreement_count,
            disagreement_count=post.disagreement_count,
            user_vote=user_vote,
        )
