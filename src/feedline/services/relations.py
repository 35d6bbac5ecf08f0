"""Composite-key join tables paired with their denormalized counters.

Every relation mutation is one atomic write batch: the join row and the
counter deltas it implies land together or not at all. Existence checks are
single primary-key reads against the composite key.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from feedline.core.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    InvalidArgumentError,
    PreconditionFailedError,
    TargetNotFoundError,
)
from feedline.db.store import RelationStore, WriteBatch
from feedline.db.time import utcnow
from feedline.models import (
    Comment,
    CommentVote,
    Community,
    CommunityMember,
    Follow,
    Post,
    PostLike,
    PostRepost,
    PostVote,
    RelationKind,
    UserProfile,
    VoteType,
)

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


@dataclass(frozen=True)
class CounterField:
    """A counter column that moves with a relation.

    ``owner`` says whose document holds the counter: the relation's target
    (e.g. a post's likes) or its actor (e.g. the follower's following count).
    """

    model: type[Any]
    column: str
    owner: Literal["target", "actor"] = "target"

    def key_for(self, actor_id: str, target_id: str) -> str:
        return target_id if self.owner == "target" else actor_id


@dataclass(frozen=True)
class RelationSpec:
    """Describes one relation namespace."""

    kind: RelationKind
    model: type[Any]
    target_model: type[Any]
    counters: tuple[CounterField, ...] = ()
    vote_counters: Mapping[VoteType, CounterField] = field(default_factory=dict)
    key_prefix: str = ""
    # Column on the target naming its owner; None means the target is the owner.
    owner_column: str | None = None
    allow_self: bool = True

    @property
    def is_vote(self) -> bool:
        return bool(self.vote_counters)


RELATION_SPECS: dict[RelationKind, RelationSpec] = {
    RelationKind.LIKE: RelationSpec(
        kind=RelationKind.LIKE,
        model=PostLike,
        target_model=Post,
        counters=(CounterField(Post, "likes_count"),),
        owner_column="author_id",
    ),
    RelationKind.FOLLOW: RelationSpec(
        kind=RelationKind.FOLLOW,
        model=Follow,
        target_model=UserProfile,
        counters=(
            CounterField(UserProfile, "followers_count"),
            CounterField(UserProfile, "following_count", owner="actor"),
        ),
        allow_self=False,
    ),
    RelationKind.VOTE: RelationSpec(
        kind=RelationKind.VOTE,
        model=PostVote,
        target_model=Post,
        vote_counters={
            VoteType.AGREE: CounterField(Post, "agreement_count"),
            VoteType.DISAGREE: CounterField(Post, "disagreement_count"),
        },
        owner_column="author_id",
    ),
    RelationKind.COMMENT_VOTE: RelationSpec(
        kind=RelationKind.COMMENT_VOTE,
        model=CommentVote,
        target_model=Comment,
        vote_counters={
            VoteType.AGREE: CounterField(Comment, "agreement_count"),
            VoteType.DISAGREE: CounterField(Comment, "disagreement_count"),
        },
        key_prefix="comment_",
        owner_column="author_id",
    ),
    RelationKind.MEMBERSHIP: RelationSpec(
        kind=RelationKind.MEMBERSHIP,
        model=CommunityMember,
        target_model=Community,
        counters=(CounterField(Community, "member_count"),),
    ),
    RelationKind.REPOST: RelationSpec(
        kind=RelationKind.REPOST,
        model=PostRepost,
        target_model=Post,
        counters=(CounterField(Post, "reposts_count"),),
        owner_column="author_id",
    ),
}

# Hook letting callers add writes to the same batch. Receives the existing
# relation row when clearing, None when setting.
BatchExtra = Callable[[WriteBatch, Any], None]


def get_spec(kind: RelationKind | str) -> RelationSpec:
    """Return the namespace description for ``kind``."""
    try:
        return RELATION_SPECS[RelationKind(kind)]
    except ValueError as err:
        raise InvalidArgumentError(f"Unknown relation kind: {kind!r}") from err


def validate_identifier(value: str | None, name: str) -> str:
    """Return ``value`` if it is usable inside a composite key."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{name} is required")
    if value != value.strip() or any(ch.isspace() for ch in value):
        raise InvalidArgumentError(f"{name} must not contain whitespace")
    if KEY_SEPARATOR in value:
        raise InvalidArgumentError(f"{name} must not contain {KEY_SEPARATOR!r}")
    return value


def composite_key(kind: RelationKind | str, actor_id: str, target_id: str) -> str:
    """Return the deterministic key of the (actor, target) relation in ``kind``."""
    spec = get_spec(kind)
    actor = validate_identifier(actor_id, "actor_id")
    target = validate_identifier(target_id, "target_id")
    return f"{spec.key_prefix}{actor}{KEY_SEPARATOR}{target}"


class RelationService:
    """Counter maintainer for all relation namespaces."""

    def __init__(self, store: RelationStore) -> None:
        self.store = store

    # --- Reads ---------------------------------------------------------------------
    async def get_relation(self, actor_id: str, target_id: str, kind: RelationKind) -> Any | None:
        """Return the stored relation row or None."""
        spec = get_spec(kind)
        return await self.store.get(spec.model, composite_key(kind, actor_id, target_id))

    async def has_relation(self, actor_id: str, target_id: str, kind: RelationKind) -> bool:
        """Return True if ``actor_id`` currently holds ``kind`` on ``target_id``."""
        return await self.get_relation(actor_id, target_id, kind) is not None

    async def get_vote(
        self,
        actor_id: str,
        target_id: str,
        kind: RelationKind = RelationKind.VOTE,
    ) -> VoteType | None:
        """Return the actor's vote type on the target, or None."""
        if not get_spec(kind).is_vote:
            raise InvalidArgumentError(f"{kind} relations carry no vote type")
        relation = await self.get_relation(actor_id, target_id, kind)
        return None if relation is None else VoteType(relation.vote_type)

    async def has_relations(
        self,
        actor_id: str,
        target_ids: Iterable[str],
        kind: RelationKind,
    ) -> dict[str, bool]:
        """Return a target-id -> bool map for many targets in one read."""
        spec = get_spec(kind)
        targets = list(dict.fromkeys(target_ids))
        keys = {composite_key(kind, actor_id, target): target for target in targets}
        found = await self.store.get_many(spec.model, keys)
        return {target: key in found for key, target in keys.items()}

    async def list_targets(
        self,
        actor_id: str,
        kind: RelationKind,
        limit: int = 100,
    ) -> list[str]:
        """Return the targets of ``actor_id`` newest first (e.g. who they follow)."""
        spec = get_spec(kind)
        rows = await self.store.query(
            spec.model,
            where={"actor_id": validate_identifier(actor_id, "actor_id")},
            order_by="created_at",
            limit=limit,
        )
        return [row.target_id for row in rows]

    async def list_actors(
        self,
        target_id: str,
        kind: RelationKind,
        limit: int = 100,
    ) -> list[str]:
        """Return the actors holding ``kind`` on ``target_id`` newest first (e.g. followers)."""
        spec = get_spec(kind)
        rows = await self.store.query(
            spec.model,
            where={"target_id": validate_identifier(target_id, "target_id")},
            order_by="created_at",
            limit=limit,
        )
        return [row.actor_id for row in rows]

    # --- Writes --------------------------------------------------------------------
    async def set_relation(
        self,
        actor_id: str,
        target_id: str,
        kind: RelationKind,
        *,
        vote_type: VoteType | None = None,
        values: Mapping[str, Any] | None = None,
        extra: BatchExtra | None = None,
    ) -> bool:
        """Create the relation and bump its counters in one batch.

        Returns:
            True if the relation was created, False if it already existed.
        """
        spec = get_spec(kind)
        key = composite_key(kind, actor_id, target_id)
        if spec.is_vote and vote_type is None:
            raise InvalidArgumentError(f"{kind} relations need a vote type")

        if await self.store.get(spec.model, key) is not None:
            logger.debug("Relation %s already exists; skipping", key)
            return False

        row: dict[str, Any] = {
            "id": key,
            "actor_id": actor_id,
            "target_id": target_id,
            "created_at": utcnow(),
            **(values or {}),
        }
        batch = self.store.batch()
        if spec.is_vote:
            row["vote_type"] = VoteType(vote_type)
        batch.create(spec.model, **row)
        for counter in self._counters_for(spec, vote_type):
            batch.increment(counter.model, counter.key_for(actor_id, target_id), counter.column, 1)
        if extra is not None:
            extra(batch, None)

        try:
            await batch.commit()
        except DocumentExistsError:
            # Lost a race with a concurrent create of the same key.
            logger.debug("Relation %s created concurrently; skipping", key)
            return False
        except DocumentNotFoundError as err:
            raise TargetNotFoundError(str(err)) from err
        logger.info("Set %s relation %s", spec.kind.value, key)
        return True

    async def clear_relation(
        self,
        actor_id: str,
        target_id: str,
        kind: RelationKind,
        *,
        extra: BatchExtra | None = None,
    ) -> bool:
        """Delete the relation and decrement its counters in one batch.

        Returns:
            True if a relation was removed, False if there was none.
        """
        spec = get_spec(kind)
        key = composite_key(kind, actor_id, target_id)
        existing = await self.store.get(spec.model, key)
        if existing is None:
            logger.debug("Relation %s does not exist; nothing to clear", key)
            return False

        vote_type = VoteType(existing.vote_type) if spec.is_vote else None
        counters = self._counters_for(spec, vote_type)
        try:
            await self._commit_clear(spec, key, existing, actor_id, target_id, counters, extra)
        except (DocumentNotFoundError, PreconditionFailedError) as err:
            if await self.store.get(spec.model, key) is None:
                logger.debug("Relation %s removed concurrently; skipping", key)
                return False
            if isinstance(err, PreconditionFailedError):
                raise
            # The counter owner is gone (e.g. a deleted post); drop the row anyway.
            live = await self._live_counters(counters, actor_id, target_id)
            if len(live) == len(counters):
                raise TargetNotFoundError(str(err)) from err
            logger.info("Clearing %s without counters of missing documents", key)
            try:
                await self._commit_clear(spec, key, existing, actor_id, target_id, live, extra)
            except DocumentNotFoundError as retry_err:
                raise TargetNotFoundError(str(retry_err)) from retry_err
        logger.info("Cleared %s relation %s", spec.kind.value, key)
        return True

    async def _commit_clear(
        self,
        spec: RelationSpec,
        key: str,
        existing: Any,
        actor_id: str,
        target_id: str,
        counters: tuple[CounterField, ...],
        extra: BatchExtra | None,
    ) -> None:
        batch = self.store.batch()
        if spec.is_vote:
            # Guard against a concurrent vote switch between the read and the commit.
            vote_type = VoteType(existing.vote_type)
            batch.update(spec.model, key, expect={"vote_type": vote_type}, vote_type=vote_type)
        batch.delete(spec.model, key)
        for counter in counters:
            batch.increment(counter.model, counter.key_for(actor_id, target_id), counter.column, -1)
        if extra is not None:
            extra(batch, existing)
        await batch.commit()

    async def _live_counters(
        self,
        counters: tuple[CounterField, ...],
        actor_id: str,
        target_id: str,
    ) -> tuple[CounterField, ...]:
        live = []
        for counter in counters:
            if await self.store.get(counter.model, counter.key_for(actor_id, target_id)) is not None:
                live.append(counter)
        return tuple(live)

    async def change_vote(
        self,
        actor_id: str,
        target_id: str,
        vote_type: VoteType,
        kind: RelationKind = RelationKind.VOTE,
    ) -> bool:
        """Switch an existing vote to ``vote_type``: one relation update, two counter moves.

        Returns:
            True if the vote changed, False if it already had that type.

        Raises:
            DocumentNotFoundError: If the actor holds no vote on the target.
        """
        spec = get_spec(kind)
        if not spec.is_vote:
            raise InvalidArgumentError(f"{kind} relations carry no vote type")
        new_type = VoteType(vote_type)
        key = composite_key(kind, actor_id, target_id)
        existing = await self.store.get(spec.model, key)
        if existing is None:
            raise DocumentNotFoundError(f"No {kind.value} relation {key!r} to change")
        old_type = VoteType(existing.vote_type)
        if old_type is new_type:
            return False

        old_counter = spec.vote_counters[old_type]
        new_counter = spec.vote_counters[new_type]
        batch = self.store.batch()
        batch.update(spec.model, key, expect={"vote_type": old_type}, vote_type=new_type)
        batch.increment(old_counter.model, target_id, old_counter.column, -1)
        batch.increment(new_counter.model, target_id, new_counter.column, 1)
        try:
            await batch.commit()
        except DocumentNotFoundError as err:
            raise TargetNotFoundError(str(err)) from err
        logger.info("Changed %s %s from %s to %s", kind.value, key, old_type.value, new_type.value)
        return True

    async def clear_all_for_actor(self, actor_id: str, kind: RelationKind) -> int:
        """Remove every ``kind`` relation held by ``actor_id`` in one batch.

        Counters of targets that no longer exist are skipped.

        Returns:
            Number of relations removed.
        """
        spec = get_spec(kind)
        actor = validate_identifier(actor_id, "actor_id")
        rows = await self.store.query(spec.model, where={"actor_id": actor})
        if not rows:
            return 0

        counter_keys: dict[type[Any], set[str]] = {}
        for row in rows:
            vote_type = VoteType(row.vote_type) if spec.is_vote else None
            for counter in self._counters_for(spec, vote_type):
                counter_keys.setdefault(counter.model, set()).add(
                    counter.key_for(row.actor_id, row.target_id)
                )
        existing: dict[type[Any], set[str]] = {}
        for model, keys in counter_keys.items():
            existing[model] = set(await self.store.get_many(model, keys))

        batch = self.store.batch()
        for row in rows:
            batch.delete(spec.model, row.id, must_exist=False)
            vote_type = VoteType(row.vote_type) if spec.is_vote else None
            for counter in self._counters_for(spec, vote_type):
                counter_key = counter.key_for(row.actor_id, row.target_id)
                if counter_key in existing[counter.model]:
                    batch.increment(counter.model, counter_key, counter.column, -1)
        await batch.commit()
        logger.info("Cleared %d %s relations of %s", len(rows), kind.value, actor)
        return len(rows)

    async def reconcile(self, target_id: str, kind: RelationKind) -> dict[str, int]:
        """Recount relation rows pointing at ``target_id`` and overwrite its counters.

        Only target-owned counters are rewritten; for follows use
        :meth:`reconcile_actor` to fix the follower's side.

        Returns:
            Mapping of counter column to the recounted value.
        """
        spec = get_spec(kind)
        target = validate_identifier(target_id, "target_id")
        counts: dict[str, int] = {}
        if spec.is_vote:
            for vote_type, counter in spec.vote_counters.items():
                counts[counter.column] = await self.store.count(
                    spec.model, where={"target_id": target, "vote_type": vote_type}
                )
        else:
            total = await self.store.count(spec.model, where={"target_id": target})
            for counter in spec.counters:
                if counter.owner == "target":
                    counts[counter.column] = total
        return await self._overwrite(spec.target_model, target, counts)

    async def reconcile_actor(self, actor_id: str, kind: RelationKind) -> dict[str, int]:
        """Recount relations held by ``actor_id`` and overwrite its actor-owned counters."""
        spec = get_spec(kind)
        actor = validate_identifier(actor_id, "actor_id")
        actor_counters = [counter for counter in spec.counters if counter.owner == "actor"]
        if not actor_counters:
            return {}
        total = await self.store.count(spec.model, where={"actor_id": actor})
        counts = {counter.column: total for counter in actor_counters}
        return await self._overwrite(actor_counters[0].model, actor, counts)

    async def _overwrite(self, model: type[Any], key: str, counts: dict[str, int]) -> dict[str, int]:
        if not counts:
            return counts
        batch = self.store.batch()
        batch.update(model, key, **counts)
        try:
            await batch.commit()
        except DocumentNotFoundError as err:
            raise TargetNotFoundError(str(err)) from err
        logger.info("Reconciled %s %s counters: %s", model.__name__, key, counts)
        return counts

    @staticmethod
    def _counters_for(spec: RelationSpec, vote_type: VoteType | None) -> tuple[CounterField, ...]:
        if spec.is_vote:
            return (spec.vote_counters[VoteType(vote_type)],)
        return spec.counters
