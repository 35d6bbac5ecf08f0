"""Post lifecycle: creation, deletion and comments.

Creating or deleting a post moves the author's ``posts_count`` and the
community's ``post_count`` in the same batch as the post row itself.
Reposts are owned by the repost relation and never touch those counters.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any

from feedline.core.errors import (
    DocumentNotFoundError,
    InvalidArgumentError,
    TargetNotFoundError,
    UnauthenticatedError,
)
from feedline.db.store import RelationStore, WriteBatch
from feedline.db.time import as_utc, utcnow
from feedline.models import (
    Comment,
    Community,
    Poll,
    PollOption,
    Post,
    RelationKind,
    UserProfile,
)
from feedline.schemas.post import PostCreate, PostSummary
from feedline.services.relations import (
    KEY_SEPARATOR,
    RelationService,
    get_spec,
    validate_identifier,
)

logger = logging.getLogger(__name__)

_HASHTAG_RE = re.compile(r"#(\w+)")


def extract_hashtags(content: str) -> list[str]:
    """Return the distinct lowercase hashtags in ``content`` in order of appearance."""
    return list(dict.fromkeys(tag.lower() for tag in _HASHTAG_RE.findall(content)))


def poll_option_key(post_id: str, position: int) -> str:
    return f"{post_id}{KEY_SEPARATOR}{position}"


class PostService:
    """Creates, reads and deletes posts."""

    def __init__(self, store: RelationStore) -> None:
        self.store = store
        self.relations = RelationService(store)

    async def get_post(self, post_id: str) -> PostSummary:
        """Return the post or raise :class:`TargetNotFoundError`."""
        post = await self.store.get(Post, validate_identifier(post_id, "post_id"))
        if post is None:
            raise TargetNotFoundError(f"Post {post_id!r} does not exist")
        return PostSummary.model_validate(post)

    async def create_post(self, author_id: str | None, payload: PostCreate) -> PostSummary:
        """Create a post (and its poll, if any) in one batch."""
        if author_id is None:
            raise UnauthenticatedError("Sign in to post")
        author = validate_identifier(author_id, "author_id")
        content = payload.content.strip()
        if not content:
            raise InvalidArgumentError("Post content must not be empty")
        community_id = payload.community_id
        if community_id is not None:
            community_id = validate_identifier(community_id, "community_id")
            community = await self.store.get(Community, community_id)
            if community is None:
                raise TargetNotFoundError(f"Community {community_id!r} does not exist")

        if payload.poll is not None and payload.poll.ends_at is not None:
            if as_utc(payload.poll.ends_at) <= utcnow():
                raise InvalidArgumentError("Poll must end in the future")

        post_id = uuid.uuid4().hex
        hashtags = list(dict.fromkeys([*payload.hashtags, *extract_hashtags(content)]))
        created_at = utcnow()

        batch = self.store.batch()
        batch.create(
            Post,
            id=post_id,
            author_id=author,
            community_id=community_id,
            content=content,
            hashtags=hashtags,
            created_at=created_at,
        )
        if payload.poll is not None:
            batch.create(Poll, post_id=post_id, ends_at=payload.poll.ends_at, total_votes=0)
            for position, text in enumerate(payload.poll.options):
                batch.create(
                    PollOption,
                    id=poll_option_key(post_id, position),
                    post_id=post_id,
                    position=position,
                    text=text,
                    votes=0,
                )
        batch.increment(UserProfile, author, "posts_count", 1)
        if community_id is not None:
            batch.increment(Community, community_id, "post_count", 1)
        try:
            await batch.commit()
        except DocumentNotFoundError as err:
            raise TargetNotFoundError(str(err)) from err

        logger.info("Created post %s by %s", post_id, author)
        post = await self.store.get(Post, post_id)
        if post is None:
            raise TargetNotFoundError(f"Post {post_id!r} vanished after creation")
        return PostSummary.model_validate(post)

    async def delete_post(self, actor_id: str | None, post_id: str) -> None:
        """Delete the actor's own post with everything that hangs off it.

        A repost is removed through its repost relation so the original's
        ``reposts_count`` moves with it. Any other post takes its poll,
        comments and the likes, votes and reposts pointing at it along.
        """
        if actor_id is None:
            raise UnauthenticatedError("Sign in to delete posts")
        target = validate_identifier(post_id, "post_id")
        post = await self.store.get(Post, target)
        if post is None:
            raise TargetNotFoundError(f"Post {target!r} does not exist")
        if post.author_id != actor_id:
            raise InvalidArgumentError("Only the author can delete a post")

        if post.is_repost and post.original_post_id is not None:
            if await self._delete_repost(post):
                return

        batch = self.store.batch()
        batch.delete(Post, target)
        poll = await self.store.get(Poll, target)
        if poll is not None:
            options = await self.store.query(PollOption, where={"post_id": target})
            for option in options:
                batch.delete(PollOption, option.id, must_exist=False)
            batch.delete(Poll, target, must_exist=False)
        if not post.is_repost:
            await self._delete_dependents(batch, target)
            if await self.store.get(UserProfile, post.author_id) is not None:
                batch.increment(UserProfile, post.author_id, "posts_count", -1)
            if post.community_id is not None and await self.store.get(Community, post.community_id):
                batch.increment(Community, post.community_id, "post_count", -1)
        try:
            await batch.commit()
        except DocumentNotFoundError:
            logger.debug("Post %s deleted concurrently", target)
            return
        logger.info("Deleted post %s", target)

    async def _delete_repost(self, post: Post) -> bool:
        def remove_repost_post(batch: WriteBatch, _existing: Any) -> None:
            batch.delete(Post, post.id, must_exist=False)

        removed = await self.relations.clear_relation(
            post.author_id,
            post.original_post_id,
            RelationKind.REPOST,
            extra=remove_repost_post,
        )
        if removed:
            logger.info("Deleted repost %s of %s", post.id, post.original_post_id)
        return removed

    async def _delete_dependents(self, batch: WriteBatch, post_id: str) -> None:
        """Queue deletes for relation rows and comments that point at ``post_id``."""
        for kind in (RelationKind.LIKE, RelationKind.VOTE, RelationKind.REPOST):
            spec = get_spec(kind)
            for row in await self.store.query(spec.model, where={"target_id": post_id}):
                batch.delete(spec.model, row.id, must_exist=False)
                if kind is RelationKind.REPOST:
                    batch.delete(Post, row.repost_post_id, must_exist=False)
        comments = await self.store.query(Comment, where={"post_id": post_id})
        if comments:
            vote_model = get_spec(RelationKind.COMMENT_VOTE).model
            comment_ids = [comment.id for comment in comments]
            for row in await self.store.query(vote_model, where={"target_id": comment_ids}):
                batch.delete(vote_model, row.id, must_exist=False)
            for comment_id in comment_ids:
                batch.delete(Comment, comment_id, must_exist=False)

    async def add_comment(
        self,
        author_id: str | None,
        post_id: str,
        content: str,
        parent_comment_id: str | None = None,
    ) -> Comment:
        """Add a comment and bump the post's ``comments_count`` in one batch."""
        if author_id is None:
            raise UnauthenticatedError("Sign in to comment")
        author = validate_identifier(author_id, "author_id")
        target = validate_identifier(post_id, "post_id")
        text = (content or "").strip()
        if not text:
            raise InvalidArgumentError("Comment must not be empty")

        comment_id = uuid.uuid4().hex
        batch = self.store.batch()
        batch.create(
            Comment,
            id=comment_id,
            post_id=target,
            author_id=author,
            parent_comment_id=parent_comment_id,
            content=text,
            created_at=utcnow(),
        )
        batch.increment(Post, target, "comments_count", 1)
        try:
            await batch.commit()
        except DocumentNotFoundError as err:
            raise TargetNotFoundError(str(err)) from err
        comment = await self.store.get(Comment, comment_id)
        if comment is None:
            raise TargetNotFoundError(f"Comment {comment_id!r} vanished after creation")
        return comment

    async def list_comments(self, post_id: str, limit: int = 50) -> list[Comment]:
        return await self.store.query(
            Comment,
            where={"post_id": validate_identifier(post_id, "post_id")},
            order_by="created_at",
            limit=limit,
        )
