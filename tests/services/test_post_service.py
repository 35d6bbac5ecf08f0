"""Tests for post creation, deletion and comments."""

from datetime import timedelta

import pytest

from feedline.core.errors import InvalidArgumentError, TargetNotFoundError
from feedline.db.time import utcnow
from feedline.models import (
    Comment,
    CommentVote,
    Community,
    Poll,
    PollOption,
    Post,
    PostLike,
    PostRepost,
    PostVote,
    RelationKind,
    UserProfile,
    VoteType,
)
from feedline.schemas.post import PollCreate, PostCreate
from feedline.services.posts import PostService, extract_hashtags


@pytest.fixture()
def posts(store) -> PostService:
    return PostService(store)


def test_extract_hashtags() -> None:
    assert extract_hashtags("Hello #World and #world, #py_3!") == ["world", "py_3"]


@pytest.mark.asyncio
async def test_create_post_with_poll_moves_counters(seed, posts) -> None:
    seed.user("alice")
    seed.community("c1")

    post = await posts.create_post(
        "alice",
        PostCreate(
            content="  Lunch? #food ",
            community_id="c1",
            poll=PollCreate(options=[" pizza ", "salad"]),
        ),
    )

    assert post.content == "Lunch? #food"
    assert post.hashtags == ["food"]
    assert seed.get(UserProfile, "alice").posts_count == 1
    assert seed.get(Community, "c1").post_count == 1
    assert seed.get(Poll, post.id).total_votes == 0
    assert seed.get(PollOption, f"{post.id}:0").text == "pizza"


@pytest.mark.asyncio
async def test_create_post_in_missing_community(seed, posts) -> None:
    seed.user("alice")

    with pytest.raises(TargetNotFoundError):
        await posts.create_post("alice", PostCreate(content="hi", community_id="nowhere"))

    assert seed.get(UserProfile, "alice").posts_count == 0


@pytest.mark.asyncio
async def test_poll_must_end_in_the_future(seed, posts) -> None:
    seed.user("alice")
    payload = PostCreate(
        content="late",
        poll=PollCreate(options=["a", "b"], ends_at=utcnow() - timedelta(hours=1)),
    )

    with pytest.raises(InvalidArgumentError):
        await posts.create_post("alice", payload)


@pytest.mark.asyncio
async def test_delete_post_reverses_counters(seed, posts) -> None:
    seed.user("alice")
    seed.community("c1")
    post = await posts.create_post(
        "alice",
        PostCreate(content="bye", community_id="c1", poll=PollCreate(options=["a", "b"])),
    )

    await posts.delete_post("alice", post.id)

    assert seed.get(Post, post.id) is None
    assert seed.get(Poll, post.id) is None
    assert seed.get(PollOption, f"{post.id}:1") is None
    assert seed.get(UserProfile, "alice").posts_count == 0
    assert seed.get(Community, "c1").post_count == 0


@pytest.mark.asyncio
async def test_deleting_a_repost_releases_the_original(seed, posts, toggles) -> None:
    seed.user("bob", posts_count=1)
    seed.community("c1", post_count=1)
    seed.post("orig", author_id="alice", community_id="c1")
    await toggles.toggle("bob", "orig", RelationKind.REPOST)
    repost_id = seed.get(PostRepost, "bob:orig").repost_post_id

    await posts.delete_post("bob", repost_id)

    assert seed.get(Post, repost_id) is None
    assert seed.get(PostRepost, "bob:orig") is None
    assert seed.get(Post, "orig").reposts_count == 0
    assert seed.get(UserProfile, "bob").posts_count == 1
    assert seed.get(Community, "c1").post_count == 1

    # Reposting again works once the relation is gone.
    result = await toggles.toggle("bob", "orig", RelationKind.REPOST)
    assert result.active is True
    assert seed.get(Post, "orig").reposts_count == 1


@pytest.mark.asyncio
async def test_delete_post_removes_engagement_pointing_at_it(seed, posts, toggles) -> None:
    seed.user("alice", posts_count=1)
    seed.post("p1", author_id="alice")
    seed.comment("c1", "p1")
    await toggles.toggle("bob", "p1", RelationKind.LIKE)
    await toggles.toggle("bob", "p1", RelationKind.VOTE, VoteType.AGREE)
    await toggles.toggle("bob", "p1", RelationKind.REPOST)
    await toggles.toggle("carol", "c1", RelationKind.COMMENT_VOTE, VoteType.DISAGREE)
    repost_id = seed.get(PostRepost, "bob:p1").repost_post_id

    await posts.delete_post("alice", "p1")

    assert seed.get(Post, "p1") is None
    assert seed.get(PostLike, "bob:p1") is None
    assert seed.get(PostVote, "bob:p1") is None
    assert seed.get(PostRepost, "bob:p1") is None
    assert seed.get(Post, repost_id) is None
    assert seed.get(Comment, "c1") is None
    assert seed.get(CommentVote, "comment_carol:c1") is None
    assert seed.get(UserProfile, "alice").posts_count == 0
    assert await toggles.relations.has_relation("bob", "p1", RelationKind.LIKE) is False


@pytest.mark.asyncio
async def test_only_the_author_deletes(seed, posts) -> None:
    seed.post("p1", author_id="alice")

    with pytest.raises(InvalidArgumentError):
        await posts.delete_post("bob", "p1")
    assert seed.get(Post, "p1") is not None


@pytest.mark.asyncio
async def test_comments_bump_the_post(seed, posts) -> None:
    seed.post("p1")

    first = await posts.add_comment("alice", "p1", "first!")
    second = await posts.add_comment("bob", "p1", "second", parent_comment_id=first.id)

    assert seed.get(Post, "p1").comments_count == 2
    listed = await posts.list_comments("p1")
    assert [comment.id for comment in listed] == [second.id, first.id]

    with pytest.raises(TargetNotFoundError):
        await posts.add_comment("alice", "ghost", "hello")
