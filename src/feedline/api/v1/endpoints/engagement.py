"""Engagement toggle endpoints: likes, follows, votes, reposts and memberships."""

from fastapi import APIRouter, Body

from feedline.api.v1.dependencies import CurrentActorDep, OptionalActorDep, ToggleEngineDep
from feedline.models import RelationKind
from feedline.schemas.engagement import RepostRequest, ToggleResponse, VoteRequest, VoteStats

router = APIRouter(tags=["engagement"])


@router.post("/likes/{post_id}", response_model=ToggleResponse)
async def toggle_like(post_id: str, actor_id: CurrentActorDep, engine: ToggleEngineDep) -> ToggleResponse:
    """Like the post, or remove the like if it is already there."""
    result = await engine.toggle(actor_id, post_id, RelationKind.LIKE)
    return ToggleResponse.model_validate(result)


@router.post("/follows/{user_id}", response_model=ToggleResponse)
async def toggle_follow(user_id: str, actor_id: CurrentActorDep, engine: ToggleEngineDep) -> ToggleResponse:
    """Follow or unfollow a user."""
    result = await engine.toggle(actor_id, user_id, RelationKind.FOLLOW)
    return ToggleResponse.model_validate(result)


@router.post("/votes/{post_id}", response_model=ToggleResponse)
async def toggle_vote(
    post_id: str,
    vote: VoteRequest,
    actor_id: CurrentActorDep,
    engine: ToggleEngineDep,
) -> ToggleResponse:
    """Cast, switch or withdraw an agree/disagree vote on a post."""
    result = await engine.toggle(actor_id, post_id, RelationKind.VOTE, vote.vote_type)
    return ToggleResponse.model_validate(result)


@router.get("/votes/{post_id}/stats", response_model=VoteStats)
async def get_vote_stats(post_id: str, actor_id: OptionalActorDep, engine: ToggleEngineDep) -> VoteStats:
    return await engine.get_vote_stats(post_id, actor_id)


@router.post("/comment-votes/{comment_id}", response_model=ToggleResponse)
async def toggle_comment_vote(
    comment_id: str,
    vote: VoteRequest,
    actor_id: CurrentActorDep,
    engine: ToggleEngineDep,
) -> ToggleResponse:
    result = await engine.toggle(actor_id, comment_id, RelationKind.COMMENT_VOTE, vote.vote_type)
    return ToggleResponse.model_validate(result)


@router.post("/reposts/{post_id}", response_model=ToggleResponse)
async def toggle_repost(
    post_id: str,
    actor_id: CurrentActorDep,
    engine: ToggleEngineDep,
    body: RepostRequest | None = Body(None),
) -> ToggleResponse:
    """Repost the post (optionally with a comment) or undo the repost."""
    comment = body.comment if body is not None else None
    result = await engine.toggle(actor_id, post_id, RelationKind.REPOST, comment=comment)
    return ToggleResponse.model_validate(result)


@router.post("/communities/{community_id}/membership", response_model=ToggleResponse)
async def toggle_membership(
    community_id: str,
    actor_id: CurrentActorDep,
    engine: ToggleEngineDep,
) -> ToggleResponse:
    """Join or leave a community."""
    result = await engine.toggle(actor_id, community_id, RelationKind.MEMBERSHIP)
    return ToggleResponse.model_validate(result)
