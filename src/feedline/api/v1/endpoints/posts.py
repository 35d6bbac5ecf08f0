"""Post and poll endpoints."""

from fastapi import APIRouter, Response, status

from feedline.api.v1.dependencies import (
    CurrentActorDep,
    OptionalActorDep,
    PollServiceDep,
    PostServiceDep,
)
from feedline.schemas.poll import PollResults, PollVoteRequest
from feedline.schemas.post import PostCreate, PostSummary

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post("", response_model=PostSummary, status_code=status.HTTP_201_CREATED)
async def create_post(payload: PostCreate, actor_id: CurrentActorDep, posts: PostServiceDep) -> PostSummary:
    """Create a post, with an optional poll."""
    return await posts.create_post(actor_id, payload)


@router.get("/{post_id}", response_model=PostSummary)
async def get_post(post_id: str, posts: PostServiceDep) -> PostSummary:
    return await posts.get_post(post_id)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(post_id: str, actor_id: CurrentActorDep, posts: PostServiceDep) -> Response:
    """Delete one of the caller's own posts."""
    await posts.delete_post(actor_id, post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{post_id}/poll/votes", response_model=PollResults)
async def vote_in_poll(
    post_id: str,
    vote: PollVoteRequest,
    actor_id: CurrentActorDep,
    polls: PollServiceDep,
) -> PollResults:
    """Choose one option of the post's poll. Each user votes once."""
    return await polls.vote(post_id, vote.option_index, actor_id)


@router.get("/{post_id}/poll", response_model=PollResults)
async def get_poll(post_id: str, actor_id: OptionalActorDep, polls: PollServiceDep) -> PollResults:
    return await polls.get_results(post_id, actor_id)
