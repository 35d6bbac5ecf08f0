"""Feed endpoint."""

from fastapi import APIRouter, Query

from feedline.api.v1.dependencies import FeedServiceDep
from feedline.core.settings import settings
from feedline.schemas.feed import FeedPage

router = APIRouter(tags=["feed"])


@router.get("/feed", response_model=FeedPage)
async def get_feed(
    feed: FeedServiceDep,
    scope: str = Query("all", description="all, community:<id> or user:<id>"),
    cursor: str | None = Query(None, description="Cursor from the previous page"),
    limit: int | None = Query(None, ge=1, le=settings.feed_max_page_size),
) -> FeedPage:
    """Return one page of posts, newest first."""
    page = await feed.fetch_page(scope, cursor=cursor, limit=limit)
    return FeedPage(
        scope=page.scope.key,
        items=page.items,
        cursor=page.cursor,
        has_more=page.has_more,
        fetched_at=page.fetched_at,
    )
