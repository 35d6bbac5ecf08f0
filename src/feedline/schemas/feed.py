"""Feed page schema."""

from datetime import datetime

from pydantic import BaseModel, Field

from feedline.schemas.post import PostSummary


class FeedPage(BaseModel):
    """One page of a feed scope, newest first."""

    scope: str
    items: list[PostSummary] = Field(default_factory=list)
    cursor: str | None = Field(None, description="Opaque token continuing after the last item")
    has_more: bool = False
    fetched_at: datetime
    stale: bool = False
