"""Post-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedline.db.time import as_utc


class PollCreate(BaseModel):
    """Poll attached to a new post."""

    options: list[str] = Field(..., min_length=2, max_length=10)
    ends_at: datetime | None = Field(None, description="When voting closes; open forever if unset")

    @field_validator("options")
    @classmethod
    def _strip_options(cls, options: list[str]) -> list[str]:
        cleaned = [option.strip() for option in options]
        if any(not option for option in cleaned):
            raise ValueError("poll options must not be empty")
        return cleaned


class PostCreate(BaseModel):
    """Schema for creating a new post."""

    content: str = Field(..., min_length=1, max_length=5000)
    community_id: str | None = Field(None, description="Community the post belongs to")
    hashtags: list[str] = Field(default_factory=list, max_length=30)
    poll: PollCreate | None = None


class PostSummary(BaseModel):
    """Post as shown in feeds, with its denormalized counters."""

    id: str
    author_id: str
    community_id: str | None = None
    content: str
    hashtags: list[str] = Field(default_factory=list)
    is_repost: bool = False
    original_post_id: str | None = None
    repost_comment: str | None = None
    likes_count: int = 0
    agreement_count: int = 0
    disagreement_count: int = 0
    reposts_count: int = 0
    comments_count: int = 0
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    model_config = ConfigDict(from_attributes=True)
