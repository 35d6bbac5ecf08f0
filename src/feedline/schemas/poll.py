"""Poll-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PollVoteRequest(BaseModel):
    option_index: int = Field(..., ge=0)


class PollOptionResult(BaseModel):
    position: int
    text: str
    votes: int

    model_config = ConfigDict(from_attributes=True)


class PollResults(BaseModel):
    """Tally of a poll plus the requesting user's choice, if any."""

    post_id: str
    options: list[PollOptionResult]
    total_votes: int
    ends_at: datetime | None = None
    closed: bool = False
    user_choice: int | None = None
