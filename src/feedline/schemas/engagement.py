"""Engagement-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field, computed_field

from feedline.models import RelationKind, VoteType


def agreement_percentage(agreement_count: int, disagreement_count: int) -> int:
    """Return the share of agree votes as a rounded 0-100 integer."""
    total = agreement_count + disagreement_count
    if total <= 0:
        return 0
    return int(agreement_count * 100 / total + 0.5)


class VoteRequest(BaseModel):
    """Body of a vote toggle."""

    vote_type: VoteType = Field(..., description="agree or disagree")


class RepostRequest(BaseModel):
    """Optional body of a repost toggle."""

    comment: str | None = Field(None, max_length=500, description="Quote text shown above the repost")


class ToggleResponse(BaseModel):
    """State of a relation after a toggle."""

    kind: RelationKind
    target_id: str
    active: bool
    vote: VoteType | None = None
    changed: bool = True

    model_config = ConfigDict(from_attributes=True)


class VoteStats(BaseModel):
    """Agree/disagree aggregate for one post."""

    agreement_count: int = 0
    disagreement_count: int = 0
    user_vote: VoteType | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_votes(self) -> int:
        return self.agreement_count + self.disagreement_count

    @computed_field  # type: ignore[prop-decorator]
    @property
    def agreement_percentage(self) -> int:
        return agreement_percentage(self.agreement_count, self.disagreement_count)
