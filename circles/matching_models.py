# pydantic models for the icebreaker matcher
import math
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import Field, StrictInt, field_validator

from .data_models import CamelModel, MemberProfile, coerce_member_index


MAX_MATCH_CANDIDATES = 5
FALLBACK_MATCH_SCORE = 0.5

def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class IcebreakerMatch(CamelModel):
    """Recommended introduction returned to the caller.

    Fields:
        user_id: The matched member's identifier (always a real roster member).
        first_name / last_name / display_name: Display fields of the matched member.
        profile_summary: The matched member's stored summary, if any.
        match_score: Score in [0, 1]; 0.5 for the random fallback.
        shared_interests: Interests both members stated.
        icebreaker_questions: Exactly three conversation starters.
    """

    user_id: str
    first_name: str = "Unknown"
    last_name: str = ""
    display_name: str = ""
    profile_summary: Optional[str] = None
    match_score: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Relative match strength between 0.0 and 1.0",
    )
    shared_interests: List[str] = Field(default_factory=list)
    icebreaker_questions: List[str] = Field(default_factory=list, description="Conversation starters for the pair")


class MatchCandidate(CamelModel):
    """Ranked candidate as returned by the text-classification call.

    Fields:
        member_id: 1-based index into the candidate pool of this request.
        match_score: Optional score; clamped to [0, 1], non-numeric values dropped.
        shared_interests: Overlapping interests (non-string items dropped).
        icebreaker_questions: Suggested questions (non-string items dropped).
    """

    member_id: StrictInt
    match_score: Optional[float] = None
    shared_interests: List[str] = Field(default_factory=list)
    icebreaker_questions: List[str] = Field(default_factory=list)

    @field_validator("member_id", mode="before")
    @classmethod
    def _index(cls, value: Any) -> Any:
        return coerce_member_index(value)

    @field_validator("match_score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> Optional[float]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if math.isnan(value):
            return None
        return min(1.0, max(0.0, float(value)))

    @field_validator("shared_interests", "icebreaker_questions", mode="before")
    @classmethod
    def _clean_lists(cls, value: Any) -> List[str]:
        return _string_list(value)


@dataclass(frozen=True)
class ResolvedCandidate:
    """A validated candidate bound back to the real member it refers to."""

    member: MemberProfile
    candidate: MatchCandidate
    default_weight: float = FALLBACK_MATCH_SCORE

    @property
    def weight(self) -> float:
        if self.candidate.match_score is None:
            return self.default_weight
        return self.candidate.match_score
