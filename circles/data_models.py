import numbers
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator
from pydantic.alias_generators import to_camel


ALL_CIRCLE_ID = "all"
MIN_CIRCLE_SIZE = 3
DEFAULT_TAGLINE = "Shares this interest"


class CamelModel(BaseModel):
    """Base for models exchanged with the HTTP layer (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def coerce_member_index(value: Any) -> Any:
    """Integral floats such as ``2.0`` become ints; booleans are rejected. Anything else is
    left for ``StrictInt`` to accept or reject."""
    if isinstance(value, bool):
        raise ValueError("memberId must be an integer, not a boolean")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def optional_text(value: Any) -> Optional[str]:
    """Coerce free text from an untrusted payload; blanks and non-strings become None."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


class MemberProfile(CamelModel):
    """
    A community member as supplied by the member store. Read-only here.
    """

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_answers: Any = None
    profile_summary: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        if isinstance(value, numbers.Real) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
        return value

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class CircleMember(CamelModel):
    user_id: str
    first_name: str = "Unknown"
    last_name: str = ""
    display_name: str = ""
    tagline: str

    @classmethod
    def from_profile(cls, member: MemberProfile, tagline: str) -> "CircleMember":
        return cls(
            user_id=member.id,
            first_name=member.first_name or "Unknown",
            last_name=member.last_name or "",
            display_name=member.display_name,
            tagline=tagline,
        )


class Circle(CamelModel):
    """A named interest cluster. Every circle except ``all`` has 3+ members."""

    id: str
    name: str
    short_name: str
    members: List[CircleMember] = Field(default_factory=list)

    @property
    def member_ids(self) -> List[str]:
        return [m.user_id for m in self.members]


class CirclesResult(CamelModel):
    circles: List[Circle]
    generated_at: datetime
    expires_at: datetime


class CircleOverview(CamelModel):
    """Sized circle summary consumed by the bubble layout."""

    id: str
    name: str
    short_name: str = ""
    count: int = Field(default=0, ge=0)
    member_ids: Optional[List[str]] = None


# ---- Shapes returned by the text-classification call ----


class RawCircleMember(CamelModel):
    """One member reference inside a proposed circle (1-based roster index)."""

    member_id: StrictInt
    tagline: Optional[str] = None

    @field_validator("member_id", mode="before")
    @classmethod
    def _index(cls, value: Any) -> Any:
        return coerce_member_index(value)

    @field_validator("tagline", mode="before")
    @classmethod
    def _clean_tagline(cls, value: Any) -> Optional[str]:
        return optional_text(value)


class RawCircle(CamelModel):
    """A proposed circle before index resolution. Members stay untyped so one bad entry
    does not discard the whole circle."""

    id: Optional[str] = None
    name: Optional[str] = None
    short_name: Optional[str] = None
    members: List[Any] = Field(default_factory=list)

    @field_validator("id", "name", "short_name", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> Optional[str]:
        return optional_text(value)

    @field_validator("members", mode="before")
    @classmethod
    def _members_list(cls, value: Any) -> List[Any]:
        return value if isinstance(value, list) else []

    @model_validator(mode="after")
    def _require_label(self) -> "RawCircle":
        if self.name is None and self.id is None:
            raise ValueError("circle has neither a name nor an id")
        if self.name is None:
            self.name = self.id.replace("-", " ").replace("_", " ").title()
        return self
