"""
Shared fixtures for the circles engine tests.

The text classifier is always faked: tests script its responses (or its
failure) and inspect the prompts it received.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import pytest

from circles.data_models import MemberProfile


INTERESTS = ["birding", "hiking", "gardening", "chess", "pottery", "running", "baking", "cycling"]


def make_member(index: int, interest: str = "hiking", **overrides: Any) -> MemberProfile:
    fields: Dict[str, Any] = {
        "id": f"user-{index:03d}",
        "first_name": f"First{index}",
        "last_name": f"Last{index}",
        "profile_answers": [
            {"question": "What do you love doing?", "transcript": f"I love {interest} on weekends."},
        ],
        "profile_summary": f"Member {index} enjoys {interest}.",
    }
    fields.update(overrides)
    return MemberProfile(**fields)


def make_roster(size: int) -> List[MemberProfile]:
    return [make_member(i, INTERESTS[i % len(INTERESTS)]) for i in range(1, size + 1)]


def circles_response(circles: Sequence[Dict[str, Any]], preamble: str = "") -> str:
    return f"{preamble}{json.dumps({'circles': list(circles)})}"


def candidates_response(candidates: Sequence[Dict[str, Any]]) -> str:
    return json.dumps({"candidates": list(candidates)})


class FakeClassifier:
    """Scripted stand-in for the text-classification call."""

    def __init__(self, responses: Optional[Sequence[str]] = None, error: Optional[BaseException] = None):
        self.responses = list(responses or ["{}"])
        self.error = error
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str, max_output_tokens: int = 2048) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.responses[min(len(self.prompts), len(self.responses)) - 1]


@pytest.fixture
def roster() -> List[MemberProfile]:
    return make_roster(8)


@pytest.fixture
def small_roster() -> List[MemberProfile]:
    return make_roster(4)
