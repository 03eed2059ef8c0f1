"""
Groups community members into interest circles.

The roster is sent to the text classifier under 1-based sequential indices
(never real ids). Whatever comes back is parsed, resolved against the roster
and filtered; any failure degrades to the All circle alone.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from .config import DEFAULT_CACHE_TTL_HOURS
from .data_models import (
    ALL_CIRCLE_ID,
    MIN_CIRCLE_SIZE,
    Circle,
    CircleMember,
    CircleOverview,
    CirclesResult,
    MemberProfile,
)
from .ingest import extract_answers_text
from .llm import TextClassifier
from .parsing import extract_json_object, validate_circles

logger = logging.getLogger("circles.clustering")

CACHE_TTL = timedelta(hours=DEFAULT_CACHE_TTL_HOURS)
SMALL_COMMUNITY_THRESHOLD = 5
ALL_CIRCLE_TAGLINE = "Community member"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_all_circle(members: Sequence[MemberProfile]) -> Circle:
    """The sentinel circle holding every member; exempt from the size floor."""
    return Circle(
        id=ALL_CIRCLE_ID,
        name="All",
        short_name="All",
        members=[CircleMember.from_profile(m, ALL_CIRCLE_TAGLINE) for m in members],
    )


def build_member_payload(members: Sequence[MemberProfile]) -> List[Dict[str, Any]]:
    return [
        {
            "memberId": index,
            "name": member.display_name or "Anonymous",
            "answers": extract_answers_text(member.profile_answers),
        }
        for index, member in enumerate(members, start=1)
    ]


def build_clustering_prompt(members: Sequence[MemberProfile]) -> str:
    member_json = json.dumps(build_member_payload(members), indent=2, ensure_ascii=False)
    return f"""Group these community members into interest-based circles.

## Member Profiles
Each member is identified by a numeric memberId from 1 to {len(members)}.
{member_json}

## Rules

GROUNDING REQUIREMENT: Only create circles for interests members EXPLICITLY stated. If someone said "I love birding" or "I hike every weekend", that counts. Do NOT infer interests they didn't mention.

CIRCLE RULES:
- Only create a circle for an interest explicitly mentioned by {MIN_CIRCLE_SIZE} or more members
- Do NOT combine different activities into one circle (hiking and gardening are separate interests)
- "name" is a descriptive multi-word label (e.g., "Backyard Birding Club")
- "shortName" is a short plural noun for small displays (e.g., "Birders")
- Only use memberId values from the list above

TAGLINE RULES:
- Each member in a circle needs a 5-10 word tagline about their connection to that circle
- ONLY use details they actually stated
- If no specific details are available, use a generic tagline such as "Enjoys birding"
- NEVER invent timeframes, numbers, or details

## Output
Return ONLY valid JSON:
{{
  "circles": [
    {{
      "id": "kebab-case-id",
      "name": "Circle Name",
      "shortName": "Plural Noun",
      "members": [
        {{ "memberId": 1, "tagline": "Their contextual tagline" }}
      ]
    }}
  ]
}}"""


async def generate_circles(
    members: Sequence[MemberProfile],
    classifier: TextClassifier,
    now: Optional[datetime] = None,
    ttl: timedelta = CACHE_TTL,
    max_output_tokens: int = 2048,
) -> CirclesResult:
    """Build the circles for one community roster.

    Rosters smaller than ``SMALL_COMMUNITY_THRESHOLD`` never reach the
    classifier. The All circle is always first. ``expires_at`` is informational;
    expiry is enforced by the cache manager.

    Never raises: any failure yields the All circle only.
    """
    members = list(members)
    generated_at = now or utc_now()
    all_circle = create_all_circle(members)

    def _result(circles: List[Circle]) -> CirclesResult:
        return CirclesResult(
            circles=[all_circle, *circles],
            generated_at=generated_at,
            expires_at=generated_at + ttl,
        )

    if len(members) < SMALL_COMMUNITY_THRESHOLD:
        logger.info("Community has %d members; returning the All circle only", len(members))
        return _result([])

    try:
        text = await classifier.complete(build_clustering_prompt(members), max_output_tokens=max_output_tokens)
        payload = extract_json_object(text)
        if payload is None:
            raise ValueError("No JSON object found in classifier response")
        if not isinstance(payload.get("circles"), list):
            raise ValueError("Classifier response has no 'circles' list")
        circles = validate_circles(payload, members)
    except Exception as e:
        logger.warning("Circle generation failed, falling back to the All circle: %s", e, exc_info=True)
        return _result([])

    logger.info("Generated %d circles for %d members", len(circles), len(members))
    return _result(circles)


def get_circle_by_id(result: CirclesResult, circle_id: str) -> Optional[Circle]:
    return next((c for c in result.circles if c.id == circle_id), None)


def summarize_circles(result: CirclesResult, include_all: bool = True) -> List[CircleOverview]:
    """Sized overviews for the bubble layout, in result order."""
    return [
        CircleOverview(
            id=c.id,
            name=c.name,
            short_name=c.short_name,
            count=len(c.members),
            member_ids=c.member_ids,
        )
        for c in result.circles
        if include_all or c.id != ALL_CIRCLE_ID
    ]
