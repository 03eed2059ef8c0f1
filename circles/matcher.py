"""
Icebreaker matching: recommends one introduction for a member per request.

For each request it will:

- Build the candidate pool (everyone but the member, minus recently shown
  matches unless that would leave nobody)
- Prepare a random fallback match before anything can fail
- Ask the text classifier to rank up to 5 candidates by shared interests,
  life stage, complementary skills and conversational potential
- Validate the ranking against the pool and pick one candidate at random,
  weighted by its match score, so repeated requests surface variety

Every failure resolves to the fallback match; the only empty outcome is a
pool with nobody else in it.
"""
import json
import logging
import random
from typing import Iterable, List, Optional, Sequence

from .data_models import MemberProfile
from .ingest import extract_answers_text
from .llm import TextClassifier
from .matching_models import (
    FALLBACK_MATCH_SCORE,
    MAX_MATCH_CANDIDATES,
    IcebreakerMatch,
    ResolvedCandidate,
)
from .parsing import extract_json_object, validate_candidates

logger = logging.getLogger("circles.matcher")

QUESTIONS_PER_MATCH = 3
GENERIC_ICEBREAKERS = [
    "What brought you to this community?",
    "What do you enjoy doing in your free time?",
    "What's something you've been wanting to learn?",
]


def _get_candidate_pool(
    user_id: str,
    pool: Sequence[MemberProfile],
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[MemberProfile]:
    """
    Everyone in ``pool`` except ``user_id``, without the excluded ids.

    Exclusion is a soft preference: if it would empty the pool, the
    unfiltered pool is returned instead.
    """
    candidates = [m for m in pool if m.id != user_id]
    excluded = set(exclude_ids or ())
    if not excluded:
        return candidates
    filtered = [m for m in candidates if m.id not in excluded]
    if not filtered:
        logger.info("Exclusion list covers the whole pool for %s; ignoring it", user_id)
        return candidates
    return filtered


def normalize_questions(questions: Sequence[str]) -> List[str]:
    """Exactly three questions: the returned ones first, padded with generic ones."""
    picked = list(dict.fromkeys(questions))[:QUESTIONS_PER_MATCH]
    for generic in GENERIC_ICEBREAKERS:
        if len(picked) >= QUESTIONS_PER_MATCH:
            break
        if generic not in picked:
            picked.append(generic)
    return picked


def _to_match(
    member: MemberProfile,
    match_score: float,
    shared_interests: Sequence[str],
    icebreaker_questions: Sequence[str],
) -> IcebreakerMatch:
    return IcebreakerMatch(
        user_id=member.id,
        first_name=member.first_name or "Unknown",
        last_name=member.last_name or "",
        display_name=member.display_name,
        profile_summary=member.profile_summary,
        match_score=match_score,
        shared_interests=list(shared_interests),
        icebreaker_questions=list(icebreaker_questions),
    )


def fallback_match(candidates: Sequence[MemberProfile], rng: random.Random) -> IcebreakerMatch:
    member = rng.choice(list(candidates))
    return _to_match(member, FALLBACK_MATCH_SCORE, [], GENERIC_ICEBREAKERS)


def weighted_choice(candidates: Sequence[ResolvedCandidate], rng: random.Random) -> ResolvedCandidate:
    """Pick a candidate with probability proportional to its weight.

    Draws ``r`` uniformly in ``[0, total)`` and walks the list subtracting
    weights until ``r`` is no longer positive. Zero-weight candidates are
    never chosen unless every weight is zero, in which case the pick is uniform.

    Raises:
        ValueError: If ``candidates`` is empty.
    """
    if not candidates:
        raise ValueError("Cannot choose from an empty candidate list.")
    total = sum(c.weight for c in candidates)
    if total <= 0:
        return rng.choice(list(candidates))

    remaining = rng.random() * total
    for candidate in candidates:
        if candidate.weight <= 0:
            continue
        remaining -= candidate.weight
        if remaining <= 0:
            return candidate
    # float rounding can leave a sliver past the last weight
    return next(c for c in reversed(candidates) if c.weight > 0)


def build_matching_prompt(user_profile: MemberProfile, candidates: Sequence[MemberProfile]) -> str:
    candidate_payload = [
        {
            "memberId": index,
            "name": member.display_name or "Anonymous",
            "answers": extract_answers_text(member.profile_answers),
        }
        for index, member in enumerate(candidates, start=1)
    ]
    return f"""You are finding the best connection matches for a community member.

## Current User
Name: {user_profile.display_name or "Anonymous"}
Profile Answers:
{extract_answers_text(user_profile.profile_answers)}

## Other Community Members
Each member is identified by a numeric memberId from 1 to {len(candidates)}.
{json.dumps(candidate_payload, indent=2, ensure_ascii=False)}

## Task
Rank up to {MAX_MATCH_CANDIDATES} members who would be good matches for the current user based on:
1. Shared interests and hobbies
2. Similar life experiences or stages
3. Complementary skills (one can teach, other wants to learn)
4. Potential for meaningful conversation

## Output Format
Return ONLY valid JSON (no markdown, no explanation):
{{
  "candidates": [
    {{
      "memberId": 1,
      "matchScore": 0.85,
      "sharedInterests": ["interest1", "interest2"],
      "icebreakerQuestions": [
        "Question they could ask this person?",
        "Another conversation starter?",
        "A third icebreaker question?"
      ]
    }}
  ]
}}

Provide exactly {QUESTIONS_PER_MATCH} specific, personalized icebreaker questions per candidate based on their shared interests. Only use memberId values from the list above."""


async def find_icebreaker_match(
    user_id: str,
    user_profile: MemberProfile,
    pool: Sequence[MemberProfile],
    exclude_ids: Optional[Iterable[str]] = None,
    *,
    classifier: TextClassifier,
    rng: Optional[random.Random] = None,
    max_output_tokens: int = 1024,
) -> Optional[IcebreakerMatch]:
    """Recommend one introduction for ``user_id``.

    Args:
        user_id: The member asking for a match.
        user_profile: That member's profile (used for the prompt).
        pool: Community members to match against; may include the member.
        exclude_ids: Recently shown matches to avoid when possible.
        classifier: Text-classification call returning free text.
        rng: Random source for the fallback pick and weighted selection.
        max_output_tokens: Output budget for the classifier call.

    Returns:
        An IcebreakerMatch for a real pool member, or None when nobody else is
        in the pool. Never raises for classifier or parsing failures.
    """
    rng = rng or random.Random()
    candidates = _get_candidate_pool(user_id, pool, exclude_ids)
    if not candidates:
        logger.info("No other members to match %s with", user_id)
        return None

    fallback = fallback_match(candidates, rng)

    try:
        text = await classifier.complete(
            build_matching_prompt(user_profile, candidates),
            max_output_tokens=max_output_tokens,
        )
        payload = extract_json_object(text)
        if payload is None:
            raise ValueError("No JSON object found in classifier response")
        ranked = validate_candidates(payload, candidates)
    except Exception as e:
        logger.warning("Icebreaker matching failed for %s, using random fallback: %s", user_id, e, exc_info=True)
        return fallback

    if not ranked:
        logger.warning("No valid candidates returned for %s, using random fallback", user_id)
        return fallback

    chosen = weighted_choice(ranked, rng)
    return _to_match(
        chosen.member,
        chosen.weight,
        chosen.candidate.shared_interests,
        normalize_questions(chosen.candidate.icebreaker_questions),
    )
