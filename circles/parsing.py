"""
Turning free-text classifier output into bounded, typed structures.

Two independent stages:

1. ``extract_json_object`` finds the first JSON object in arbitrary text
   (prose preamble, markdown fences) and returns it, or None.
2. ``validate_circles`` / ``validate_candidates`` coerce that object into
   circles or match candidates bound to real roster members, dropping every
   entry that does not validate. Neither stage raises on bad input.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Set

from pydantic import ValidationError

from .data_models import (
    ALL_CIRCLE_ID,
    DEFAULT_TAGLINE,
    MIN_CIRCLE_SIZE,
    Circle,
    CircleMember,
    MemberProfile,
    RawCircle,
    RawCircleMember,
)
from .matching_models import MAX_MATCH_CANDIDATES, MatchCandidate, ResolvedCandidate

logger = logging.getLogger("circles.parsing")

_FENCE_RE = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\n?(.*?)```", re.DOTALL)
_SLUG_RE = re.compile(r"[^a-z0-9]+")


# ---- Stage 1: JSON object extraction ----


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index of the brace closing the object opened at ``start``; None if it never closes."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def _first_object(text: str) -> Optional[Dict[str, Any]]:
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        value = None
        if end is not None:
            try:
                value = json.loads(text[start : end + 1])
            except ValueError:
                value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: Any) -> Optional[Dict[str, Any]]:
    """Return the first JSON object found in ``text``, preferring fenced code blocks."""
    if not isinstance(text, str) or not text.strip():
        return None
    for block in _FENCE_RE.findall(text):
        found = _first_object(block)
        if found is not None:
            return found
    return _first_object(text)


# ---- Stage 2: schema validation and index resolution ----


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-") or "circle"


def _unique_id(candidate: str, used: Set[str]) -> str:
    circle_id = candidate
    suffix = 2
    while circle_id in used:
        circle_id = f"{candidate}-{suffix}"
        suffix += 1
    used.add(circle_id)
    return circle_id


def _resolve_index(member_id: int, roster_size: int) -> Optional[int]:
    if 1 <= member_id <= roster_size:
        return member_id - 1
    return None


def _entries(payload: Any, key: str) -> List[Any]:
    if not isinstance(payload, dict):
        logger.warning("Classifier payload is not an object (got %s)", type(payload).__name__)
        return []
    entries = payload.get(key)
    if not isinstance(entries, list):
        logger.warning("Classifier payload has no '%s' list", key)
        return []
    return entries


def _resolve_circle_members(raw: RawCircle, members: Sequence[MemberProfile]) -> List[CircleMember]:
    resolved: List[CircleMember] = []
    seen: Set[int] = set()
    for ref in raw.members:
        try:
            entry = RawCircleMember.model_validate(ref)
        except ValidationError:
            logger.debug("Dropping malformed member reference %r in circle %r", ref, raw.name)
            continue
        position = _resolve_index(entry.member_id, len(members))
        if position is None:
            logger.debug("Dropping out-of-range memberId %s in circle %r", entry.member_id, raw.name)
            continue
        if position in seen:
            continue
        seen.add(position)
        resolved.append(CircleMember.from_profile(members[position], entry.tagline or DEFAULT_TAGLINE))
    return resolved


def validate_circles(payload: Any, members: Sequence[MemberProfile]) -> List[Circle]:
    """Coerce a clustering payload into circles of real roster members.

    Args:
        payload: Object returned by ``extract_json_object``; expected to hold a
            ``circles`` list of ``{id, name, shortName, members: [{memberId, tagline}]}``.
        members: The roster in the order used for the 1-based indices of the request.

    Returns:
        Circles with at least ``MIN_CIRCLE_SIZE`` resolved members, ids unique and
        never equal to the All-circle id. Malformed entries are dropped.
    """
    circles: List[Circle] = []
    used_ids: Set[str] = {ALL_CIRCLE_ID}
    for entry in _entries(payload, "circles"):
        try:
            raw = RawCircle.model_validate(entry)
        except ValidationError:
            logger.debug("Dropping malformed circle %r", entry)
            continue

        resolved = _resolve_circle_members(raw, members)
        if len(resolved) < MIN_CIRCLE_SIZE:
            logger.debug("Dropping circle %r with %d resolved members", raw.name, len(resolved))
            continue

        circles.append(
            Circle(
                id=_unique_id(slugify(raw.id or raw.name), used_ids),
                name=raw.name,
                short_name=raw.short_name or raw.name,
                members=resolved,
            )
        )
    return circles


def validate_candidates(
    payload: Any,
    pool: Sequence[MemberProfile],
    limit: int = MAX_MATCH_CANDIDATES,
) -> List[ResolvedCandidate]:
    """Coerce a matching payload into at most ``limit`` candidates bound to pool members."""
    resolved: List[ResolvedCandidate] = []
    seen: Set[int] = set()
    for entry in _entries(payload, "candidates"):
        try:
            candidate = MatchCandidate.model_validate(entry)
        except ValidationError:
            logger.debug("Dropping malformed candidate %r", entry)
            continue
        position = _resolve_index(candidate.member_id, len(pool))
        if position is None:
            logger.debug("Dropping out-of-range candidate memberId %s", candidate.member_id)
            continue
        if position in seen:
            continue
        seen.add(position)
        resolved.append(ResolvedCandidate(member=pool[position], candidate=candidate))
        if len(resolved) >= limit:
            break
    return resolved
