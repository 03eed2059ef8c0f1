from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .data_models import MemberProfile


FIELD_ALIASES: Dict[str, List[str]] = {
    "id": ["id", "userId", "user_id", "memberId", "member_id"],
    "first_name": ["firstName", "first_name", "First name", "First Name"],
    "last_name": ["lastName", "last_name", "Last name", "Last Name"],
    "profile_answers": ["profileAnswers", "profile_answers", "answers"],
    "profile_summary": ["profileSummary", "profile_summary", "summary"],
}


def get_alias_column(df: pd.DataFrame, key: str) -> Optional[str]:
    for candidate in FIELD_ALIASES.get(key, []):
        if candidate in df.columns:
            return candidate
    return None


def resolve_aliases(df: pd.DataFrame) -> Dict[str, Optional[str]]:
    return {key: get_alias_column(df, key) for key in FIELD_ALIASES}


# ---- Profile text extraction ----


def _format_answer(qa: Any) -> str:
    if isinstance(qa, dict):
        question = qa.get("question")
        transcript = qa.get("transcript")
        return f"{'' if question is None else question}: {'' if transcript is None else transcript}"
    return str(qa)


def _flatten_answers(answers: List[Any]) -> str:
    return "\n".join(_format_answer(qa) for qa in answers)


def extract_answers_text(profile_answers: Any) -> str:
    """Flatten a member's profile answers into one string for prompting.

    Accepted shapes:
        - list of ``{"question", "transcript"}`` dicts -> one "question: transcript" line each
        - dict of section name -> such a list -> sections flattened in insertion order
        - JSON text encoding either of the above -> decoded first
        - None / NaN -> ""
        - anything else -> ``str(value)``

    Never raises; the same input always yields the same output.
    """
    try:
        if profile_answers is None:
            return ""
        if isinstance(profile_answers, float) and pd.isna(profile_answers):
            return ""
        if isinstance(profile_answers, str):
            stripped = profile_answers.strip()
            if stripped[:1] in ("[", "{"):
                try:
                    decoded = json.loads(stripped)
                except ValueError:
                    return profile_answers
                if isinstance(decoded, (list, dict)):
                    return extract_answers_text(decoded)
            return profile_answers
        if isinstance(profile_answers, list):
            return _flatten_answers(profile_answers)
        if isinstance(profile_answers, dict):
            sections = [
                _flatten_answers(answers)
                for answers in profile_answers.values()
                if isinstance(answers, list)
            ]
            return "\n".join(s for s in sections if s)
        return str(profile_answers)
    except Exception:
        return ""


# ---- Roster loading ----


_NULL_TOKENS = {"nan", "None", "NaN", "NULL", ""}


def _clean_cell(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return None if value in _NULL_TOKENS else value
    return value


def clean_roster_df(df: pd.DataFrame) -> pd.DataFrame:
    """Light cleanup that preserves the roster schema."""

    out = df.copy()
    out.columns = [col.strip() if isinstance(col, str) else col for col in out.columns]
    for col in out.columns:
        if pd.api.types.is_object_dtype(out[col]):
            out[col] = out[col].map(_clean_cell)
    return out


def _cell(row: pd.Series, column: Optional[str]) -> Any:
    if column is None or column not in row.index:
        return None
    value = row[column]
    if isinstance(value, (list, dict)):
        return value
    if value is None or pd.isna(value):
        return None
    return value


def roster_from_df(df: pd.DataFrame) -> List[MemberProfile]:
    """Build member profiles from a roster DataFrame.

    Raises:
        KeyError: If no identifier column can be resolved.
    """
    alias_map = resolve_aliases(df)
    id_col = alias_map.get("id")
    if id_col is None:
        raise KeyError(f"Roster has no identifier column; expected one of {FIELD_ALIASES['id']}")

    members: List[MemberProfile] = []
    for _, row in df.iterrows():
        member_id = _cell(row, id_col)
        if member_id is None:
            continue
        first = _cell(row, alias_map.get("first_name"))
        last = _cell(row, alias_map.get("last_name"))
        summary = _cell(row, alias_map.get("profile_summary"))
        members.append(
            MemberProfile(
                id=member_id,
                first_name=None if first is None else str(first),
                last_name=None if last is None else str(last),
                profile_answers=_cell(row, alias_map.get("profile_answers")),
                profile_summary=None if summary is None else str(summary),
            )
        )
    return members


def load_roster_df(path: Path) -> pd.DataFrame:
    if path.suffix.lower() == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            payload = payload.get("members", [])
        if not isinstance(payload, list):
            raise ValueError(f"Expected a list of members in {path}")
        df = pd.DataFrame.from_records(payload)
    else:
        df = pd.read_csv(path, dtype=str)
    return clean_roster_df(df)


def load_roster(path: Path) -> List[MemberProfile]:
    """Read a community roster from a JSON or CSV export."""
    return roster_from_df(load_roster_df(path))
