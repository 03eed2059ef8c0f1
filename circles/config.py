from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional


DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_CACHE_TTL_HOURS = 72.0


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class EngineSettings:
    """Runtime knobs for the circles engine.

    Only values an operator may reasonably want to change live here; the
    grouping floors and layout geometry are module constants.
    """

    model: str = DEFAULT_MODEL
    clustering_max_output_tokens: int = 2048
    matching_max_output_tokens: int = 1024
    cache_ttl: timedelta = timedelta(hours=DEFAULT_CACHE_TTL_HOURS)
    coalesce_cache_misses: bool = False

    @classmethod
    def from_env(cls, model: Optional[str] = None) -> "EngineSettings":
        return cls(
            model=model or os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
            cache_ttl=timedelta(hours=_env_float("CIRCLES_CACHE_TTL_HOURS", DEFAULT_CACHE_TTL_HOURS)),
            coalesce_cache_misses=_env_flag("CIRCLES_COALESCE_MISSES"),
        )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings.from_env()
