from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional, Protocol, Sequence

from .clustering import CACHE_TTL, generate_circles, utc_now
from .config import EngineSettings
from .data_models import CirclesResult, MemberProfile
from .llm import TextClassifier

logger = logging.getLogger("circles.cache")

CirclesGenerator = Callable[[Sequence[MemberProfile]], Awaitable[CirclesResult]]


@dataclass(frozen=True)
class CacheEntry:
    result: CirclesResult
    timestamp: datetime


class CircleStore(Protocol):
    def get(self, community_id: str) -> Optional[CacheEntry]:
        ...

    def set(self, community_id: str, entry: CacheEntry) -> None:
        ...

    def delete(self, community_id: str) -> None:
        ...


class InMemoryCircleStore:
    """Process-local store; entries live until overwritten or deleted."""

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, community_id: str) -> Optional[CacheEntry]:
        return self._entries.get(community_id)

    def set(self, community_id: str, entry: CacheEntry) -> None:
        self._entries[community_id] = entry

    def delete(self, community_id: str) -> None:
        self._entries.pop(community_id, None)

    def __contains__(self, community_id: object) -> bool:
        return community_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class CirclesCacheManager:
    """Per-community circles cache with a TTL, forced refresh and invalidation.

    Concurrent misses for one community are not coalesced unless
    ``coalesce_misses`` is set: each miss runs the generator and the last
    write wins. With coalescing, callers arriving while a generation for the
    same community is running await that generation instead of starting one.
    """

    def __init__(
        self,
        generator: CirclesGenerator,
        store: Optional[CircleStore] = None,
        ttl: timedelta = CACHE_TTL,
        clock: Callable[[], datetime] = utc_now,
        coalesce_misses: bool = False,
    ):
        self._generator = generator
        self._store = store if store is not None else InMemoryCircleStore()
        self._ttl = ttl
        self._clock = clock
        self._coalesce_misses = coalesce_misses
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._generations: Dict[str, int] = {}

    @classmethod
    def for_classifier(
        cls,
        classifier: TextClassifier,
        settings: Optional[EngineSettings] = None,
        store: Optional[CircleStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "CirclesCacheManager":
        settings = settings or EngineSettings()

        async def _generate(members: Sequence[MemberProfile]) -> CirclesResult:
            return await generate_circles(
                members,
                classifier,
                now=clock(),
                ttl=settings.cache_ttl,
                max_output_tokens=settings.clustering_max_output_tokens,
            )

        return cls(
            _generate,
            store=store,
            ttl=settings.cache_ttl,
            clock=clock,
            coalesce_misses=settings.coalesce_cache_misses,
        )

    @property
    def store(self) -> CircleStore:
        return self._store

    async def get_or_generate(
        self,
        community_id: str,
        members: Sequence[MemberProfile],
        force_refresh: bool = False,
    ) -> CirclesResult:
        now = self._clock()

        if not force_refresh:
            entry = self._store.get(community_id)
            if entry is not None and now - entry.timestamp < self._ttl:
                logger.info("Returning cached circles for community %s", community_id)
                return entry.result

        generation = self._generations.get(community_id, 0)
        if not self._coalesce_misses:
            return await self._regenerate(community_id, members, now, generation)

        task = self._in_flight.get(community_id)
        if task is None:
            task = asyncio.ensure_future(self._regenerate(community_id, members, now, generation))
            self._in_flight[community_id] = task
            task.add_done_callback(lambda _done, key=community_id: self._forget(key, _done))
        else:
            logger.info("Joining in-flight circle generation for community %s", community_id)
        return await asyncio.shield(task)

    def invalidate(self, community_id: str) -> None:
        """Drop the cached entry; generations already running will not store their result."""
        self._generations[community_id] = self._generations.get(community_id, 0) + 1
        self._store.delete(community_id)
        self._in_flight.pop(community_id, None)
        logger.info("Circles cache invalidated for community %s", community_id)

    async def _regenerate(
        self,
        community_id: str,
        members: Sequence[MemberProfile],
        now: datetime,
        generation: int,
    ) -> CirclesResult:
        logger.info("Generating new circles for community %s", community_id)
        result = await self._generator(members)
        if self._generations.get(community_id, 0) != generation:
            logger.info("Community %s was invalidated during generation; not caching the result", community_id)
            return result
        self._store.set(community_id, CacheEntry(result=result, timestamp=now))
        return result

    def _forget(self, community_id: str, task: asyncio.Future) -> None:
        if self._in_flight.get(community_id) is task:
            del self._in_flight[community_id]
        # every caller may have been cancelled; the exception is retrieved here
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Circle generation failed for community %s: %s", community_id, task.exception())
