"""
Real-Time Calculation Service

Recomputes an animal's breeding status and summary on read, with a small
in-process cache so repeated reads on the same day stay cheap.

Cache policy:
- Key is (cattle_id, calendar date of the reference time)
- An entry also expires after a TTL (default 1 hour), checked at read time
- Whichever expires first wins; force_recalculation bypasses and repopulates
- No cross-process coherency; recomputation is idempotent
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ..config import CALCULATION_CACHE_TTL_SECONDS
from ..errors import InfraError, NotFound, Result
from .breeding_aggregate import baseline_parity
from .breeding_repository import BreedingRepository
from .event_recompute import recompute
from .status_machine import BreedingStatus
from .summary_calculator import BreedingSummary

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CalculationResult:
    cattle_id: int
    status: BreedingStatus
    summary: BreedingSummary
    calculated_at: datetime
    cache_hit: bool = False


@dataclass(frozen=True)
class _CacheEntry:
    result: CalculationResult
    stored_at: datetime


class RealTimeCalculationService:
    """Per-animal recomputation on read, cached per day and TTL."""

    def __init__(
        self,
        repository: BreedingRepository,
        clock: Callable[[], datetime] = utc_now,
        cache_ttl_seconds: int = CALCULATION_CACHE_TTL_SECONDS,
    ):
        self.repository = repository
        self.clock = clock
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._cache: Dict[Tuple[int, date], _CacheEntry] = {}

    def _is_fresh(self, key: Tuple[int, date], entry: _CacheEntry, now: datetime) -> bool:
        return key[1] == now.date() and now - entry.stored_at < self.cache_ttl

    async def calculate_details(self, cattle_id: int, force_recalculation: bool = False) -> Result[CalculationResult]:
        """
        Current status and summary for one animal, recomputed from its events.

        Returns:
            Result with CalculationResult (cache_hit tells where it came from),
            NotFound when the animal has no breeding aggregate, or InfraError
        """
        now = self.clock()
        key = (cattle_id, now.date())

        if not force_recalculation:
            entry = self._cache.get(key)
            if entry is not None:
                if self._is_fresh(key, entry, now):
                    return Result.ok(replace(entry.result, cache_hit=True))
                del self._cache[key]

        try:
            aggregate = await self.repository.find_by_cattle_id(cattle_id)
        except Exception as e:
            logger.error(f"Error loading breeding aggregate for cattle {cattle_id}: {e}", exc_info=True)
            return Result.err(InfraError("Failed to calculate cattle details in real-time", cause=e))

        if aggregate is None:
            return Result.err(NotFound("BreedingAggregate", cattle_id))

        recomputed = recompute(cattle_id, aggregate.history, now, baseline_parity(aggregate))
        if not recomputed.is_ok:
            return Result.err(recomputed.error)

        result = CalculationResult(
            cattle_id=cattle_id,
            status=recomputed.value.status,
            summary=recomputed.value.summary,
            calculated_at=now,
            cache_hit=False,
        )
        # At most one cached day per animal
        for stale in [k for k in self._cache if k[0] == cattle_id and k != key]:
            del self._cache[stale]
        self._cache[key] = _CacheEntry(result=result, stored_at=now)
        return Result.ok(result)

    async def calculate_multiple(self, cattle_ids: List[int]) -> Result[List[CalculationResult]]:
        """
        Fan out calculate_details over several animals.

        Fails fast: the first error cancels the remaining work and is returned.
        On success the results follow the order of cattle_ids.
        """
        async def _one(index: int, cattle_id: int):
            return index, await self.calculate_details(cattle_id)

        tasks = [asyncio.ensure_future(_one(i, cid)) for i, cid in enumerate(cattle_ids)]
        results: List[Optional[CalculationResult]] = [None] * len(cattle_ids)
        try:
            for next_done in asyncio.as_completed(tasks):
                index, outcome = await next_done
                if not outcome.is_ok:
                    return Result.err(outcome.error)
                results[index] = outcome.value
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        return Result.ok(results)

    def clear_cache(self) -> None:
        self._cache.clear()

    def clear_cache_for_cattle(self, cattle_id: int) -> int:
        """Drop every cached day for one animal. Returns the number removed."""
        keys = [key for key in self._cache if key[0] == cattle_id]
        for key in keys:
            del self._cache[key]
        return len(keys)

    def cleanup_expired_cache(self) -> int:
        now = self.clock()
        expired = [key for key, entry in self._cache.items() if not self._is_fresh(key, entry, now)]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.info(f"Removed {len(expired)} expired breeding calculation cache entries")
        return len(expired)

    @property
    def cache_size(self) -> int:
        return len(self._cache)
