"""
Breeding Repository

The storage port used by the breeding services, plus an in-memory adapter
for local development and tests. The PostgreSQL adapter lives in
breeding_repository_postgres.py.

Key principles:
- All operations are async; every call is an I/O boundary
- save() is an upsert guarded by the aggregate version (optimistic lock)
- update_breeding_status_days() refreshes derived fields without a version bump
- Ownership of an animal is looked up by cattle_id, never stored on the aggregate
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from ..errors import StaleAggregateError
from .breeding_aggregate import BreedingAggregate, baseline_parity
from .event_recompute import RecomputedBreeding, recompute
from .status_machine import needs_attention
from .summary_calculator import BreedingStatistics, herd_statistics

logger = logging.getLogger(__name__)


class BreedingRepository(Protocol):

    async def find_by_cattle_id(self, cattle_id: int) -> Optional[BreedingAggregate]:
        ...

    async def save(self, aggregate: BreedingAggregate) -> BreedingAggregate:
        """
        Upsert by cattle_id.

        Raises:
            StaleAggregateError: If a stored aggregate exists and its version
                is not aggregate.version - 1
        """
        ...

    async def get_breeding_history(
        self,
        cattle_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list:
        ...

    async def find_cattle_needing_attention(self, owner_id: str, reference_date: datetime) -> List[int]:
        ...

    async def update_breeding_status_days(
        self,
        cattle_id: int,
        reference_date: datetime,
        recomputed: RecomputedBreeding,
    ) -> None:
        ...

    async def get_breeding_statistics(
        self,
        owner_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> BreedingStatistics:
        ...

    async def list_breeding_cattle_ids(self, limit: int, offset: int = 0) -> List[int]:
        ...


def _in_window(timestamp: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and timestamp < start:
        return False
    if end is not None and timestamp > end:
        return False
    return True


class InMemoryBreedingRepository:
    """Dict-backed repository. Not shared across processes."""

    def __init__(self):
        self._aggregates: Dict[int, BreedingAggregate] = {}
        self._owners: Dict[int, str] = {}

    def register_cattle(self, cattle_id: int, owner_id: str) -> None:
        """Record which user owns an animal (the cattle context's job in production)."""
        self._owners[cattle_id] = owner_id

    def _owned_by(self, owner_id: str) -> List[int]:
        return sorted(
            cattle_id for cattle_id, owner in self._owners.items()
            if owner == owner_id and cattle_id in self._aggregates
        )

    async def find_by_cattle_id(self, cattle_id: int) -> Optional[BreedingAggregate]:
        return self._aggregates.get(cattle_id)

    async def save(self, aggregate: BreedingAggregate) -> BreedingAggregate:
        stored = self._aggregates.get(aggregate.cattle_id)
        if stored is not None and stored.version != aggregate.version - 1:
            raise StaleAggregateError(aggregate.cattle_id, aggregate.version - 1, stored.version)
        self._aggregates[aggregate.cattle_id] = aggregate
        return aggregate

    async def get_breeding_history(
        self,
        cattle_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list:
        aggregate = self._aggregates.get(cattle_id)
        if aggregate is None:
            return []
        return [e for e in aggregate.history if _in_window(e.timestamp, start_date, end_date)]

    async def find_cattle_needing_attention(self, owner_id: str, reference_date: datetime) -> List[int]:
        result = []
        for cattle_id in self._owned_by(owner_id):
            aggregate = self._aggregates[cattle_id]
            recomputed = recompute(cattle_id, aggregate.history, reference_date, baseline_parity(aggregate))
            if not recomputed.is_ok:
                logger.warning(f"Skipping cattle {cattle_id} in attention scan: {recomputed.error.message}")
                continue
            if needs_attention(recomputed.value.status, reference_date):
                result.append(cattle_id)
        return result

    async def update_breeding_status_days(
        self,
        cattle_id: int,
        reference_date: datetime,
        recomputed: RecomputedBreeding,
    ) -> None:
        aggregate = self._aggregates.get(cattle_id)
        if aggregate is None:
            logger.warning(f"No breeding aggregate to refresh for cattle {cattle_id}")
            return
        self._aggregates[cattle_id] = replace(
            aggregate,
            current_status=recomputed.status,
            summary=recomputed.summary,
            last_updated=reference_date,
        )

    async def get_breeding_statistics(
        self,
        owner_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> BreedingStatistics:
        events = [
            event
            for cattle_id in self._owned_by(owner_id)
            for event in self._aggregates[cattle_id].history
            if _in_window(event.timestamp, start_date, end_date)
        ]
        return herd_statistics(events)

    async def list_breeding_cattle_ids(self, limit: int, offset: int = 0) -> List[int]:
        return sorted(self._aggregates)[offset:offset + limit]
