"""
Batch Recalculation Service

Sweeps a page of the herd and refreshes the stored, time-sensitive breeding
fields (days after calving, pregnancy days, ...) from the event log.

Key principles:
- This is a derived-field refresh, not a business event: no version bump
- One animal's failure is recorded and never aborts the rest of the page
- Animals refreshed within the stale window are skipped unless forced,
  or unless their rolling summary is overdue for a refresh
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List

from ..config import BATCH_DEFAULT_LIMIT, BATCH_STALE_HOURS
from ..errors import InfraError, Result
from .breeding_aggregate import baseline_parity
from .breeding_repository import BreedingRepository
from .event_recompute import recompute
from .realtime_calculation import utc_now
from .summary_calculator import summary_needs_refresh

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchError:
    cattle_id: int
    error: str


@dataclass(frozen=True)
class BatchResult:
    processed_count: int = 0
    updated_count: int = 0
    errors: List[BatchError] = field(default_factory=list)


class BatchRecalculationService:

    def __init__(
        self,
        repository: BreedingRepository,
        clock: Callable[[], datetime] = utc_now,
        stale_hours: int = BATCH_STALE_HOURS,
    ):
        self.repository = repository
        self.clock = clock
        self.stale_after = timedelta(hours=stale_hours)

    async def _refresh_one(self, cattle_id: int, now: datetime, force: bool) -> bool:
        """
        Refresh one animal's stored derived fields.

        Returns:
            True when the animal was updated, False when it was skipped

        Raises:
            LookupError: If the animal has no breeding aggregate
            DomainError: If recomputation fails
        """
        aggregate = await self.repository.find_by_cattle_id(cattle_id)
        if aggregate is None:
            raise LookupError("Breeding aggregate not found")

        if not force and aggregate.last_updated is not None:
            summary_overdue = bool(aggregate.history) and summary_needs_refresh(aggregate.summary, now)
            if now - aggregate.last_updated < self.stale_after and not summary_overdue:
                logger.debug(f"Cattle {cattle_id}: refreshed recently, skipping")
                return False

        events = await self.repository.get_breeding_history(cattle_id)
        recomputed = recompute(cattle_id, events, now, baseline_parity(aggregate)).unwrap()
        await self.repository.update_breeding_status_days(cattle_id, now, recomputed)
        return True

    async def run_batch(
        self,
        limit: int = BATCH_DEFAULT_LIMIT,
        offset: int = 0,
        force: bool = False,
    ) -> Result[BatchResult]:
        """
        Recalculate a page of animals that have a breeding aggregate.

        Args:
            limit: Page size
            offset: Page start
            force: Refresh even if updated within the stale window

        Returns:
            Result with BatchResult; an InfraError only when the page itself
            cannot be listed
        """
        now = self.clock()
        logger.info(f"Starting breeding batch recalculation (limit={limit}, offset={offset}, force={force})")

        try:
            cattle_ids = await self.repository.list_breeding_cattle_ids(limit, offset)
        except Exception as e:
            logger.error(f"Failed to list cattle for breeding batch: {e}", exc_info=True)
            return Result.err(InfraError("Failed to list cattle for batch recalculation", cause=e))

        processed = 0
        updated = 0
        errors: List[BatchError] = []

        for cattle_id in cattle_ids:
            processed += 1
            try:
                if await self._refresh_one(cattle_id, now, force):
                    updated += 1
            except LookupError as e:
                logger.warning(f"Cattle {cattle_id}: {e}")
                errors.append(BatchError(cattle_id=cattle_id, error=str(e)))
            except Exception as e:
                message = getattr(e, "message", None) or str(e) or "Unknown error"
                logger.error(f"Cattle {cattle_id}: breeding recalculation failed: {message}", exc_info=True)
                errors.append(BatchError(cattle_id=cattle_id, error=message))

        logger.info(
            f"Breeding batch recalculation finished: processed={processed}, "
            f"updated={updated}, errors={len(errors)}"
        )
        return Result.ok(BatchResult(processed_count=processed, updated_count=updated, errors=errors))
