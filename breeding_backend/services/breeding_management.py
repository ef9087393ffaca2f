"""
Breeding Management Service

Use cases exposed to the HTTP layer: record a breeding event, initialize an
animal's breeding aggregate, and the read-side queries.

Authorization is the caller's responsibility; commands only need to name the
requester and the animal.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..errors import Conflict, InfraError, Result, StaleAggregateError, ValidationError
from ..events.event_types import (
    BreedingEventType,
    Calve,
    ConfirmPregnancy,
    Inseminate,
    StartNewCycle,
)
from .breeding_aggregate import BreedingAggregate, apply_event, create_breeding_aggregate
from .breeding_repository import BreedingRepository
from .realtime_calculation import RealTimeCalculationService, utc_now
from .status_machine import BreedingStatus, Inseminated, NotBreeding, Pregnant, days_between
from .summary_calculator import BreedingStatistics

logger = logging.getLogger(__name__)


@dataclass
class BreedingEventInput:
    """Event fields as supplied by a farmer; the timestamp defaults to now."""
    type: str
    memo: Optional[str] = None
    expected_calving_date: Optional[datetime] = None
    scheduled_pregnancy_check_date: Optional[datetime] = None
    is_difficult_birth: Optional[bool] = None
    occurred_at: Optional[datetime] = None


@dataclass
class RecordBreedingEventCommand:
    requester_user_id: str
    cattle_id: int
    event: Optional[BreedingEventInput] = None


@dataclass
class InitializeBreedingCommand:
    requester_user_id: str
    cattle_id: int
    initial_parity: int = 0
    memo: Optional[str] = None


@dataclass(frozen=True)
class RecommendedAction:
    action: str
    priority: str
    due_date: Optional[datetime]
    description: str


def validate_record_event_command(cmd: RecordBreedingEventCommand) -> Result[bool]:
    if not cmd.requester_user_id:
        return Result.err(ValidationError("Requester user ID is required", field="requesterUserId"))
    if not cmd.cattle_id:
        return Result.err(ValidationError("Cattle ID is required", field="cattleId"))
    if cmd.event is None or not cmd.event.type:
        return Result.err(ValidationError("Event type is required", field="event.type"))

    if cmd.event.type == BreedingEventType.CONFIRM_PREGNANCY.value and cmd.event.expected_calving_date is None:
        return Result.err(ValidationError(
            "Expected calving date is required for pregnancy confirmation",
            field="event.expectedCalvingDate",
        ))
    if cmd.event.type == BreedingEventType.CALVE.value and cmd.event.is_difficult_birth is None:
        return Result.err(ValidationError(
            "Difficult birth flag is required for calving event",
            field="event.isDifficultBirth",
        ))
    return Result.ok(True)


def validate_initialize_command(cmd: InitializeBreedingCommand) -> Result[bool]:
    if not cmd.requester_user_id:
        return Result.err(ValidationError("Requester user ID is required", field="requesterUserId"))
    if not cmd.cattle_id:
        return Result.err(ValidationError("Cattle ID is required", field="cattleId"))
    if cmd.initial_parity < 0:
        return Result.err(ValidationError("Initial parity cannot be negative", field="initialParity"))
    return Result.ok(True)


def build_event(event_input: BreedingEventInput, timestamp: datetime) -> Result:
    """Turn validated command fields into a breeding event."""
    event_type = event_input.type
    if event_type == BreedingEventType.INSEMINATE.value:
        return Result.ok(Inseminate(timestamp=timestamp, memo=event_input.memo))
    if event_type == BreedingEventType.CONFIRM_PREGNANCY.value:
        return Result.ok(ConfirmPregnancy(
            timestamp=timestamp,
            expected_calving_date=event_input.expected_calving_date,
            scheduled_pregnancy_check_date=event_input.scheduled_pregnancy_check_date,
            memo=event_input.memo,
        ))
    if event_type == BreedingEventType.CALVE.value:
        return Result.ok(Calve(
            timestamp=timestamp,
            is_difficult_birth=bool(event_input.is_difficult_birth),
            memo=event_input.memo,
        ))
    if event_type == BreedingEventType.START_NEW_CYCLE.value:
        return Result.ok(StartNewCycle(timestamp=timestamp, memo=event_input.memo))
    return Result.err(ValidationError(f"Unknown event type: {event_type}", field="event.type"))


def next_recommended_action(status: BreedingStatus, reference_date: datetime) -> RecommendedAction:
    """What the farmer should do next for an animal in this status."""
    if isinstance(status, NotBreeding):
        if (status.days_after_calving or 0) > 60:
            return RecommendedAction(
                "Insemination", "Medium", None,
                "The animal is in its breeding window. Consider inseminating.",
            )
        return RecommendedAction(
            "Observe", "Low", None,
            "Recovering after calving. Wait a little longer before breeding.",
        )

    if isinstance(status, Inseminated):
        if status.days_after_insemination > 21:
            return RecommendedAction(
                "Pregnancy check", "High", reference_date + timedelta(days=7),
                "Time for a pregnancy check. Have a veterinarian examine the animal.",
            )
        return RecommendedAction(
            "Observe", "Low", None,
            "Observation period after insemination.",
        )

    if isinstance(status, Pregnant):
        if days_between(reference_date, status.expected_calving_date) <= 30:
            return RecommendedAction(
                "Calving preparation", "High", status.expected_calving_date,
                "Calving is near. Prepare the calving pen and watch the animal closely.",
            )
        return RecommendedAction(
            "Pregnancy management", "Low", status.scheduled_pregnancy_check_date,
            "Pregnancy is progressing. Keep up regular health checks.",
        )

    if status.days_after_calving > 45:
        return RecommendedAction(
            "Breeding restart preparation", "Medium", None,
            "Entering preparation for the next breeding cycle.",
        )
    return RecommendedAction(
        "Postpartum care", "Medium", None,
        "Postpartum recovery. Monitor the dam's health carefully.",
    )


class BreedingManagementService:
    """
    Breeding use cases over a repository.

    Every public method returns a Result; repository failures are wrapped in
    InfraError and optimistic-lock failures surface as Conflict.
    """

    def __init__(
        self,
        repository: BreedingRepository,
        clock: Callable[[], datetime] = utc_now,
        realtime: Optional[RealTimeCalculationService] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.realtime = realtime

    async def record_event(self, cmd: RecordBreedingEventCommand) -> Result[BreedingAggregate]:
        validation = validate_record_event_command(cmd)
        if not validation.is_ok:
            return Result.err(validation.error)

        now = self.clock()
        event = build_event(cmd.event, cmd.event.occurred_at or now)
        if not event.is_ok:
            return Result.err(event.error)

        try:
            aggregate = await self.repository.find_by_cattle_id(cmd.cattle_id)
            if aggregate is None:
                logger.info(f"No breeding aggregate for cattle {cmd.cattle_id}; creating one")
                aggregate = create_breeding_aggregate(cmd.cattle_id, created_at=now).unwrap()

            updated = apply_event(aggregate, event.value, now)
            if not updated.is_ok:
                return Result.err(updated.error)

            saved = await self.repository.save(updated.value)
        except StaleAggregateError as e:
            logger.warning(str(e))
            return Result.err(Conflict(
                "Breeding record was changed by another request. Reload and try again."
            ))
        except Exception as e:
            logger.error(f"Error recording breeding event for cattle {cmd.cattle_id}: {e}", exc_info=True)
            return Result.err(InfraError("Failed to record breeding event", cause=e))

        if self.realtime is not None:
            self.realtime.clear_cache_for_cattle(cmd.cattle_id)

        logger.info(
            f"Recorded {cmd.event.type} for cattle {cmd.cattle_id} by {cmd.requester_user_id} "
            f"(version {saved.version})"
        )
        return Result.ok(saved)

    async def initialize(self, cmd: InitializeBreedingCommand) -> Result[BreedingAggregate]:
        validation = validate_initialize_command(cmd)
        if not validation.is_ok:
            return Result.err(validation.error)

        try:
            existing = await self.repository.find_by_cattle_id(cmd.cattle_id)
            if existing is not None:
                return Result.err(Conflict("Breeding aggregate already exists for this cattle"))

            aggregate = create_breeding_aggregate(
                cmd.cattle_id, cmd.initial_parity, cmd.memo, created_at=self.clock()
            )
            if not aggregate.is_ok:
                return aggregate

            saved = await self.repository.save(aggregate.value)
        except StaleAggregateError:
            return Result.err(Conflict("Breeding aggregate already exists for this cattle"))
        except Exception as e:
            logger.error(f"Error initializing breeding for cattle {cmd.cattle_id}: {e}", exc_info=True)
            return Result.err(InfraError("Failed to initialize breeding aggregate", cause=e))

        logger.info(f"Initialized breeding for cattle {cmd.cattle_id} (parity {cmd.initial_parity})")
        return Result.ok(saved)

    async def get_status(self, cattle_id: int) -> Result[Optional[BreedingAggregate]]:
        try:
            return Result.ok(await self.repository.find_by_cattle_id(cattle_id))
        except Exception as e:
            logger.error(f"Error loading breeding status for cattle {cattle_id}: {e}", exc_info=True)
            return Result.err(InfraError("Failed to get breeding status", cause=e))

    async def get_breeding_history(
        self,
        cattle_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Result[list]:
        try:
            return Result.ok(await self.repository.get_breeding_history(cattle_id, start_date, end_date))
        except Exception as e:
            logger.error(f"Error loading breeding history for cattle {cattle_id}: {e}", exc_info=True)
            return Result.err(InfraError("Failed to get breeding history", cause=e))

    async def get_cattle_needing_attention(self, owner_id: str) -> Result[List[int]]:
        try:
            return Result.ok(await self.repository.find_cattle_needing_attention(owner_id, self.clock()))
        except Exception as e:
            logger.error(f"Error finding cattle needing attention for {owner_id}: {e}", exc_info=True)
            return Result.err(InfraError("Failed to get cattle needing attention", cause=e))

    async def get_breeding_statistics(
        self,
        owner_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Result[BreedingStatistics]:
        try:
            return Result.ok(await self.repository.get_breeding_statistics(owner_id, start_date, end_date))
        except Exception as e:
            logger.error(f"Error computing breeding statistics for {owner_id}: {e}", exc_info=True)
            return Result.err(InfraError("Failed to get breeding statistics", cause=e))
