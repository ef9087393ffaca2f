"""
Breeding Status State Machine

Maps (current phase, incoming event, reference date) to the next phase.

Key principles:
- Exactly one of four phases is active for an animal at any time
- transition() is pure: no clock reads, no I/O, no mutation
- Parity only increments on Calve out of Pregnant
- Day counts are floor((reference_date - timestamp) / 1 day) and may be negative
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from ..errors import Result, ValidationError
from ..events.event_types import (
    BreedingEventType,
    Calve,
    ConfirmPregnancy,
    Inseminate,
    StartNewCycle,
    format_datetime,
    parse_datetime,
)

ONE_DAY = timedelta(days=1)

# Attention thresholds (days)
PREGNANCY_CHECK_DUE_DAYS = 21
NEAR_CALVING_PREGNANCY_DAYS = 280
READY_FOR_BREEDING_DAYS = 60


class BreedingPhase(str, Enum):
    NOT_BREEDING = "NotBreeding"
    INSEMINATED = "Inseminated"
    PREGNANT = "Pregnant"
    POST_CALVING = "PostCalving"


@dataclass(frozen=True)
class NotBreeding:
    """Resting / awaiting the next cycle."""
    parity: int
    days_after_calving: Optional[int] = None
    memo: Optional[str] = None
    last_calved_at: Optional[datetime] = None
    type: BreedingPhase = field(default=BreedingPhase.NOT_BREEDING, init=False)


@dataclass(frozen=True)
class Inseminated:
    """Bred, pregnancy not yet confirmed."""
    parity: int
    days_after_insemination: int
    insemination_count: int
    days_open: Optional[int] = None
    memo: Optional[str] = None
    type: BreedingPhase = field(default=BreedingPhase.INSEMINATED, init=False)


@dataclass(frozen=True)
class Pregnant:
    parity: int
    pregnancy_days: int
    expected_calving_date: datetime
    scheduled_pregnancy_check_date: Optional[datetime] = None
    memo: Optional[str] = None
    type: BreedingPhase = field(default=BreedingPhase.PREGNANT, init=False)


@dataclass(frozen=True)
class PostCalving:
    """Just calved, recovering."""
    parity: int
    days_after_calving: int
    is_difficult_birth: bool
    memo: Optional[str] = None
    calved_at: Optional[datetime] = None
    type: BreedingPhase = field(default=BreedingPhase.POST_CALVING, init=False)


BreedingStatus = Union[NotBreeding, Inseminated, Pregnant, PostCalving]


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, floored (negative when end precedes start)."""
    return (end - start) // ONE_DAY


def create_initial_status(parity: int = 0, memo: Optional[str] = None) -> Result[BreedingStatus]:
    """Initial NotBreeding status for an animal entering the breeding program."""
    if parity < 0:
        return Result.err(ValidationError("Parity cannot be negative", field="parity"))
    return Result.ok(NotBreeding(parity=parity, days_after_calving=None, memo=memo))


# =============================================================================
# TRANSITION HANDLERS
# =============================================================================
# Each handler takes the current status, the event and the reference date,
# and returns the next status. The table below lists every legal pair.

def _not_breeding_inseminate(current: NotBreeding, event: Inseminate, reference_date: datetime) -> BreedingStatus:
    days_open = None
    if current.last_calved_at is not None:
        days_open = days_between(current.last_calved_at, event.timestamp)
    return Inseminated(
        parity=current.parity,
        days_after_insemination=days_between(event.timestamp, reference_date),
        insemination_count=1,
        days_open=days_open,
        memo=event.memo,
    )


def _inseminated_inseminate(current: Inseminated, event: Inseminate, reference_date: datetime) -> BreedingStatus:
    return Inseminated(
        parity=current.parity,
        days_after_insemination=days_between(event.timestamp, reference_date),
        insemination_count=current.insemination_count + 1,
        days_open=current.days_open,
        memo=event.memo,
    )


def _inseminated_confirm(current: Inseminated, event: ConfirmPregnancy, reference_date: datetime) -> BreedingStatus:
    return Pregnant(
        parity=current.parity,
        pregnancy_days=days_between(event.timestamp, reference_date),
        expected_calving_date=event.expected_calving_date,
        scheduled_pregnancy_check_date=event.scheduled_pregnancy_check_date,
        memo=event.memo,
    )


def _abandon_cycle(current: Union[Inseminated, Pregnant], event: StartNewCycle, reference_date: datetime) -> BreedingStatus:
    return NotBreeding(parity=current.parity, days_after_calving=None, memo=event.memo)


def _pregnant_calve(current: Pregnant, event: Calve, reference_date: datetime) -> BreedingStatus:
    return PostCalving(
        parity=current.parity + 1,
        days_after_calving=days_between(event.timestamp, reference_date),
        is_difficult_birth=event.is_difficult_birth,
        memo=event.memo,
        calved_at=event.timestamp,
    )


def _post_calving_inseminate(current: PostCalving, event: Inseminate, reference_date: datetime) -> BreedingStatus:
    calved_at = current.calved_at
    if calved_at is not None:
        days_open = days_between(calved_at, event.timestamp)
    else:
        # Status loaded without a calving instant: derive it from the stored counter
        days_open = current.days_after_calving
    return Inseminated(
        parity=current.parity,
        days_after_insemination=days_between(event.timestamp, reference_date),
        insemination_count=1,
        days_open=days_open,
        memo=event.memo,
    )


def _post_calving_new_cycle(current: PostCalving, event: StartNewCycle, reference_date: datetime) -> BreedingStatus:
    calved_at = current.calved_at if current.calved_at is not None else event.timestamp
    return NotBreeding(
        parity=current.parity,
        days_after_calving=days_between(calved_at, reference_date),
        memo=event.memo,
        last_calved_at=current.calved_at,
    )


TRANSITIONS: Dict[Tuple[BreedingPhase, str], Callable[[Any, Any, datetime], BreedingStatus]] = {
    (BreedingPhase.NOT_BREEDING, BreedingEventType.INSEMINATE.value): _not_breeding_inseminate,
    (BreedingPhase.INSEMINATED, BreedingEventType.INSEMINATE.value): _inseminated_inseminate,
    (BreedingPhase.INSEMINATED, BreedingEventType.CONFIRM_PREGNANCY.value): _inseminated_confirm,
    (BreedingPhase.INSEMINATED, BreedingEventType.START_NEW_CYCLE.value): _abandon_cycle,
    (BreedingPhase.PREGNANT, BreedingEventType.CALVE.value): _pregnant_calve,
    (BreedingPhase.PREGNANT, BreedingEventType.START_NEW_CYCLE.value): _abandon_cycle,
    (BreedingPhase.POST_CALVING, BreedingEventType.INSEMINATE.value): _post_calving_inseminate,
    (BreedingPhase.POST_CALVING, BreedingEventType.START_NEW_CYCLE.value): _post_calving_new_cycle,
}


def _type_name(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def transition(current: BreedingStatus, event: Any, reference_date: datetime) -> Result[BreedingStatus]:
    """
    Compute the next breeding status.

    Args:
        current: The current status
        event: The incoming breeding event
        reference_date: "Now" for derived day counts

    Returns:
        Result holding the next status, or a ValidationError naming the
        phase and event type when the pair is not a legal transition
    """
    phase = _type_name(current.type)
    event_type = _type_name(getattr(event, "type", type(event).__name__))
    handler = TRANSITIONS.get((current.type, event_type))
    if handler is None:
        return Result.err(ValidationError(f"Invalid transition from {phase} with event {event_type}"))
    return Result.ok(handler(current, event, reference_date))


# =============================================================================
# STATUS QUERIES
# =============================================================================

def needs_attention(status: BreedingStatus, reference_date: datetime) -> bool:
    """Whether the animal is overdue for a breeding-related action."""
    if isinstance(status, Inseminated):
        return status.days_after_insemination > PREGNANCY_CHECK_DUE_DAYS
    if isinstance(status, Pregnant):
        if status.scheduled_pregnancy_check_date is not None:
            return reference_date >= status.scheduled_pregnancy_check_date
        return status.pregnancy_days > NEAR_CALVING_PREGNANCY_DAYS
    if isinstance(status, PostCalving):
        return status.days_after_calving > READY_FOR_BREEDING_DAYS
    return False


def describe_phase(status: BreedingStatus) -> str:
    if isinstance(status, NotBreeding):
        if status.days_after_calving:
            return f"Resting ({status.days_after_calving} days after calving)"
        return "Awaiting breeding"
    if isinstance(status, Inseminated):
        return (
            f"Inseminated (attempt {status.insemination_count}, "
            f"{status.days_after_insemination} days ago)"
        )
    if isinstance(status, Pregnant):
        return f"Pregnant (day {status.pregnancy_days})"
    birth = "difficult birth" if status.is_difficult_birth else "normal birth"
    return f"Post-calving ({status.days_after_calving} days, {birth})"


# =============================================================================
# SERIALIZATION
# =============================================================================

def status_to_dict(status: BreedingStatus) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "type": status.type.value,
        "parity": status.parity,
        "memo": status.memo,
    }
    if isinstance(status, NotBreeding):
        data["daysAfterCalving"] = status.days_after_calving
        data["lastCalvedAt"] = format_datetime(status.last_calved_at)
    elif isinstance(status, Inseminated):
        data["daysAfterInsemination"] = status.days_after_insemination
        data["inseminationCount"] = status.insemination_count
        data["daysOpen"] = status.days_open
    elif isinstance(status, Pregnant):
        data["pregnancyDays"] = status.pregnancy_days
        data["expectedCalvingDate"] = format_datetime(status.expected_calving_date)
        data["scheduledPregnancyCheckDate"] = format_datetime(status.scheduled_pregnancy_check_date)
    elif isinstance(status, PostCalving):
        data["daysAfterCalving"] = status.days_after_calving
        data["isDifficultBirth"] = status.is_difficult_birth
        data["calvedAt"] = format_datetime(status.calved_at)
    return data


def status_from_dict(data: Dict[str, Any]) -> BreedingStatus:
    """
    Rebuild a status from status_to_dict output.

    Raises:
        ValueError: If the phase is unknown or a required field is missing
    """
    phase = data.get("type")
    parity = int(data.get("parity") or 0)
    memo = data.get("memo")

    if phase == BreedingPhase.NOT_BREEDING.value:
        return NotBreeding(
            parity=parity,
            days_after_calving=data.get("daysAfterCalving"),
            memo=memo,
            last_calved_at=parse_datetime(data.get("lastCalvedAt")),
        )
    if phase == BreedingPhase.INSEMINATED.value:
        return Inseminated(
            parity=parity,
            days_after_insemination=int(data["daysAfterInsemination"]),
            insemination_count=int(data["inseminationCount"]),
            days_open=data.get("daysOpen"),
            memo=memo,
        )
    if phase == BreedingPhase.PREGNANT.value:
        return Pregnant(
            parity=parity,
            pregnancy_days=int(data["pregnancyDays"]),
            expected_calving_date=parse_datetime(data["expectedCalvingDate"]),
            scheduled_pregnancy_check_date=parse_datetime(data.get("scheduledPregnancyCheckDate")),
            memo=memo,
        )
    if phase == BreedingPhase.POST_CALVING.value:
        return PostCalving(
            parity=parity,
            days_after_calving=int(data["daysAfterCalving"]),
            is_difficult_birth=bool(data.get("isDifficultBirth")),
            memo=memo,
            calved_at=parse_datetime(data.get("calvedAt")),
        )
    raise ValueError(f"Unknown breeding phase: {phase}")
