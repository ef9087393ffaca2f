"""
Breeding Aggregate

The consistency boundary for one animal: current status, rolling summary,
append-only event history and an optimistic-concurrency version.

Key principles:
- Every accepted event yields a NEW aggregate (never mutated in place)
- Status, history, summary and version advance together or not at all
- The summary is recomputed from the full new history on each event
- Association to the animal is by cattle_id only
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from ..errors import Result, ValidationError
from ..events.event_types import BreedingEventType, Calve, event_to_dict, format_datetime, sort_events
from .status_machine import (
    BreedingPhase,
    BreedingStatus,
    Inseminated,
    NotBreeding,
    Pregnant,
    create_initial_status,
    days_between,
    status_to_dict,
    transition,
)
from .summary_calculator import EMPTY_SUMMARY, BreedingSummary, summarize, summary_to_dict

INITIAL_VERSION = 1

# Cycle planning thresholds (days)
PREGNANCY_CHECK_AFTER_INSEMINATION = 21
CALVING_PREP_WINDOW = 30
RESTING_BEFORE_INSEMINATION = 60
INSEMINATION_DUE_AFTER_CALVING = 80
POSTPARTUM_RECOVERY = 45
BREEDING_RESTART_AFTER_CALVING = 60

# Phase each event type leads to when accepted
EXPECTED_PHASE = {
    BreedingEventType.INSEMINATE.value: BreedingPhase.INSEMINATED,
    BreedingEventType.CONFIRM_PREGNANCY.value: BreedingPhase.PREGNANT,
    BreedingEventType.CALVE.value: BreedingPhase.POST_CALVING,
    BreedingEventType.START_NEW_CYCLE.value: BreedingPhase.NOT_BREEDING,
}


@dataclass(frozen=True)
class BreedingAggregate:
    cattle_id: int
    current_status: BreedingStatus
    summary: BreedingSummary
    history: Tuple[Any, ...] = ()
    version: int = INITIAL_VERSION
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class CycleSummary:
    """Where the animal stands in its current cycle and what is due next."""
    phase: BreedingPhase
    cycle_start: Optional[datetime]
    days_in_cycle: Optional[int]
    next_expected_action: Optional[str]
    next_action_due: Optional[datetime]


def create_breeding_aggregate(
    cattle_id: int,
    initial_parity: int = 0,
    memo: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Result[BreedingAggregate]:
    """New aggregate in NotBreeding with empty history and version 1."""
    status = create_initial_status(initial_parity, memo)
    if not status.is_ok:
        return Result.err(status.error)
    return Result.ok(BreedingAggregate(
        cattle_id=cattle_id,
        current_status=status.value,
        summary=EMPTY_SUMMARY,
        history=(),
        version=INITIAL_VERSION,
        last_updated=created_at,
    ))


def reconstruct_aggregate(
    cattle_id: int,
    current_status: BreedingStatus,
    summary: BreedingSummary,
    history: Iterable[Any],
    version: int,
    last_updated: Optional[datetime] = None,
) -> BreedingAggregate:
    """Rebuild an aggregate from persisted parts without re-validating them."""
    return BreedingAggregate(
        cattle_id=cattle_id,
        current_status=current_status,
        summary=summary,
        history=tuple(sort_events(list(history))),
        version=version,
        last_updated=last_updated,
    )


def apply_event(aggregate: BreedingAggregate, event: Any, reference_date: datetime) -> Result[BreedingAggregate]:
    """
    Apply a breeding event to the aggregate.

    Preconditions, first failure wins:
    1. event.timestamp <= reference_date
    2. event.timestamp >= timestamp of the last history event
    3. the state machine accepts the transition

    Returns:
        Result with the new aggregate (version + 1), or the ValidationError.
        The input aggregate is never modified.
    """
    if event.timestamp > reference_date:
        return Result.err(ValidationError("Event timestamp cannot be in the future"))

    if aggregate.history and event.timestamp < aggregate.history[-1].timestamp:
        return Result.err(ValidationError("Events must be in chronological order"))

    next_status = transition(aggregate.current_status, event, reference_date)
    if not next_status.is_ok:
        return Result.err(next_status.error)

    history = aggregate.history + (event,)
    return Result.ok(replace(
        aggregate,
        current_status=next_status.value,
        history=history,
        summary=summarize(history, as_of=reference_date),
        version=aggregate.version + 1,
        last_updated=reference_date,
    ))


def is_valid(aggregate: BreedingAggregate) -> Result[bool]:
    """Audit check: status phase agrees with the last event, version is positive."""
    if aggregate.version < INITIAL_VERSION:
        return Result.err(ValidationError(
            f"Invalid aggregate version: {aggregate.version}", field="version"
        ))
    if not aggregate.history:
        return Result.ok(True)

    last_event = aggregate.history[-1]
    event_type = getattr(last_event.type, "value", last_event.type)
    expected = EXPECTED_PHASE.get(event_type)
    if expected is not None and aggregate.current_status.type != expected:
        return Result.err(ValidationError(
            f"Status {aggregate.current_status.type.value} is inconsistent with last event {event_type}",
            field="currentStatus",
        ))
    return Result.ok(True)


# =============================================================================
# QUERY HELPERS
# =============================================================================

def events_in_range(aggregate: BreedingAggregate, start: datetime, end: datetime) -> Tuple[Any, ...]:
    """History events with start <= timestamp <= end."""
    return tuple(e for e in aggregate.history if start <= e.timestamp <= end)


def last_event_of_type(aggregate: BreedingAggregate, event_type: BreedingEventType) -> Optional[Any]:
    for event in reversed(aggregate.history):
        if event.type == event_type:
            return event
    return None


def baseline_parity(aggregate: BreedingAggregate) -> int:
    """Parity the animal carried before its event log began."""
    calvings = sum(1 for e in aggregate.history if isinstance(e, Calve))
    return max(aggregate.current_status.parity - calvings, 0)


def _timestamp(event: Optional[Any]) -> Optional[datetime]:
    return event.timestamp if event is not None else None


def cycle_summary(aggregate: BreedingAggregate, reference_date: datetime) -> CycleSummary:
    status = aggregate.current_status
    action = None
    due = None

    if isinstance(status, NotBreeding):
        start = _timestamp(last_event_of_type(aggregate, BreedingEventType.CALVE))
        days = days_between(start, reference_date) if start else None
        if start and days > RESTING_BEFORE_INSEMINATION:
            action = "Insemination"
            due = start + timedelta(days=INSEMINATION_DUE_AFTER_CALVING)
    elif isinstance(status, Inseminated):
        start = _timestamp(last_event_of_type(aggregate, BreedingEventType.INSEMINATE))
        days = days_between(start, reference_date) if start else None
        action = "Pregnancy check"
        if start:
            due = start + timedelta(days=PREGNANCY_CHECK_AFTER_INSEMINATION)
    elif isinstance(status, Pregnant):
        start = _timestamp(
            last_event_of_type(aggregate, BreedingEventType.CONFIRM_PREGNANCY)
            or last_event_of_type(aggregate, BreedingEventType.INSEMINATE)
        )
        days = days_between(start, reference_date) if start else None
        if days_between(reference_date, status.expected_calving_date) <= CALVING_PREP_WINDOW:
            action = "Calving preparation"
        else:
            action = "Calving"
        due = status.expected_calving_date
    else:
        start = _timestamp(last_event_of_type(aggregate, BreedingEventType.CALVE))
        days = days_between(start, reference_date) if start else None
        if start and days > POSTPARTUM_RECOVERY:
            action = "Breeding restart"
            due = start + timedelta(days=BREEDING_RESTART_AFTER_CALVING)

    return CycleSummary(
        phase=status.type,
        cycle_start=start,
        days_in_cycle=days,
        next_expected_action=action,
        next_action_due=due,
    )


def aggregate_to_dict(aggregate: BreedingAggregate) -> Dict[str, Any]:
    return {
        "cattleId": aggregate.cattle_id,
        "currentStatus": status_to_dict(aggregate.current_status),
        "summary": summary_to_dict(aggregate.summary),
        "history": [event_to_dict(e) for e in aggregate.history],
        "version": aggregate.version,
        "lastUpdated": format_datetime(aggregate.last_updated),
    }


def cycle_summary_to_dict(cycle: CycleSummary) -> Dict[str, Any]:
    return {
        "phase": cycle.phase.value,
        "cycleStart": format_datetime(cycle.cycle_start),
        "daysInCycle": cycle.days_in_cycle,
        "nextExpectedAction": cycle.next_expected_action,
        "nextActionDue": format_datetime(cycle.next_action_due),
    }
