"""
Event-Based Recomputation Service

Derives an animal's current breeding status and summary purely from its
event log, ignoring whatever was stored before.

Key principles:
- Stateless: the same events and reference date always give the same result
- The latest event decides the phase; earlier events fill in counters
- Field sets mirror the state machine so a valid log reproduces the stored status
- An unrecognized stored event falls back to the initial status instead of failing
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional

from ..errors import InfraError, Result
from ..events.event_types import (
    Calve,
    ConfirmPregnancy,
    Inseminate,
    StartNewCycle,
    UnknownBreedingEvent,
    sort_events,
)
from .status_machine import (
    BreedingStatus,
    Inseminated,
    NotBreeding,
    PostCalving,
    Pregnant,
    days_between,
)
from .summary_calculator import BreedingSummary, summarize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecomputedBreeding:
    status: BreedingStatus
    summary: BreedingSummary


def _calving_before(events: List[Any], index: int) -> Optional[Calve]:
    """
    The calving that opened the cycle ending just before events[index].

    Either the event right before is a Calve, or it is a StartNewCycle that
    itself directly followed a Calve.
    """
    if index <= 0:
        return None
    previous = events[index - 1]
    if isinstance(previous, Calve):
        return previous
    if isinstance(previous, StartNewCycle) and index >= 2 and isinstance(events[index - 2], Calve):
        return events[index - 2]
    return None


def _inseminated_status(events: List[Any], parity: int, reference_date: datetime) -> Inseminated:
    latest = events[-1]
    run_start = len(events) - 1
    while run_start > 0 and isinstance(events[run_start - 1], Inseminate):
        run_start -= 1

    calving = _calving_before(events, run_start)
    days_open = None
    if calving is not None:
        days_open = days_between(calving.timestamp, events[run_start].timestamp)

    return Inseminated(
        parity=parity,
        days_after_insemination=days_between(latest.timestamp, reference_date),
        insemination_count=len(events) - run_start,
        days_open=days_open,
        memo=latest.memo,
    )


def _status_from_events(events: List[Any], base_parity: int, reference_date: datetime) -> BreedingStatus:
    if not events:
        return NotBreeding(parity=base_parity)

    parity = base_parity + sum(1 for e in events if isinstance(e, Calve))
    latest = events[-1]

    if isinstance(latest, Calve):
        return PostCalving(
            parity=parity,
            days_after_calving=days_between(latest.timestamp, reference_date),
            is_difficult_birth=latest.is_difficult_birth,
            memo=latest.memo,
            calved_at=latest.timestamp,
        )
    if isinstance(latest, ConfirmPregnancy):
        return Pregnant(
            parity=parity,
            pregnancy_days=days_between(latest.timestamp, reference_date),
            expected_calving_date=latest.expected_calving_date,
            scheduled_pregnancy_check_date=latest.scheduled_pregnancy_check_date,
            memo=latest.memo,
        )
    if isinstance(latest, Inseminate):
        return _inseminated_status(events, parity, reference_date)

    # StartNewCycle
    previous = events[-2] if len(events) >= 2 else None
    if isinstance(previous, Calve):
        return NotBreeding(
            parity=parity,
            days_after_calving=days_between(previous.timestamp, reference_date),
            memo=latest.memo,
            last_calved_at=previous.timestamp,
        )
    return NotBreeding(parity=parity, days_after_calving=None, memo=latest.memo)


def recompute(
    cattle_id: int,
    events: Iterable[Any],
    reference_date: datetime,
    base_parity: int = 0,
) -> Result[RecomputedBreeding]:
    """
    Recompute status and summary from scratch.

    Args:
        cattle_id: Animal the events belong to (used for logging)
        events: Full event log, any order
        reference_date: "Now" for every derived day count
        base_parity: Calvings that happened before the log began

    Returns:
        Result with RecomputedBreeding, or InfraError on an unexpected failure
    """
    try:
        ordered = sort_events(list(events))
        unknown = [e for e in ordered if isinstance(e, UnknownBreedingEvent)]
        recognized = [e for e in ordered if not isinstance(e, UnknownBreedingEvent)]

        if unknown:
            logger.warning(
                f"Cattle {cattle_id} has {len(unknown)} unrecognized breeding event(s) "
                f"({', '.join(sorted({e.raw_type for e in unknown}))}); status falls back to initial"
            )
            status = NotBreeding(parity=base_parity)
        else:
            status = _status_from_events(recognized, base_parity, reference_date)

        summary = summarize(recognized, as_of=reference_date if recognized else None)
        return Result.ok(RecomputedBreeding(status=status, summary=summary))
    except Exception as e:
        logger.error(f"Error recomputing breeding data for cattle {cattle_id}: {e}", exc_info=True)
        return Result.err(InfraError("Failed to calculate from events", cause=e))
