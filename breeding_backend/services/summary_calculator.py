"""
Breeding Summary Calculator

Folds a chronological list of breeding events into rolling statistics.

Key principles:
- The summary is always recomputed from the ENTIRE history, never incremented
- Averages stay None until there is enough history to compute them
- All averages round to whole days, ties rounding half-up
- Unknown stored events are ignored here
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from ..errors import Result, ValidationError
from ..events.event_types import (
    Calve,
    ConfirmPregnancy,
    Inseminate,
    format_datetime,
    parse_datetime,
    sort_events,
)

ONE_DAY = timedelta(days=1)
SUMMARY_REFRESH_DAYS = 30


@dataclass(frozen=True)
class BreedingSummary:
    total_insemination_count: int = 0
    pregnancy_head_count: int = 0
    difficult_birth_count: int = 0
    pregnancy_success_rate: Optional[int] = None
    average_pregnancy_period: Optional[int] = None
    average_calving_interval: Optional[int] = None
    average_days_open: Optional[int] = None
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class BreedingStatistics:
    """Herd-level counters over a time window."""
    total_inseminations: int = 0
    total_pregnancies: int = 0
    total_calvings: int = 0
    average_pregnancy_rate: int = 0
    difficult_birth_rate: int = 0


EMPTY_SUMMARY = BreedingSummary()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _days(start: datetime, end: datetime) -> int:
    return (end - start) // ONE_DAY


def _average(values: List[int]) -> Optional[int]:
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def _average_pregnancy_period(inseminations: List[Inseminate], calvings: List[Calve]) -> Optional[int]:
    gaps = []
    for calving in calvings:
        prior = [i for i in inseminations if i.timestamp <= calving.timestamp]
        if prior:
            gaps.append(_days(prior[-1].timestamp, calving.timestamp))
    return _average(gaps)


def _average_calving_interval(calvings: List[Calve]) -> Optional[int]:
    gaps = [
        _days(earlier.timestamp, later.timestamp)
        for earlier, later in zip(calvings, calvings[1:])
    ]
    return _average(gaps)


def _average_days_open(inseminations: List[Inseminate], calvings: List[Calve]) -> Optional[int]:
    gaps = []
    for earlier, later in zip(calvings, calvings[1:]):
        between = [
            i for i in inseminations
            if earlier.timestamp < i.timestamp < later.timestamp
        ]
        if between:
            gaps.append(_days(earlier.timestamp, between[0].timestamp))
    return _average(gaps)


def summarize(history: Iterable[Any], as_of: Optional[datetime] = None) -> BreedingSummary:
    """
    Compute the breeding summary from a full event history.

    Args:
        history: Breeding events in any order (sorted internally)
        as_of: Value for last_updated; defaults to the last event timestamp

    Returns:
        BreedingSummary derived purely from the events
    """
    events = sort_events(list(history))
    inseminations = [e for e in events if isinstance(e, Inseminate)]
    confirmations = [e for e in events if isinstance(e, ConfirmPregnancy)]
    calvings = [e for e in events if isinstance(e, Calve)]

    success_rate = None
    if inseminations:
        success_rate = round_half_up(100 * len(confirmations) / len(inseminations))

    if as_of is None and events:
        as_of = events[-1].timestamp

    return BreedingSummary(
        total_insemination_count=len(inseminations),
        pregnancy_head_count=len(confirmations),
        difficult_birth_count=sum(1 for c in calvings if c.is_difficult_birth),
        pregnancy_success_rate=success_rate,
        average_pregnancy_period=_average_pregnancy_period(inseminations, calvings),
        average_calving_interval=_average_calving_interval(calvings),
        average_days_open=_average_days_open(inseminations, calvings),
        last_updated=as_of,
    )


def create_breeding_summary(
    total_insemination_count: int = 0,
    pregnancy_head_count: int = 0,
    difficult_birth_count: int = 0,
    pregnancy_success_rate: Optional[int] = None,
    average_pregnancy_period: Optional[int] = None,
    average_calving_interval: Optional[int] = None,
    average_days_open: Optional[int] = None,
    last_updated: Optional[datetime] = None,
) -> Result[BreedingSummary]:
    """Build a summary from untrusted values, rejecting impossible numbers."""
    counts = {
        "totalInseminationCount": total_insemination_count,
        "pregnancyHeadCount": pregnancy_head_count,
        "difficultBirthCount": difficult_birth_count,
    }
    for name, value in counts.items():
        if value < 0:
            return Result.err(ValidationError(f"{name} cannot be negative", field=name))

    if pregnancy_success_rate is not None and not 0 <= pregnancy_success_rate <= 100:
        return Result.err(ValidationError(
            "pregnancySuccessRate must be between 0 and 100", field="pregnancySuccessRate"
        ))

    averages = {
        "averagePregnancyPeriod": average_pregnancy_period,
        "averageCalvingInterval": average_calving_interval,
        "averageDaysOpen": average_days_open,
    }
    for name, value in averages.items():
        if value is not None and value <= 0:
            return Result.err(ValidationError(f"{name} must be positive", field=name))

    return Result.ok(BreedingSummary(
        total_insemination_count=total_insemination_count,
        pregnancy_head_count=pregnancy_head_count,
        difficult_birth_count=difficult_birth_count,
        pregnancy_success_rate=pregnancy_success_rate,
        average_pregnancy_period=average_pregnancy_period,
        average_calving_interval=average_calving_interval,
        average_days_open=average_days_open,
        last_updated=last_updated,
    ))


def herd_statistics(events: Iterable[Any]) -> BreedingStatistics:
    """Aggregate counters across many animals' events (already filtered to a window)."""
    events = list(events)
    inseminations = sum(1 for e in events if isinstance(e, Inseminate))
    pregnancies = sum(1 for e in events if isinstance(e, ConfirmPregnancy))
    calvings = [e for e in events if isinstance(e, Calve)]
    difficult = sum(1 for c in calvings if c.is_difficult_birth)

    return BreedingStatistics(
        total_inseminations=inseminations,
        total_pregnancies=pregnancies,
        total_calvings=len(calvings),
        average_pregnancy_rate=round_half_up(100 * pregnancies / inseminations) if inseminations else 0,
        difficult_birth_rate=round_half_up(100 * difficult / len(calvings)) if calvings else 0,
    )


def performance_rating(summary: BreedingSummary) -> str:
    rate = summary.pregnancy_success_rate
    if rate is None:
        return "Unknown"
    if rate >= 90:
        return "Excellent"
    if rate >= 75:
        return "Good"
    if rate >= 60:
        return "Average"
    return "Poor"


def summary_needs_refresh(summary: BreedingSummary, reference_date: datetime) -> bool:
    """True when the summary was never computed or is older than 30 days."""
    if summary.last_updated is None:
        return True
    return _days(summary.last_updated, reference_date) > SUMMARY_REFRESH_DAYS


# =============================================================================
# SERIALIZATION
# =============================================================================

def summary_to_dict(summary: BreedingSummary) -> Dict[str, Any]:
    return {
        "totalInseminationCount": summary.total_insemination_count,
        "pregnancyHeadCount": summary.pregnancy_head_count,
        "difficultBirthCount": summary.difficult_birth_count,
        "pregnancySuccessRate": summary.pregnancy_success_rate,
        "averagePregnancyPeriod": summary.average_pregnancy_period,
        "averageCalvingInterval": summary.average_calving_interval,
        "averageDaysOpen": summary.average_days_open,
        "lastUpdated": format_datetime(summary.last_updated),
    }


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def summary_from_dict(data: Dict[str, Any]) -> BreedingSummary:
    """
    Rebuild a summary from stored values.

    Stored summaries were produced by summarize(), which can yield an average
    of 0 days, so only negative numbers are rejected here.

    Raises:
        ValidationError: If a stored value is negative
    """
    summary = BreedingSummary(
        total_insemination_count=int(data.get("totalInseminationCount") or 0),
        pregnancy_head_count=int(data.get("pregnancyHeadCount") or 0),
        difficult_birth_count=int(data.get("difficultBirthCount") or 0),
        pregnancy_success_rate=_optional_int(data.get("pregnancySuccessRate")),
        average_pregnancy_period=_optional_int(data.get("averagePregnancyPeriod")),
        average_calving_interval=_optional_int(data.get("averageCalvingInterval")),
        average_days_open=_optional_int(data.get("averageDaysOpen")),
        last_updated=parse_datetime(data.get("lastUpdated")),
    )
    stored = summary_to_dict(summary)
    for name, value in stored.items():
        if isinstance(value, int) and value < 0:
            raise ValidationError(f"{name} cannot be negative", field=name)
    return summary


def statistics_to_dict(stats: BreedingStatistics) -> Dict[str, Any]:
    return {
        "totalInseminations": stats.total_inseminations,
        "totalPregnancies": stats.total_pregnancies,
        "totalCalvings": stats.total_calvings,
        "averagePregnancyRate": stats.average_pregnancy_rate,
        "difficultBirthRate": stats.difficult_birth_rate,
    }
