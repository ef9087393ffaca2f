"""
Breeding Event Type Definitions

This module defines the reproductive events recorded for an animal.
Events represent business facts that have occurred on the farm.

Key principles:
- Events are immutable - they cannot be modified or deleted
- There are exactly four breeding event types
- Every event carries a timezone-aware timestamp
- Storage rows are mapped to events here; unknown types are kept, not dropped
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class BreedingEventType(str, Enum):
    """
    Breeding event types.

    Naming convention: imperative verb, matching the farmer's action.
    """

    INSEMINATE = "Inseminate"
    CONFIRM_PREGNANCY = "ConfirmPregnancy"
    CALVE = "Calve"
    START_NEW_CYCLE = "StartNewCycle"


ALL_BREEDING_EVENT_TYPES: List[BreedingEventType] = list(BreedingEventType)


@dataclass(frozen=True)
class Inseminate:
    """Artificial insemination or natural service."""
    timestamp: datetime
    memo: Optional[str] = None
    type: BreedingEventType = field(default=BreedingEventType.INSEMINATE, init=False)


@dataclass(frozen=True)
class ConfirmPregnancy:
    """Pregnancy confirmed by a check (palpation, ultrasound, ...)."""
    timestamp: datetime
    expected_calving_date: datetime
    scheduled_pregnancy_check_date: Optional[datetime] = None
    memo: Optional[str] = None
    type: BreedingEventType = field(default=BreedingEventType.CONFIRM_PREGNANCY, init=False)


@dataclass(frozen=True)
class Calve:
    timestamp: datetime
    is_difficult_birth: bool = False
    memo: Optional[str] = None
    type: BreedingEventType = field(default=BreedingEventType.CALVE, init=False)


@dataclass(frozen=True)
class StartNewCycle:
    """Explicit abandon of the current cycle (failed pregnancy, skipped cycle, ...)."""
    timestamp: datetime
    memo: Optional[str] = None
    type: BreedingEventType = field(default=BreedingEventType.START_NEW_CYCLE, init=False)


@dataclass(frozen=True)
class UnknownBreedingEvent:
    """
    A stored row whose type is not recognized.

    Only the mapping layer creates these. The state machine rejects them and
    recomputation treats their presence as an empty log for status purposes.
    """
    timestamp: datetime
    raw_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    memo: Optional[str] = None
    type: str = field(default="Unknown", init=False)


BreedingEvent = Union[Inseminate, ConfirmPregnancy, Calve, StartNewCycle]
StoredBreedingEvent = Union[Inseminate, ConfirmPregnancy, Calve, StartNewCycle, UnknownBreedingEvent]


# =============================================================================
# SERIALIZATION (ISO-8601 timestamps)
# =============================================================================

def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_datetime(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string (or date/datetime) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def event_to_dict(event: StoredBreedingEvent) -> Dict[str, Any]:
    """Serialize an event to a JSON-compatible dict."""
    if isinstance(event, UnknownBreedingEvent):
        return {
            **event.payload,
            "type": event.raw_type,
            "timestamp": format_datetime(event.timestamp),
        }

    data: Dict[str, Any] = {
        "type": event.type.value,
        "timestamp": format_datetime(event.timestamp),
        "memo": event.memo,
    }
    if isinstance(event, ConfirmPregnancy):
        data["expectedCalvingDate"] = format_datetime(event.expected_calving_date)
        data["scheduledPregnancyCheckDate"] = format_datetime(event.scheduled_pregnancy_check_date)
    elif isinstance(event, Calve):
        data["isDifficultBirth"] = event.is_difficult_birth
    return data


def event_from_dict(data: Dict[str, Any]) -> StoredBreedingEvent:
    """
    Deserialize an event produced by event_to_dict.

    Args:
        data: Dict with at least 'type' and 'timestamp'

    Returns:
        The typed event, or an UnknownBreedingEvent when 'type' is not recognized

    Raises:
        ValueError: If the timestamp is missing or unparseable
    """
    timestamp = parse_datetime(data.get("timestamp"))
    if timestamp is None:
        raise ValueError("Breeding event is missing its timestamp")

    raw_type = data.get("type")
    memo = data.get("memo")

    if raw_type == BreedingEventType.INSEMINATE.value:
        return Inseminate(timestamp=timestamp, memo=memo)
    if raw_type == BreedingEventType.CONFIRM_PREGNANCY.value:
        expected = parse_datetime(data.get("expectedCalvingDate"))
        if expected is None:
            raise ValueError("ConfirmPregnancy event is missing expectedCalvingDate")
        return ConfirmPregnancy(
            timestamp=timestamp,
            expected_calving_date=expected,
            scheduled_pregnancy_check_date=parse_datetime(data.get("scheduledPregnancyCheckDate")),
            memo=memo,
        )
    if raw_type == BreedingEventType.CALVE.value:
        return Calve(
            timestamp=timestamp,
            is_difficult_birth=bool(data.get("isDifficultBirth", False)),
            memo=memo,
        )
    if raw_type == BreedingEventType.START_NEW_CYCLE.value:
        return StartNewCycle(timestamp=timestamp, memo=memo)

    logger.warning(f"Unrecognized breeding event type: {raw_type}")
    payload = {k: v for k, v in data.items() if k not in ("type", "timestamp")}
    return UnknownBreedingEvent(timestamp=timestamp, raw_type=str(raw_type), payload=payload, memo=memo)


def sort_events(events: List[StoredBreedingEvent]) -> List[StoredBreedingEvent]:
    """Stable ascending sort by timestamp (same-instant events keep log order)."""
    return sorted(events, key=lambda e: e.timestamp)
