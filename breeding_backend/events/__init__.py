"""
Breeding Events Module

Immutable records of reproductive facts (insemination, pregnancy
confirmation, calving, cycle restart) and their storage mapping.
"""

from .event_types import (
    BreedingEventType,
    ALL_BREEDING_EVENT_TYPES,
    BreedingEvent,
    StoredBreedingEvent,
    Inseminate,
    ConfirmPregnancy,
    Calve,
    StartNewCycle,
    UnknownBreedingEvent,
    event_to_dict,
    event_from_dict,
    parse_datetime,
    format_datetime,
    sort_events,
)

__all__ = [
    'BreedingEventType',
    'ALL_BREEDING_EVENT_TYPES',
    'BreedingEvent',
    'StoredBreedingEvent',
    'Inseminate',
    'ConfirmPregnancy',
    'Calve',
    'StartNewCycle',
    'UnknownBreedingEvent',
    'event_to_dict',
    'event_from_dict',
    'parse_datetime',
    'format_datetime',
    'sort_events',
]
