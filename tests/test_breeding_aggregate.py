"""Tests for breeding_backend.services.breeding_aggregate."""

from breeding_backend.errors import ValidationError
from breeding_backend.events import BreedingEventType, Calve, ConfirmPregnancy, Inseminate, StartNewCycle
from breeding_backend.services.breeding_aggregate import (
    aggregate_to_dict,
    apply_event,
    baseline_parity,
    create_breeding_aggregate,
    cycle_summary,
    events_in_range,
    is_valid,
    last_event_of_type,
    reconstruct_aggregate,
)
from breeding_backend.services.status_machine import BreedingPhase, Inseminated, NotBreeding, Pregnant
from breeding_backend.services.summary_calculator import BreedingSummary

from conftest import build_aggregate, utc

REF = utc(2024, 1, 15)


def full_cycle_events():
    return [
        Inseminate(utc(2023, 1, 10)),
        ConfirmPregnancy(utc(2023, 2, 10), expected_calving_date=utc(2023, 10, 18)),
        Calve(utc(2023, 10, 18), is_difficult_birth=False),
        StartNewCycle(utc(2023, 11, 1)),
        Inseminate(utc(2023, 12, 20)),
        Inseminate(utc(2024, 1, 10)),
    ]


class TestCreate:
    def test_new_aggregate(self):
        aggregate = create_breeding_aggregate(7, created_at=REF).unwrap()
        assert aggregate.cattle_id == 7
        assert aggregate.current_status == NotBreeding(parity=0)
        assert aggregate.history == ()
        assert aggregate.version == 1
        assert aggregate.summary == BreedingSummary()
        assert aggregate.last_updated == REF

    def test_initial_parity(self):
        assert create_breeding_aggregate(7, initial_parity=2).unwrap().current_status.parity == 2

    def test_negative_parity(self):
        result = create_breeding_aggregate(7, initial_parity=-1)
        assert isinstance(result.error, ValidationError)


class TestApplyEvent:
    def test_accepted_event_advances_everything(self):
        aggregate = create_breeding_aggregate(1).unwrap()
        updated = apply_event(aggregate, Inseminate(utc(2024, 1, 10)), REF).unwrap()
        assert updated.version == 2
        assert updated.history == (Inseminate(utc(2024, 1, 10)),)
        assert isinstance(updated.current_status, Inseminated)
        assert updated.summary.total_insemination_count == 1
        assert updated.summary.last_updated == REF
        assert updated.last_updated == REF
        # input aggregate untouched
        assert aggregate.version == 1
        assert aggregate.history == ()

    def test_future_event_rejected_and_aggregate_unchanged(self):
        aggregate = create_breeding_aggregate(1).unwrap()
        result = apply_event(aggregate, Inseminate(utc(2024, 1, 16)), REF)
        assert result.error == ValidationError("Event timestamp cannot be in the future")
        assert aggregate.version == 1
        assert aggregate.history == ()

    def test_out_of_order_rejected(self):
        aggregate = build_aggregate(1, [Inseminate(utc(2024, 1, 10))], REF)
        result = apply_event(aggregate, Inseminate(utc(2024, 1, 5)), REF)
        assert result.error.message == "Events must be in chronological order"

    def test_same_instant_accepted(self):
        aggregate = build_aggregate(1, [Inseminate(utc(2024, 1, 10))], REF)
        updated = apply_event(aggregate, Inseminate(utc(2024, 1, 10)), REF).unwrap()
        assert updated.current_status.insemination_count == 2

    def test_future_check_wins_over_order_check(self):
        aggregate = build_aggregate(1, [Inseminate(utc(2024, 1, 10))], utc(2024, 1, 12))
        result = apply_event(aggregate, Inseminate(utc(2024, 1, 5)), utc(2024, 1, 1))
        assert result.error.message == "Event timestamp cannot be in the future"

    def test_state_machine_error_propagates_verbatim(self):
        aggregate = create_breeding_aggregate(1).unwrap()
        result = apply_event(aggregate, Calve(utc(2024, 1, 10)), REF)
        assert result.error.message == "Invalid transition from NotBreeding with event Calve"

    def test_version_and_parity_are_monotonic(self):
        aggregate = create_breeding_aggregate(1).unwrap()
        parities = []
        for event in full_cycle_events() + [
            ConfirmPregnancy(utc(2024, 1, 12), expected_calving_date=utc(2024, 10, 17)),
        ]:
            previous_version = aggregate.version
            aggregate = apply_event(aggregate, event, REF).unwrap()
            assert aggregate.version == previous_version + 1
            parities.append(aggregate.current_status.parity)
        assert parities == sorted(parities)
        assert parities[-1] == 1
        assert isinstance(aggregate.current_status, Pregnant)


class TestIsValid:
    def test_consistent_aggregate(self):
        assert is_valid(build_aggregate(1, full_cycle_events(), REF)).unwrap() is True

    def test_empty_history_is_valid(self):
        assert is_valid(create_breeding_aggregate(1).unwrap()).is_ok

    def test_phase_mismatch(self):
        aggregate = reconstruct_aggregate(
            1, NotBreeding(parity=0), BreedingSummary(), [Inseminate(utc(2024, 1, 10))], version=2
        )
        result = is_valid(aggregate)
        assert isinstance(result.error, ValidationError)
        assert result.error.field == "currentStatus"

    def test_non_positive_version(self):
        aggregate = reconstruct_aggregate(1, NotBreeding(parity=0), BreedingSummary(), [], version=0)
        assert is_valid(aggregate).error.field == "version"


class TestQueries:
    def test_events_in_range_is_inclusive(self):
        aggregate = build_aggregate(1, full_cycle_events(), REF)
        found = events_in_range(aggregate, utc(2023, 10, 18), utc(2023, 12, 20))
        assert [e.type for e in found] == [
            BreedingEventType.CALVE, BreedingEventType.START_NEW_CYCLE, BreedingEventType.INSEMINATE,
        ]

    def test_last_event_of_type(self):
        aggregate = build_aggregate(1, full_cycle_events(), REF)
        assert last_event_of_type(aggregate, BreedingEventType.INSEMINATE).timestamp == utc(2024, 1, 10)
        assert last_event_of_type(aggregate, BreedingEventType.CALVE).timestamp == utc(2023, 10, 18)

    def test_baseline_parity(self):
        aggregate = build_aggregate(1, full_cycle_events(), REF, initial_parity=2)
        assert aggregate.current_status.parity == 3
        assert baseline_parity(aggregate) == 2

    def test_reconstruct_sorts_history(self):
        aggregate = reconstruct_aggregate(
            1, NotBreeding(parity=0), BreedingSummary(),
            [Inseminate(utc(2024, 1, 10)), Inseminate(utc(2024, 1, 1))], version=3,
        )
        assert [e.timestamp for e in aggregate.history] == [utc(2024, 1, 1), utc(2024, 1, 10)]

    def test_to_dict(self):
        data = aggregate_to_dict(build_aggregate(5, [Inseminate(utc(2024, 1, 10))], REF))
        assert data["cattleId"] == 5
        assert data["version"] == 2
        assert data["currentStatus"]["type"] == "Inseminated"
        assert data["history"][0]["type"] == "Inseminate"


class TestCycleSummary:
    def test_inseminated_due_for_pregnancy_check(self):
        aggregate = build_aggregate(1, [Inseminate(utc(2024, 1, 10))], REF)
        cycle = cycle_summary(aggregate, REF)
        assert cycle.phase == BreedingPhase.INSEMINATED
        assert cycle.cycle_start == utc(2024, 1, 10)
        assert cycle.days_in_cycle == 5
        assert cycle.next_expected_action == "Pregnancy check"
        assert cycle.next_action_due == utc(2024, 1, 31)

    def test_pregnant_near_calving(self):
        events = [
            Inseminate(utc(2023, 4, 20)),
            ConfirmPregnancy(utc(2023, 5, 20), expected_calving_date=utc(2024, 2, 1)),
        ]
        cycle = cycle_summary(build_aggregate(1, events, REF), REF)
        assert cycle.cycle_start == utc(2023, 5, 20)
        assert cycle.next_expected_action == "Calving preparation"
        assert cycle.next_action_due == utc(2024, 2, 1)

    def test_pregnant_far_from_calving(self):
        events = [
            Inseminate(utc(2023, 12, 1)),
            ConfirmPregnancy(utc(2024, 1, 5), expected_calving_date=utc(2024, 9, 10)),
        ]
        cycle = cycle_summary(build_aggregate(1, events, REF), REF)
        assert cycle.next_expected_action == "Calving"

    def test_post_calving_restart(self):
        events = [
            Inseminate(utc(2023, 1, 25)),
            ConfirmPregnancy(utc(2023, 3, 1), expected_calving_date=utc(2023, 11, 1)),
            Calve(utc(2023, 11, 1)),
        ]
        cycle = cycle_summary(build_aggregate(1, events, REF), REF)
        assert cycle.days_in_cycle == 75
        assert cycle.next_expected_action == "Breeding restart"
        assert cycle.next_action_due == utc(2023, 12, 31)

    def test_fresh_animal_has_no_cycle(self):
        cycle = cycle_summary(create_breeding_aggregate(1).unwrap(), REF)
        assert cycle.cycle_start is None
        assert cycle.next_expected_action is None
