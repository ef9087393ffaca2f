"""Tests for the in-memory and PostgreSQL breeding repositories."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from breeding_backend.errors import StaleAggregateError
from breeding_backend.events import Calve, ConfirmPregnancy, Inseminate, StartNewCycle, event_to_dict
from breeding_backend.services.breeding_aggregate import apply_event
from breeding_backend.services.breeding_repository_postgres import PostgresBreedingRepository, _window_clause
from breeding_backend.services.event_recompute import recompute
from breeding_backend.services.status_machine import status_to_dict
from breeding_backend.services.summary_calculator import summary_to_dict

from conftest import build_aggregate, store, utc

REF = utc(2024, 1, 15)


class TestInMemorySave:
    def test_insert_then_update_in_order(self, repository):
        first = build_aggregate(1, [Inseminate(utc(2024, 1, 1))], REF)
        store(repository, first)
        second = apply_event(first, Inseminate(utc(2024, 1, 10)), REF).unwrap()
        assert asyncio.run(repository.save(second)) == second
        assert asyncio.run(repository.find_by_cattle_id(1)).version == 3

    def test_stale_write_rejected(self, repository):
        base = build_aggregate(1, [Inseminate(utc(2024, 1, 1))], REF)
        store(repository, base)
        winner = apply_event(base, Inseminate(utc(2024, 1, 10)), REF).unwrap()
        loser = apply_event(base, Inseminate(utc(2024, 1, 12)), REF).unwrap()
        asyncio.run(repository.save(winner))

        with pytest.raises(StaleAggregateError) as excinfo:
            asyncio.run(repository.save(loser))

        assert excinfo.value.stored_version == 3
        assert asyncio.run(repository.find_by_cattle_id(1)) == winner

    def test_missing_animal(self, repository):
        assert asyncio.run(repository.find_by_cattle_id(42)) is None
        assert asyncio.run(repository.get_breeding_history(42)) == []


class TestInMemoryQueries:
    def test_history_window_is_inclusive(self, repository):
        store(repository, build_aggregate(1, [
            Inseminate(utc(2023, 12, 1)),
            Inseminate(utc(2023, 12, 22)),
            Inseminate(utc(2024, 1, 12)),
        ], REF))
        history = asyncio.run(repository.get_breeding_history(1, start_date=utc(2023, 12, 22)))
        assert [e.timestamp for e in history] == [utc(2023, 12, 22), utc(2024, 1, 12)]
        history = asyncio.run(repository.get_breeding_history(1, end_date=utc(2023, 12, 22)))
        assert [e.timestamp for e in history] == [utc(2023, 12, 1), utc(2023, 12, 22)]

    def test_refresh_does_not_bump_version(self, repository):
        aggregate = build_aggregate(1, [Inseminate(utc(2024, 1, 1))], utc(2024, 1, 1))
        store(repository, aggregate)
        recomputed = recompute(1, aggregate.history, REF).unwrap()

        asyncio.run(repository.update_breeding_status_days(1, REF, recomputed))

        refreshed = asyncio.run(repository.find_by_cattle_id(1))
        assert refreshed.version == aggregate.version
        assert refreshed.current_status.days_after_insemination == 14
        assert refreshed.last_updated == REF

    def test_refresh_of_unknown_animal_is_ignored(self, repository):
        recomputed = recompute(5, [], REF).unwrap()
        asyncio.run(repository.update_breeding_status_days(5, REF, recomputed))
        assert asyncio.run(repository.find_by_cattle_id(5)) is None

    def test_listing_is_paged_by_id(self, repository):
        for cattle_id in (30, 10, 20):
            store(repository, build_aggregate(cattle_id, [], REF))
        assert asyncio.run(repository.list_breeding_cattle_ids(2)) == [10, 20]
        assert asyncio.run(repository.list_breeding_cattle_ids(2, offset=2)) == [30]

    def test_attention_uses_reference_date(self, repository):
        store(repository, build_aggregate(1, [Inseminate(utc(2024, 1, 1))], REF), owner_id="farmer-1")
        assert asyncio.run(repository.find_cattle_needing_attention("farmer-1", REF)) == []
        assert asyncio.run(repository.find_cattle_needing_attention("farmer-1", utc(2024, 1, 23))) == [1]

    def test_statistics_window(self, repository):
        store(repository, build_aggregate(1, [
            Inseminate(utc(2023, 3, 1)),
            ConfirmPregnancy(utc(2023, 4, 1), expected_calving_date=utc(2023, 12, 8)),
            StartNewCycle(utc(2023, 12, 1)),
            Inseminate(utc(2024, 1, 2)),
        ], REF), owner_id="farmer-1")

        recent = asyncio.run(repository.get_breeding_statistics("farmer-1", start_date=utc(2024, 1, 1)))
        assert recent.total_inseminations == 1
        assert recent.total_pregnancies == 0
        assert recent.average_pregnancy_rate == 0

        spring = asyncio.run(repository.get_breeding_statistics("farmer-1", end_date=utc(2023, 6, 30)))
        assert spring.total_inseminations == 1
        assert spring.total_pregnancies == 1
        assert spring.average_pregnancy_rate == 100

    def test_zero_day_average_does_not_break_attention_scan(self, repository):
        store(repository, build_aggregate(2, [
            Inseminate(utc(2022, 1, 1)),
            ConfirmPregnancy(utc(2022, 2, 1), expected_calving_date=utc(2022, 10, 1)),
            Calve(utc(2022, 10, 1, 6)),
            Inseminate(utc(2022, 10, 1, 18)),
            ConfirmPregnancy(utc(2022, 11, 1), expected_calving_date=utc(2023, 7, 10)),
            Calve(utc(2023, 7, 10)),
        ], REF), owner_id="farmer-1")
        assert asyncio.run(repository.find_by_cattle_id(2)).summary.average_days_open == 0
        assert asyncio.run(repository.find_cattle_needing_attention("farmer-1", REF)) == [2]


def fake_pool(conn):
    pool = MagicMock()
    pool.acquire = AsyncMock(return_value=conn)
    pool.release = AsyncMock()
    return pool


def fake_connection():
    conn = MagicMock()
    conn.fetchval = AsyncMock()
    conn.fetchrow = AsyncMock()
    conn.fetch = AsyncMock()
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.executemany = AsyncMock()
    return conn


class TestPostgresRepository:
    def test_window_clause(self):
        assert _window_clause(None, None, 2) == ("", [])
        sql, params = _window_clause(utc(2024, 1, 1), utc(2024, 2, 1), 2)
        assert sql == " AND e.event_timestamp >= $2 AND e.event_timestamp <= $3"
        assert params == [utc(2024, 1, 1), utc(2024, 2, 1)]
        sql, _ = _window_clause(None, utc(2024, 2, 1), 2)
        assert sql == " AND e.event_timestamp <= $2"

    def test_first_save_inserts_aggregate_and_events(self):
        conn = fake_connection()
        conn.fetchval.return_value = None
        conn.execute.return_value = "INSERT 0 1"
        repository = PostgresBreedingRepository(fake_pool(conn))
        aggregate = build_aggregate(7, [Inseminate(utc(2024, 1, 10))], REF)

        asyncio.run(repository.save(aggregate))

        rows = conn.executemany.await_args.args[1]
        assert [(r[0], r[1], r[2]) for r in rows] == [(7, 1, "Inseminate")]
        assert json.loads(rows[0][4]) == event_to_dict(Inseminate(utc(2024, 1, 10)))

    def test_update_appends_only_new_events(self):
        conn = fake_connection()
        conn.fetchval.side_effect = [2, 1]
        repository = PostgresBreedingRepository(fake_pool(conn))
        aggregate = build_aggregate(7, [Inseminate(utc(2024, 1, 1)), Inseminate(utc(2024, 1, 10))], REF)

        asyncio.run(repository.save(aggregate))

        rows = conn.executemany.await_args.args[1]
        assert [(r[1], r[3]) for r in rows] == [(2, utc(2024, 1, 10))]

    def test_version_mismatch_is_stale(self):
        conn = fake_connection()
        conn.fetchval.return_value = 5
        repository = PostgresBreedingRepository(fake_pool(conn))

        with pytest.raises(StaleAggregateError):
            asyncio.run(repository.save(build_aggregate(7, [Inseminate(utc(2024, 1, 1))], REF)))
        conn.executemany.assert_not_awaited()

    def test_concurrent_insert_is_stale(self):
        conn = fake_connection()
        conn.fetchval.return_value = None
        conn.execute.return_value = "INSERT 0 0"
        repository = PostgresBreedingRepository(fake_pool(conn))

        with pytest.raises(StaleAggregateError):
            asyncio.run(repository.save(build_aggregate(7, [], REF)))

    def test_find_rebuilds_aggregate(self):
        stored = build_aggregate(7, [Inseminate(utc(2024, 1, 10), memo="straw 3")], REF, initial_parity=1)
        conn = fake_connection()
        conn.fetchrow.return_value = {
            "cattle_id": 7,
            "current_status": json.dumps(status_to_dict(stored.current_status)),
            "summary": json.dumps(summary_to_dict(stored.summary)),
            "version": stored.version,
            "last_updated": stored.last_updated,
        }
        conn.fetch.return_value = [{"payload": json.dumps(event_to_dict(e))} for e in stored.history]
        repository = PostgresBreedingRepository(fake_pool(conn))

        assert asyncio.run(repository.find_by_cattle_id(7)) == stored
