"""
Breeding Repository - PostgreSQL Async Implementation

Stores one row per aggregate (status and summary as JSONB) and one row per
breeding event. Ownership comes from the cattle table.

Key principles:
- save() runs in a single transaction and only appends new history rows
- The stored version is locked (FOR UPDATE) and compared before writing
- Stored status/summary are a materialization; the event rows are the truth
"""

import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from ..db_postgres import DatabaseConnection
from ..errors import StaleAggregateError
from ..events.event_types import event_from_dict, event_to_dict
from .breeding_aggregate import BreedingAggregate, baseline_parity, reconstruct_aggregate
from .event_recompute import RecomputedBreeding, recompute
from .status_machine import needs_attention, status_from_dict, status_to_dict
from .summary_calculator import BreedingStatistics, herd_statistics, summary_from_dict, summary_to_dict

logger = logging.getLogger(__name__)


def _load_json(value: Any) -> Dict[str, Any]:
    """JSONB columns come back as str unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value)
    return value


def _window_clause(start_date: Optional[datetime], end_date: Optional[datetime], first_param: int) -> Tuple[str, list]:
    clauses = []
    params: list = []
    if start_date is not None:
        params.append(start_date)
        clauses.append(f"e.event_timestamp >= ${first_param + len(params) - 1}")
    if end_date is not None:
        params.append(end_date)
        clauses.append(f"e.event_timestamp <= ${first_param + len(params) - 1}")
    sql = "".join(f" AND {c}" for c in clauses)
    return sql, params


class PostgresBreedingRepository:

    def __init__(self, pool: Optional[asyncpg.Pool] = None):
        self._pool = pool

    def _connection(self) -> DatabaseConnection:
        return DatabaseConnection(self._pool)

    @staticmethod
    def _to_aggregate(row: asyncpg.Record, events: list) -> BreedingAggregate:
        return reconstruct_aggregate(
            cattle_id=row['cattle_id'],
            current_status=status_from_dict(_load_json(row['current_status'])),
            summary=summary_from_dict(_load_json(row['summary'])),
            history=events,
            version=row['version'],
            last_updated=row['last_updated'],
        )

    async def find_by_cattle_id(self, cattle_id: int) -> Optional[BreedingAggregate]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT cattle_id, current_status, summary, version, last_updated
                FROM breeding_aggregates
                WHERE cattle_id = $1
                """,
                cattle_id,
            )
            if row is None:
                return None
            event_rows = await conn.fetch(
                "SELECT payload FROM breeding_events WHERE cattle_id = $1 ORDER BY sequence",
                cattle_id,
            )
        events = [event_from_dict(_load_json(r['payload'])) for r in event_rows]
        return self._to_aggregate(row, events)

    async def save(self, aggregate: BreedingAggregate) -> BreedingAggregate:
        status_json = json.dumps(status_to_dict(aggregate.current_status))
        summary_json = json.dumps(summary_to_dict(aggregate.summary))
        expected_version = aggregate.version - 1

        async with self._connection() as conn:
            async with conn.transaction():
                stored_version = await conn.fetchval(
                    "SELECT version FROM breeding_aggregates WHERE cattle_id = $1 FOR UPDATE",
                    aggregate.cattle_id,
                )
                if stored_version is None:
                    result = await conn.execute(
                        """
                        INSERT INTO breeding_aggregates (cattle_id, current_status, summary, version, last_updated)
                        VALUES ($1, $2::jsonb, $3::jsonb, $4, $5)
                        ON CONFLICT (cattle_id) DO NOTHING
                        """,
                        aggregate.cattle_id, status_json, summary_json, aggregate.version, aggregate.last_updated,
                    )
                    if result.endswith(" 0"):
                        raise StaleAggregateError(aggregate.cattle_id, expected_version, None)
                    stored_count = 0
                else:
                    if stored_version != expected_version:
                        raise StaleAggregateError(aggregate.cattle_id, expected_version, stored_version)
                    await conn.execute(
                        """
                        UPDATE breeding_aggregates
                        SET current_status = $2::jsonb, summary = $3::jsonb, version = $4,
                            last_updated = $5, updated_at = now()
                        WHERE cattle_id = $1
                        """,
                        aggregate.cattle_id, status_json, summary_json, aggregate.version, aggregate.last_updated,
                    )
                    stored_count = await conn.fetchval(
                        "SELECT COUNT(*) FROM breeding_events WHERE cattle_id = $1",
                        aggregate.cattle_id,
                    )

                new_events = aggregate.history[stored_count:]
                if new_events:
                    await conn.executemany(
                        """
                        INSERT INTO breeding_events (cattle_id, sequence, event_type, event_timestamp, payload)
                        VALUES ($1, $2, $3, $4, $5::jsonb)
                        """,
                        [
                            (
                                aggregate.cattle_id,
                                stored_count + i + 1,
                                event_to_dict(event)['type'],
                                event.timestamp,
                                json.dumps(event_to_dict(event)),
                            )
                            for i, event in enumerate(new_events)
                        ],
                    )

        logger.info(
            f"Saved breeding aggregate for cattle {aggregate.cattle_id} "
            f"(version {aggregate.version}, {len(new_events)} new event(s))"
        )
        return aggregate

    async def get_breeding_history(
        self,
        cattle_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list:
        window, params = _window_clause(start_date, end_date, first_param=2)
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT e.payload FROM breeding_events e
                WHERE e.cattle_id = $1{window}
                ORDER BY e.event_timestamp, e.sequence
                """,
                cattle_id, *params,
            )
        return [event_from_dict(_load_json(r['payload'])) for r in rows]

    async def _aggregates_for_owner(self, owner_id: str) -> List[BreedingAggregate]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT a.cattle_id, a.current_status, a.summary, a.version, a.last_updated
                FROM breeding_aggregates a
                JOIN cattle c ON c.cattle_id = a.cattle_id
                WHERE c.owner_user_id = $1
                ORDER BY a.cattle_id
                """,
                owner_id,
            )
            event_rows = await conn.fetch(
                """
                SELECT e.cattle_id, e.payload
                FROM breeding_events e
                JOIN cattle c ON c.cattle_id = e.cattle_id
                WHERE c.owner_user_id = $1
                ORDER BY e.cattle_id, e.sequence
                """,
                owner_id,
            )
        events_by_cattle = defaultdict(list)
        for r in event_rows:
            events_by_cattle[r['cattle_id']].append(event_from_dict(_load_json(r['payload'])))
        return [self._to_aggregate(row, events_by_cattle[row['cattle_id']]) for row in rows]

    async def find_cattle_needing_attention(self, owner_id: str, reference_date: datetime) -> List[int]:
        result = []
        for aggregate in await self._aggregates_for_owner(owner_id):
            recomputed = recompute(aggregate.cattle_id, aggregate.history, reference_date, baseline_parity(aggregate))
            if not recomputed.is_ok:
                logger.warning(
                    f"Skipping cattle {aggregate.cattle_id} in attention scan: {recomputed.error.message}"
                )
                continue
            if needs_attention(recomputed.value.status, reference_date):
                result.append(aggregate.cattle_id)
        return result

    async def update_breeding_status_days(
        self,
        cattle_id: int,
        reference_date: datetime,
        recomputed: RecomputedBreeding,
    ) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                UPDATE breeding_aggregates
                SET current_status = $2::jsonb, summary = $3::jsonb, last_updated = $4, updated_at = now()
                WHERE cattle_id = $1
                """,
                cattle_id,
                json.dumps(status_to_dict(recomputed.status)),
                json.dumps(summary_to_dict(recomputed.summary)),
                reference_date,
            )

    async def get_breeding_statistics(
        self,
        owner_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> BreedingStatistics:
        window, params = _window_clause(start_date, end_date, first_param=2)
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT e.payload
                FROM breeding_events e
                JOIN cattle c ON c.cattle_id = e.cattle_id
                WHERE c.owner_user_id = $1{window}
                """,
                owner_id, *params,
            )
        return herd_statistics(event_from_dict(_load_json(r['payload'])) for r in rows)

    async def list_breeding_cattle_ids(self, limit: int, offset: int = 0) -> List[int]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT cattle_id FROM breeding_aggregates ORDER BY cattle_id LIMIT $1 OFFSET $2",
                limit, offset,
            )
        return [r['cattle_id'] for r in rows]
