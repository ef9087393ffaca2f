import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from breeding_backend import dependencies
from breeding_backend.app import app
from breeding_backend.services.breeding_aggregate import apply_event, create_breeding_aggregate
from breeding_backend.services.breeding_repository import InMemoryBreedingRepository


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def build_aggregate(cattle_id, events, reference_date, initial_parity=0):
    """Aggregate with events applied in order; fails the test on a rejected event."""
    aggregate = create_breeding_aggregate(cattle_id, initial_parity, created_at=reference_date).unwrap()
    for event in events:
        aggregate = apply_event(aggregate, event, reference_date).unwrap()
    return aggregate


def store(repository, aggregate, owner_id=None):
    if owner_id is not None:
        repository.register_cattle(aggregate.cattle_id, owner_id)
    return asyncio.run(repository.save(aggregate))


@pytest.fixture
def clock():
    return FixedClock(utc(2024, 1, 15))


@pytest.fixture
def repository():
    return InMemoryBreedingRepository()


@pytest.fixture
def services(repository, clock):
    return dependencies.configure(repository, clock)


@pytest.fixture
def client(services):
    with TestClient(app) as c:
        yield c
