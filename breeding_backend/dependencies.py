"""
Service wiring for the HTTP layer.

One repository and one set of services per process; the real-time cache
lives as long as the process does.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import USE_POSTGRES
from .services.batch_recalculation import BatchRecalculationService
from .services.breeding_management import BreedingManagementService
from .services.breeding_repository import BreedingRepository, InMemoryBreedingRepository
from .services.breeding_repository_postgres import PostgresBreedingRepository
from .services.realtime_calculation import RealTimeCalculationService, utc_now

logger = logging.getLogger(__name__)


@dataclass
class BreedingServices:
    repository: BreedingRepository
    management: BreedingManagementService
    realtime: RealTimeCalculationService
    batch: BatchRecalculationService
    clock: Callable[[], datetime]


def build_services(
    repository: BreedingRepository,
    clock: Callable[[], datetime] = utc_now,
) -> BreedingServices:
    realtime = RealTimeCalculationService(repository, clock=clock)
    return BreedingServices(
        repository=repository,
        management=BreedingManagementService(repository, clock=clock, realtime=realtime),
        realtime=realtime,
        batch=BatchRecalculationService(repository, clock=clock),
        clock=clock,
    )


_services: Optional[BreedingServices] = None


def configure(repository: BreedingRepository, clock: Callable[[], datetime] = utc_now) -> BreedingServices:
    """Replace the process-wide services (startup, tests)."""
    global _services
    _services = build_services(repository, clock)
    return _services


def get_services() -> BreedingServices:
    global _services
    if _services is None:
        if USE_POSTGRES:
            repository = PostgresBreedingRepository()
        else:
            logger.warning("USE_POSTGRES is disabled; breeding data is kept in memory only")
            repository = InMemoryBreedingRepository()
        _services = build_services(repository)
    return _services
