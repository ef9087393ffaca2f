from datetime import datetime
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Query
from ..config import BATCH_DEFAULT_LIMIT
from ..dependencies import BreedingServices, get_services
from ..errors import DomainError
from ..events.event_types import ensure_utc, event_to_dict, format_datetime
from ..models import BreedingEventBody, InitializeBreedingBody
from ..services.auth_service import require_admin, resolve_requester
from ..services.breeding_aggregate import aggregate_to_dict, cycle_summary, cycle_summary_to_dict
from ..services.breeding_management import (
    BreedingEventInput,
    InitializeBreedingCommand,
    RecordBreedingEventCommand,
    next_recommended_action,
)
from ..services.status_machine import describe_phase, needs_attention, status_to_dict
from ..services.summary_calculator import performance_rating, statistics_to_dict, summary_to_dict

router = APIRouter(prefix="/breeding", tags=["breeding"])

ERROR_STATUS = {
    "ValidationError": 400,
    "NotFound": 404,
    "Conflict": 409,
    "InfraError": 503,
}


def _raise_for(error: DomainError):
    raise HTTPException(status_code=ERROR_STATUS.get(error.kind, 500), detail=error.to_dict())


def _utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


@router.get("/attention")
async def get_cattle_needing_attention(
    request: Request,
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    """Animals owned by the requester that are overdue for a breeding action"""
    owner_id = resolve_requester(request, x_user_key)
    result = await services.management.get_cattle_needing_attention(owner_id)
    if not result.is_ok:
        _raise_for(result.error)
    return {"count": len(result.value), "cattleIds": result.value}


@router.get("/statistics")
async def get_breeding_statistics(
    request: Request,
    start: datetime | None = Query(None, description="Window start (inclusive)"),
    end: datetime | None = Query(None, description="Window end (inclusive)"),
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    owner_id = resolve_requester(request, x_user_key)
    result = await services.management.get_breeding_statistics(owner_id, _utc(start), _utc(end))
    if not result.is_ok:
        _raise_for(result.error)
    return {"statistics": statistics_to_dict(result.value)}


@router.post("/batch/recalculate")
async def run_batch_recalculation(
    limit: int = Query(BATCH_DEFAULT_LIMIT, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    force: bool = Query(False),
    x_admin_secret: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    """Refresh stored day counters for a page of animals (nightly job)"""
    require_admin(x_admin_secret)
    result = await services.batch.run_batch(limit=limit, offset=offset, force=force)
    if not result.is_ok:
        _raise_for(result.error)
    batch = result.value
    return {
        "processedCount": batch.processed_count,
        "updatedCount": batch.updated_count,
        "errors": [{"cattleId": e.cattle_id, "error": e.error} for e in batch.errors],
    }


@router.post("/{cattle_id}/initialize", status_code=201)
async def initialize_breeding(
    cattle_id: int,
    body: InitializeBreedingBody,
    request: Request,
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    requester = resolve_requester(request, x_user_key)
    result = await services.management.initialize(InitializeBreedingCommand(
        requester_user_id=requester,
        cattle_id=cattle_id,
        initial_parity=body.initialParity,
        memo=body.memo,
    ))
    if not result.is_ok:
        _raise_for(result.error)
    return {"aggregate": aggregate_to_dict(result.value)}


@router.post("/{cattle_id}/events", status_code=201)
async def record_breeding_event(
    cattle_id: int,
    body: BreedingEventBody,
    request: Request,
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    """Record insemination, pregnancy confirmation, calving or a new cycle"""
    requester = resolve_requester(request, x_user_key)
    result = await services.management.record_event(RecordBreedingEventCommand(
        requester_user_id=requester,
        cattle_id=cattle_id,
        event=BreedingEventInput(
            type=body.type,
            memo=body.memo,
            expected_calving_date=_utc(body.expectedCalvingDate),
            scheduled_pregnancy_check_date=_utc(body.scheduledPregnancyCheckDate),
            is_difficult_birth=body.isDifficultBirth,
            occurred_at=_utc(body.occurredAt),
        ),
    ))
    if not result.is_ok:
        _raise_for(result.error)
    return {"aggregate": aggregate_to_dict(result.value)}


@router.get("/{cattle_id}")
async def get_breeding_status(
    cattle_id: int,
    request: Request,
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    """Stored breeding aggregate (as of its last write or batch refresh)"""
    resolve_requester(request, x_user_key)
    result = await services.management.get_status(cattle_id)
    if not result.is_ok:
        _raise_for(result.error)
    if result.value is None:
        raise HTTPException(status_code=404, detail="Breeding aggregate not found")
    return {"aggregate": aggregate_to_dict(result.value)}


@router.get("/{cattle_id}/details")
async def get_breeding_details(
    cattle_id: int,
    request: Request,
    force: bool = Query(False, description="Bypass the calculation cache"),
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    """Status and summary recomputed from events as of now"""
    resolve_requester(request, x_user_key)
    result = await services.realtime.calculate_details(cattle_id, force_recalculation=force)
    if not result.is_ok:
        _raise_for(result.error)
    details = result.value
    return {
        "cattleId": details.cattle_id,
        "status": status_to_dict(details.status),
        "phaseDescription": describe_phase(details.status),
        "needsAttention": needs_attention(details.status, details.calculated_at),
        "summary": summary_to_dict(details.summary),
        "performanceRating": performance_rating(details.summary),
        "calculatedAt": format_datetime(details.calculated_at),
        "cacheHit": details.cache_hit,
    }


@router.get("/{cattle_id}/cycle")
async def get_breeding_cycle(
    cattle_id: int,
    request: Request,
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    """Current cycle position and the next recommended action"""
    resolve_requester(request, x_user_key)
    stored = await services.management.get_status(cattle_id)
    if not stored.is_ok:
        _raise_for(stored.error)
    if stored.value is None:
        raise HTTPException(status_code=404, detail="Breeding aggregate not found")

    details = await services.realtime.calculate_details(cattle_id)
    if not details.is_ok:
        _raise_for(details.error)

    now = details.value.calculated_at
    action = next_recommended_action(details.value.status, now)
    return {
        "cycle": cycle_summary_to_dict(cycle_summary(stored.value, now)),
        "recommendedAction": {
            "action": action.action,
            "priority": action.priority,
            "dueDate": format_datetime(action.due_date),
            "description": action.description,
        },
    }


@router.get("/{cattle_id}/events")
async def get_breeding_events(
    cattle_id: int,
    request: Request,
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    x_user_key: str | None = Header(default=None),
    services: BreedingServices = Depends(get_services),
):
    resolve_requester(request, x_user_key)
    result = await services.management.get_breeding_history(cattle_id, _utc(start), _utc(end))
    if not result.is_ok:
        _raise_for(result.error)
    return {"count": len(result.value), "events": [event_to_dict(e) for e in result.value]}
