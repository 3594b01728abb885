from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends
from loguru import logger

from rentals import availability, errors
from rentals.cache import BlockedRangesCache, get_blocked_cache
from rentals.deps import CurrentUser, get_current_user
from rentals.schemas import (
    AvailabilityResponse,
    AvailableVehiclesResult,
    BlockedRange,
    VehicleFilters,
)

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("/check", response_model=AvailabilityResponse)
async def check_availability(
    car_id: UUID,
    start_date: date,
    end_date: date,
    exclude_booking_id: str | None = None,
    _: CurrentUser = Depends(get_current_user),
) -> AvailabilityResponse:
    available = await availability.is_available(
        car_id, start_date, end_date, exclude_booking_id=exclude_booking_id
    )
    return AvailabilityResponse(
        car_id=car_id, start_date=start_date, end_date=end_date, available=available
    )


@router.get("/vehicles", response_model=AvailableVehiclesResult)
async def list_available_vehicles(
    start_date: date,
    end_date: date,
    filters: VehicleFilters = Depends(),
    _: CurrentUser = Depends(get_current_user),
) -> AvailableVehiclesResult:
    return await availability.list_available_vehicles(start_date, end_date, filters)


@router.get("/vehicles/{car_id}/blocked", response_model=list[BlockedRange])
async def get_blocked_ranges(
    car_id: UUID,
    start_date: date | None = None,
    end_date: date | None = None,
    _: CurrentUser = Depends(get_current_user),
    cache: BlockedRangesCache = Depends(get_blocked_cache),
) -> list[BlockedRange]:
    """
    Occupied date ranges for a vehicle, for calendar greying.
    Any authenticated user can call this; the response contains NO customer identity.
    """
    if (start_date is None) != (end_date is None):
        raise errors.ValidationError("start_date and end_date must be given together")

    cached = await cache.get(car_id)
    if cached is not None:
        logger.debug("Cache hit for blocked ranges: car_id={}", car_id)
        ranges = [BlockedRange(**r) for r in cached]
    else:
        logger.debug("Cache miss for blocked ranges: car_id={}", car_id)
        ranges = await availability.blocked_ranges(car_id)
        await cache.set(car_id, [r.model_dump(mode="json") for r in ranges])

    if start_date is not None and end_date is not None:
        ranges = [
            r
            for r in ranges
            if availability.overlaps(r.pickup_date, r.dropoff_date, start_date, end_date)
        ]
    return ranges
