"""
Vehicle availability over closed date ranges.

Two ranges overlap when `a_start <= b_end and a_end >= b_start`; a booking
that ends on the day another starts is a conflict.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from loguru import logger
from tortoise.queryset import QuerySet

from rentals import errors
from rentals.lifecycle import INACTIVE_STATUSES
from rentals.models import Booking, Car
from rentals.schemas import (
    AvailableVehiclesResult,
    BlockedRange,
    CarResponse,
    VehicleFilters,
)


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and a_end >= b_start


def overlapping_bookings(
    start: date,
    end: date,
    car_id: UUID | None = None,
    exclude_booking_id: str | None = None,
) -> QuerySet[Booking]:
    """Active bookings whose range touches [start, end]."""
    qs = Booking.filter(
        status__not_in=[s.value for s in INACTIVE_STATUSES],
        pickup_date__lte=end,
        dropoff_date__gte=start,
    )
    if car_id is not None:
        qs = qs.filter(car_id=car_id)
    if exclude_booking_id is not None:
        qs = qs.exclude(id=exclude_booking_id)
    return qs


async def is_available(
    car_id: UUID,
    start: date,
    end: date,
    exclude_booking_id: str | None = None,
) -> bool:
    """
    Single-vehicle check. Store failures raise ExternalDependencyError;
    this never reports a vehicle as free when the store could not be read.
    """
    if start > end:
        raise errors.ValidationError("start_date must be on or before end_date")

    async with errors.store_errors("availability check", car_id=car_id):
        taken = await overlapping_bookings(
            start, end, car_id=car_id, exclude_booking_id=exclude_booking_id
        ).exists()
    return not taken


async def blocked_ranges(car_id: UUID) -> list[BlockedRange]:
    """Date ranges held by active bookings for a vehicle, earliest first."""
    qs = Booking.filter(car_id=car_id, status__not_in=[s.value for s in INACTIVE_STATUSES])
    async with errors.store_errors("blocked ranges", car_id=car_id):
        rows = await qs.order_by("pickup_date")
    return [BlockedRange.model_validate(r, from_attributes=True) for r in rows]


async def list_available_vehicles(
    start: date,
    end: date,
    filters: VehicleFilters | None = None,
) -> AvailableVehiclesResult:
    """
    All active cars matching `filters` minus those held over [start, end].
    Read path with a soft-degrade use: failures come back as a result object.
    """
    filters = filters or VehicleFilters()
    if start > end:
        return AvailableVehiclesResult(
            success=False, error="start_date must be on or before end_date"
        )

    try:
        cars_qs = Car.filter(is_active=True)
        if filters.category:
            cars_qs = cars_qs.filter(category=filters.category)
        if filters.rental_type is not None:
            cars_qs = cars_qs.filter(rental_type=filters.rental_type)
        cars = await cars_qs.order_by("name")

        busy = await overlapping_bookings(start, end).values_list("car_id", flat=True)
    except errors.STORE_ERRORS as exc:
        logger.error("Failed to list available vehicles {}..{}: {}", start, end, exc)
        return AvailableVehiclesResult(
            success=False, error="Could not load vehicle availability, please try again"
        )

    busy_ids = {UUID(str(car_id)) for car_id in busy}
    available = [
        CarResponse.model_validate(c, from_attributes=True)
        for c in cars
        if c.id not in busy_ids
    ]
    return AvailableVehiclesResult(success=True, data=available)
