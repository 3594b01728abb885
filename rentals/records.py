"""
Agreement and inspection lookups shared by the lifecycle guards and the
coordinator. The latest record of each kind (by created_at) is authoritative.
"""

from __future__ import annotations

from loguru import logger

from rentals.models import (
    Agreement,
    AgreementStatus,
    InspectionType,
    VehicleInspection,
)


async def latest_agreement(booking_id: str) -> Agreement | None:
    return (
        await Agreement.filter(booking_id=booking_id).order_by("-created_at").first()
    )


async def latest_inspection(
    booking_id: str, inspection_type: InspectionType
) -> VehicleInspection | None:
    return (
        await VehicleInspection.filter(
            booking_id=booking_id, inspection_type=inspection_type
        )
        .order_by("-created_at")
        .first()
    )


async def activation_blockers(booking_id: str) -> list[str]:
    """What is still missing before the booking may go On Rent."""
    missing = []
    agreement = await latest_agreement(booking_id)
    if agreement is None or agreement.status != AgreementStatus.SIGNED:
        missing.append("signed agreement")
    if await latest_inspection(booking_id, InspectionType.HANDOVER) is None:
        missing.append("handover inspection")
    return missing


async def completion_blockers(booking_id: str) -> list[str]:
    if await latest_inspection(booking_id, InspectionType.RETURN) is None:
        return ["return inspection"]
    return []


async def can_activate_rental(booking_id: str) -> bool:
    return not await activation_blockers(booking_id)


async def can_complete_rental(booking_id: str) -> bool:
    return not await completion_blockers(booking_id)


async def ensure_draft_agreement(booking_id: str) -> Agreement:
    """Open the document stage for a paid booking. Safe to call repeatedly."""
    agreement = await latest_agreement(booking_id)
    if agreement is not None:
        return agreement
    agreement = await Agreement.create(booking_id=booking_id)
    logger.info("Draft agreement {} created for booking {}", agreement.id, booking_id)
    return agreement


async def stamp_handover_condition(booking_id: str) -> None:
    """Copy the handover fuel/odometer onto the agreement where not yet captured."""
    agreement = await latest_agreement(booking_id)
    handover = await latest_inspection(booking_id, InspectionType.HANDOVER)
    if agreement is None or handover is None:
        return

    update_fields = []
    if agreement.fuel_level is None:
        agreement.fuel_level = handover.fuel_level
        update_fields.append("fuel_level")
    if agreement.odometer_reading is None:
        agreement.odometer_reading = handover.odometer_reading
        update_fields.append("odometer_reading")
    if update_fields:
        await agreement.save(update_fields=[*update_fields, "updated_at"])
