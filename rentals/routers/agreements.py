from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from rentals.coordinator import coordinator, owns_booking
from rentals.deps import (
    CurrentUser,
    can_read_booking,
    can_sign_agreement,
    require_admin,
    require_staff,
)
from rentals.schemas import (
    AgreementIssue,
    AgreementResponse,
    AgreementSign,
    AgreementVehicleData,
)

router = APIRouter(tags=["agreements"])


@router.post(
    "/bookings/{booking_id}/agreement",
    response_model=AgreementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_agreement(
    booking_id: str,
    payload: AgreementIssue,
    _: CurrentUser = Depends(require_staff),
) -> AgreementResponse:
    return await coordinator.issue_agreement(booking_id, payload)


@router.get("/agreements/{agreement_id}", response_model=AgreementResponse)
async def get_agreement(
    agreement_id: UUID,
    current_user: CurrentUser = Depends(can_read_booking),
) -> AgreementResponse:
    agreement, booking = await coordinator.get_agreement(agreement_id)
    if not (current_user.can_read_all or owns_booking(booking, current_user)):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Agreement not found"
        )
    return agreement


@router.post("/agreements/{agreement_id}/send", response_model=AgreementResponse)
async def send_agreement(
    agreement_id: UUID,
    _: CurrentUser = Depends(require_staff),
) -> AgreementResponse:
    return await coordinator.send_agreement(agreement_id)


@router.post("/agreements/{agreement_id}/sign", response_model=AgreementResponse)
async def sign_agreement(
    agreement_id: UUID,
    payload: AgreementSign,
    current_user: CurrentUser = Depends(can_sign_agreement),
) -> AgreementResponse:
    # Ownership is checked under the agreement lock, not here
    return await coordinator.sign_agreement(agreement_id, payload, current_user)


@router.patch(
    "/agreements/{agreement_id}/vehicle-data", response_model=AgreementResponse
)
async def correct_vehicle_data(
    agreement_id: UUID,
    payload: AgreementVehicleData,
    _: CurrentUser = Depends(require_admin),
) -> AgreementResponse:
    return await coordinator.correct_vehicle_data(agreement_id, payload)
