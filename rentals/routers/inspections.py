from fastapi import APIRouter, Depends, status

from rentals.coordinator import coordinator
from rentals.deps import CurrentUser, require_staff
from rentals.schemas import InspectionCreate, InspectionResponse

router = APIRouter(prefix="/bookings/{booking_id}/inspections", tags=["inspections"])


@router.post("/", response_model=InspectionResponse, status_code=status.HTTP_201_CREATED)
async def record_inspection(
    booking_id: str,
    payload: InspectionCreate,
    current_user: CurrentUser = Depends(require_staff),
) -> InspectionResponse:
    """Handover or return inspection; a handover may put the booking on rent."""
    return await coordinator.record_inspection(booking_id, payload, current_user)


@router.get("/", response_model=list[InspectionResponse])
async def list_inspections(
    booking_id: str,
    _: CurrentUser = Depends(require_staff),
) -> list[InspectionResponse]:
    return await coordinator.list_inspections(booking_id)
