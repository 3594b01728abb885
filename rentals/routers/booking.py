from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from rentals import lifecycle, payments, settings
from rentals.cache import BlockedRangesCache, get_blocked_cache
from rentals.coordinator import owns_booking
from rentals.crud import booking_crud
from rentals.deps import (
    CurrentUser,
    can_read_booking,
    can_write_booking,
    get_current_user,
    require_staff,
)
from rentals.models import BookingStatus
from rentals.schemas import (
    BookingCreate,
    BookingDocuments,
    BookingFilters,
    BookingResponse,
    BookingStatusUpdate,
    BookingUpdate,
    CheckoutResponse,
)
from rentals.scopes import BookingScope

router = APIRouter(prefix="/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Permission helpers
# ---------------------------------------------------------------------------

# Which caller may request each target status (on top of the lifecycle check)
_STAFF_STATUSES = {
    BookingStatus.DOCUMENTS_REJECTED,
    BookingStatus.CONFIRMED,
    BookingStatus.REJECTED,
    BookingStatus.ON_RENT,
    BookingStatus.COMPLETED,
}
_ADMIN_STATUSES = {BookingStatus.PAYMENT_COMPLETED}
_CANCEL_STATUSES = {BookingStatus.CANCELLED}
# Only reachable by uploading documents
_UPLOAD_ONLY_STATUSES = {BookingStatus.DOCUMENTS_SUBMITTED}


def _is_booker(booking: BookingResponse, current_user: CurrentUser) -> bool:
    return owns_booking(booking, current_user)


def _assert_permission(
    booking: BookingResponse,
    new_status: BookingStatus,
    current_user: CurrentUser,
) -> None:
    """
    Raise HTTP 403 if the caller may not request `new_status`.

    Rules:
      -> Payment Completed              : admin (normally set by the Stripe webhook)
      -> Documents Rejected, Confirmed,
         Rejected, On Rent,
         Completed                      : MANAGE (staff), OR admin
      -> Cancelled                      : CANCEL + booker, OR staff, OR admin
    """
    if current_user.is_admin:
        return

    if new_status in _ADMIN_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Transitioning to '{new_status}' requires "
                f"'{BookingScope.ADMIN_WRITE}' scope."
            ),
        )

    if new_status in _STAFF_STATUSES and not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Transitioning to '{new_status}' requires "
                f"'{BookingScope.MANAGE}' scope."
            ),
        )

    if new_status in _CANCEL_STATUSES:
        has_cancel = BookingScope.CANCEL in current_user.scopes
        if not (current_user.is_staff or (has_cancel and _is_booker(booking, current_user))):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=(
                    f"Transitioning to '{new_status}' requires "
                    f"'{BookingScope.CANCEL}' scope as the booking owner, "
                    f"or '{BookingScope.MANAGE}' scope."
                ),
            )


async def _get_visible_booking(
    booking_id: str, current_user: CurrentUser
) -> BookingResponse:
    """Staff see every booking; customers only their own (404 otherwise)."""
    booking = await booking_crud.get_booking(booking_id)
    if not booking or not (current_user.can_read_all or _is_booker(booking, current_user)):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_booking),
) -> list[BookingResponse]:
    if current_user.can_read_all:
        return await booking_crud.list_bookings(filters=filters)
    return await booking_crud.list_bookings(filters=filters, user_id=current_user.id)


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_write_booking),
    cache: BlockedRangesCache = Depends(get_blocked_cache),
) -> BookingResponse:
    # Staff book on behalf of a customer (registered or guest), never themselves
    user_id = payload.user_id if current_user.is_staff else current_user.id

    booking = await booking_crud.create_booking(payload, user_id=user_id)
    await cache.invalidate(payload.car_id)
    return booking


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    current_user: CurrentUser = Depends(can_read_booking),
) -> BookingResponse:
    return await _get_visible_booking(booking_id, current_user)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    _: CurrentUser = Depends(require_staff),
    cache: BlockedRangesCache = Depends(get_blocked_cache),
) -> BookingResponse:
    updated = await booking_crud.update_booking(booking_id, payload)
    if payload.changes_dates:
        await cache.invalidate(updated.car_id)
    return updated


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    cache: BlockedRangesCache = Depends(get_blocked_cache),
) -> BookingResponse:
    # Fetch the booking without ownership filter; permissions are checked below
    booking = await booking_crud.get_booking(booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )

    if payload.status in _UPLOAD_ONLY_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"'{payload.status}' is set by uploading documents, not directly.",
        )
    _assert_permission(booking, payload.status, current_user)

    updated = await booking_crud.transition_status(
        booking_id, payload.status, payload.reason
    )
    logger.bind(booking_id=booking_id, user_id=current_user.id).info(
        "Status set to '{}' by {}", updated.status.value, current_user.username
    )

    if payload.status in lifecycle.INACTIVE_STATUSES:
        await cache.invalidate(booking.car_id)
    return updated


@router.post("/{booking_id}/documents", response_model=BookingResponse)
async def submit_documents(
    booking_id: str,
    payload: BookingDocuments,
    current_user: CurrentUser = Depends(can_write_booking),
) -> BookingResponse:
    booking = await _get_visible_booking(booking_id, current_user)
    if not (current_user.is_staff or _is_booker(booking, current_user)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only submit documents for your own bookings",
        )
    return await booking_crud.submit_documents(booking_id, payload)


@router.post("/{booking_id}/checkout", response_model=CheckoutResponse)
async def create_checkout(
    booking_id: str,
    current_user: CurrentUser = Depends(can_write_booking),
) -> CheckoutResponse:
    booking = await _get_visible_booking(booking_id, current_user)
    checkout = await payments.create_checkout_session(
        booking,
        api_key=settings.STRIPE_SECRET_KEY,
        currency=settings.CURRENCY,
        success_url=settings.CHECKOUT_SUCCESS_URL,
        cancel_url=settings.CHECKOUT_CANCEL_URL,
    )
    await booking_crud.attach_checkout_session(booking_id, checkout.session_id)
    return checkout
