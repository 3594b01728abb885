"""
All test-data builders in one place.
Import from here in every test file; never define dummy data inline.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from rentals.deps import CurrentUser
from rentals.models import (
    Agreement,
    AgreementStatus,
    Booking,
    BookingStatus,
    BookingType,
    Car,
)
from rentals.scopes import BookingScope

# ---------------------------------------------------------------------------
# Stable IDs. Use these when a specific, repeatable UUID is needed.
# Call uuid4() inline when you need a fresh one per test.
# ---------------------------------------------------------------------------

CUSTOMER_ID: UUID = uuid4()
STAFF_ID: UUID = uuid4()
ADMIN_ID: UUID = uuid4()
OTHER_USER_ID: UUID = uuid4()

BOOKING_ID = "SED-7KQ2MX"
CAR_ID: UUID = uuid4()
AGREEMENT_ID: UUID = uuid4()

CUSTOMER_EMAIL = "jane@example.com"

NOW = datetime(2026, 6, 1, 10, 0, 0, tzinfo=UTC)
PICKUP = date(2026, 7, 1)
DROPOFF = date(2026, 7, 5)


# ---------------------------------------------------------------------------
# User factories
# ---------------------------------------------------------------------------


def make_customer(
    user_id: UUID = CUSTOMER_ID,
    scopes: list[str] | None = None,
    email: str | None = CUSTOMER_EMAIL,
) -> CurrentUser:
    """Customer with read/write/cancel booking scopes and agreements:sign."""
    if scopes is None:
        scopes = [
            BookingScope.READ,
            BookingScope.WRITE,
            BookingScope.CANCEL,
            BookingScope.SIGN,
        ]
    return CurrentUser(
        id=user_id, username=f"customer_{user_id}", scopes=scopes, email=email
    )


def make_staff(
    user_id: UUID = STAFF_ID,
    scopes: list[str] | None = None,
) -> CurrentUser:
    """Rental desk staff with the manage scope."""
    if scopes is None:
        scopes = [BookingScope.MANAGE, BookingScope.WRITE]
    return CurrentUser(id=user_id, username="desk_staff", scopes=scopes)


def make_admin() -> CurrentUser:
    """Admin with all admin:bookings:* scopes."""
    return CurrentUser(
        id=ADMIN_ID,
        username="admin",
        scopes=[
            "admin:scopes",
            BookingScope.READ,
            BookingScope.WRITE,
            BookingScope.ADMIN,
            BookingScope.ADMIN_READ,
            BookingScope.ADMIN_WRITE,
        ],
    )


# ---------------------------------------------------------------------------
# Response dict factories  (mirror what the CRUD layer returns)
# ---------------------------------------------------------------------------


def booking_response(**overrides) -> dict:
    base = dict(
        id=BOOKING_ID,
        car_id=str(CAR_ID),
        user_id=str(CUSTOMER_ID),
        customer_name="Jane Driver",
        customer_email=CUSTOMER_EMAIL,
        customer_phone="+447700900123",
        pickup_location="London, UK",
        dropoff_location="London, UK",
        pickup_date=PICKUP.isoformat(),
        dropoff_date=DROPOFF.isoformat(),
        pickup_time="10:00:00",
        dropoff_time="10:00:00",
        total_amount="240.00",
        booking_type="Rent",
        status="Pending Review",
        status_reason=None,
        payment_status="pending",
        stripe_session_id=None,
        stripe_payment_intent=None,
        documents_submitted_at=None,
        created_at=NOW.isoformat(),
        updated_at=NOW.isoformat(),
    )
    return {**base, **overrides}


def agreement_response(**overrides) -> dict:
    base = dict(
        id=str(AGREEMENT_ID),
        booking_id=BOOKING_ID,
        unsigned_agreement_url="https://files.example.com/agreements/unsigned.pdf",
        signed_agreement_url=None,
        signer_name=None,
        agreement_text=None,
        status="sent",
        signed_at=None,
        fuel_level=None,
        odometer_reading=None,
        vehicle_registration="AB12 CDE",
        created_at=NOW.isoformat(),
        updated_at=NOW.isoformat(),
    )
    return {**base, **overrides}


# ---------------------------------------------------------------------------
# Request payload factories
# ---------------------------------------------------------------------------


def booking_create_payload(**overrides) -> dict:
    base = dict(
        car_id=str(CAR_ID),
        customer_name="Jane Driver",
        customer_email=CUSTOMER_EMAIL,
        customer_phone="+447700900123",
        pickup_date=PICKUP.isoformat(),
        dropoff_date=DROPOFF.isoformat(),
        total_amount="240.00",
        booking_type="Rent",
    )
    return {**base, **overrides}


def documents_payload(**overrides) -> dict:
    base = dict(
        driving_license_front_url="https://files.example.com/dl-front.jpg",
        driving_license_back_url="https://files.example.com/dl-back.jpg",
        proof_of_address_url="https://files.example.com/poa.pdf",
    )
    return {**base, **overrides}


def inspection_payload(inspection_type: str = "handover", **overrides) -> dict:
    base = dict(
        inspection_type=inspection_type,
        odometer_reading=12000,
        fuel_level="full",
        exterior_photos=["https://files.example.com/ext-1.jpg"],
        overall_condition="good",
    )
    return {**base, **overrides}


def signature_payload(**overrides) -> dict:
    base = dict(signature_data="data:image/png;base64,iVBORw0KGgo=", signer_name="Jane Driver")
    return {**base, **overrides}


# ---------------------------------------------------------------------------
# Database row builders (need the `db` fixture)
# ---------------------------------------------------------------------------


async def create_car(**overrides) -> Car:
    base = dict(
        id=uuid4(),
        name="Toyota Prius",
        registration="AB12 CDE",
        category="Hybrid",
        rental_type=BookingType.RENT,
    )
    return await Car.create(**{**base, **overrides})


async def create_booking(car: Car, **overrides) -> Booking:
    base = dict(
        id=f"SED-{uuid4().hex[:6].upper()}",
        car_id=car.id,
        user_id=CUSTOMER_ID,
        customer_name="Jane Driver",
        customer_email=CUSTOMER_EMAIL,
        customer_phone="+447700900123",
        pickup_location="London, UK",
        dropoff_location="London, UK",
        pickup_date=PICKUP,
        dropoff_date=DROPOFF,
        pickup_time=datetime(2026, 7, 1, 10).time(),
        dropoff_time=datetime(2026, 7, 5, 10).time(),
        total_amount=Decimal("240.00"),
        booking_type=BookingType.RENT,
        status=BookingStatus.PENDING_REVIEW,
    )
    return await Booking.create(**{**base, **overrides})


async def create_agreement(booking: Booking, **overrides) -> Agreement:
    base = dict(
        booking_id=booking.id,
        unsigned_agreement_url="https://files.example.com/agreements/unsigned.pdf",
        status=AgreementStatus.SENT,
    )
    return await Agreement.create(**{**base, **overrides})


def days_after(start: date, days: int) -> date:
    return start + timedelta(days=days)
