from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from rentals.errors import RentalError
from rentals.lifecycle import canonical_status
from rentals.models import (
    AgreementStatus,
    BookingStatus,
    BookingType,
    FuelLevel,
    InspectionType,
    NotificationType,
    PaymentStatus,
    VehicleCondition,
)

# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    car_id: UUID
    customer_name: str = Field(min_length=1, max_length=255)
    customer_email: EmailStr
    customer_phone: str = Field(min_length=1, max_length=50)
    pickup_location: str = Field(default="London, UK", max_length=255)
    dropoff_location: str = Field(default="London, UK", max_length=255)
    pickup_date: date
    dropoff_date: date
    pickup_time: time = time(10, 0)
    dropoff_time: time = time(10, 0)
    total_amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    booking_type: BookingType = BookingType.RENT
    # Staff may book on behalf of a registered customer; ignored for customers.
    user_id: UUID | None = None


class BookingUpdate(BaseModel):
    """Every field a booking edit may touch. Anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    pickup_location: str | None = Field(default=None, max_length=255)
    dropoff_location: str | None = Field(default=None, max_length=255)
    pickup_date: date | None = None
    dropoff_date: date | None = None
    pickup_time: time | None = None
    dropoff_time: time | None = None
    total_amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)

    @property
    def changes_dates(self) -> bool:
        return self.pickup_date is not None or self.dropoff_date is not None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    reason: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def canonicalise(cls, v):
        if not isinstance(v, str):
            return v
        try:
            return canonical_status(v)
        except RentalError as exc:
            raise ValueError(exc.detail) from None


class BookingDocuments(BaseModel):
    model_config = ConfigDict(extra="forbid")

    driving_license_front_url: str | None = None
    driving_license_back_url: str | None = None
    proof_of_address_url: str | None = None
    bank_statement_url: str | None = None
    private_hire_license_front_url: str | None = None
    private_hire_license_back_url: str | None = None
    ni_number: str | None = Field(default=None, max_length=16)


class BookingResponse(BaseModel):
    id: str
    car_id: UUID
    user_id: UUID | None
    customer_name: str
    customer_email: str
    customer_phone: str
    pickup_location: str
    dropoff_location: str
    pickup_date: date
    dropoff_date: date
    pickup_time: time
    dropoff_time: time
    total_amount: Decimal
    booking_type: BookingType
    status: BookingStatus
    status_reason: str | None = None
    payment_status: PaymentStatus
    stripe_session_id: str | None = None
    stripe_payment_intent: str | None = None
    documents_submitted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    car_id: UUID | None = None
    status: BookingStatus | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class CheckoutResponse(BaseModel):
    booking_id: str
    session_id: str
    checkout_url: str | None = None
    client_secret: str | None = None


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


class BlockedRange(BaseModel):
    """An occupied date range; reveals no customer identity."""

    pickup_date: date
    dropoff_date: date

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    car_id: UUID
    start_date: date
    end_date: date
    available: bool


class VehicleFilters(BaseModel):
    category: str | None = None
    rental_type: BookingType | None = None


class CarResponse(BaseModel):
    id: UUID
    name: str
    registration: str | None = None
    category: str | None = None
    rental_type: BookingType

    model_config = ConfigDict(from_attributes=True)


class AvailableVehiclesResult(BaseModel):
    success: bool
    data: list[CarResponse] = Field(default_factory=list)
    error: str | None = None


# ---------------------------------------------------------------------------
# Agreements & inspections
# ---------------------------------------------------------------------------


class AgreementIssue(BaseModel):
    model_config = ConfigDict(extra="forbid")

    unsigned_agreement_url: str = Field(min_length=1, max_length=1024)
    agreement_text: str | None = None
    vehicle_registration: str | None = Field(default=None, max_length=20)


class AgreementSign(BaseModel):
    model_config = ConfigDict(extra="forbid")

    signature_data: str = Field(min_length=1)
    signer_name: str = Field(min_length=1, max_length=255)
    signed_agreement_url: str | None = Field(default=None, max_length=1024)


class AgreementVehicleData(BaseModel):
    """Administrative correction of the condition captured on an agreement."""

    model_config = ConfigDict(extra="forbid")

    fuel_level: FuelLevel | None = None
    odometer_reading: int | None = Field(default=None, ge=0)
    vehicle_registration: str | None = Field(default=None, max_length=20)


class AgreementResponse(BaseModel):
    id: UUID
    booking_id: str
    unsigned_agreement_url: str | None = None
    signed_agreement_url: str | None = None
    signer_name: str | None = None
    agreement_text: str | None = None
    status: AgreementStatus
    signed_at: datetime | None = None
    fuel_level: FuelLevel | None = None
    odometer_reading: int | None = None
    vehicle_registration: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InspectionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    inspection_type: InspectionType
    odometer_reading: int = Field(ge=0)
    fuel_level: FuelLevel
    exterior_photos: list[str] = Field(default_factory=list)
    interior_photos: list[str] = Field(default_factory=list)
    damage_photos: list[str] = Field(default_factory=list)
    video_urls: list[str] = Field(default_factory=list)
    damage_notes: str | None = None
    overall_condition: VehicleCondition
    inspector_name: str | None = Field(default=None, max_length=255)


class InspectionResponse(BaseModel):
    id: UUID
    booking_id: str
    agreement_id: UUID | None = None
    inspection_type: InspectionType
    odometer_reading: int
    fuel_level: FuelLevel
    exterior_photos: list[str]
    interior_photos: list[str]
    damage_photos: list[str]
    video_urls: list[str]
    damage_notes: str | None = None
    overall_condition: VehicleCondition
    inspector_name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    message: str
    type: NotificationType
    read: bool
    link: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnreadCount(BaseModel):
    count: int
