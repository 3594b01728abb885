from datetime import time
from enum import StrEnum
from typing import Any

from tortoise import fields
from tortoise.models import Model


class BookingType(StrEnum):
    RENT = "Rent"
    FLEXI_HIRE = "Flexi Hire"
    PCO_HIRE = "PCO Hire"
    SALES = "Sales"


class BookingStatus(StrEnum):
    PENDING_REVIEW = "Pending Review"  # created, awaiting payment / staff
    PAYMENT_COMPLETED = "Payment Completed"  # paid, awaiting customer documents
    DOCUMENTS_SUBMITTED = "Documents Submitted"
    DOCUMENTS_REJECTED = "Documents Rejected"  # resubmission required
    CONFIRMED = "Confirmed"  # documents approved, ready for handover
    ON_RENT = "On Rent"  # vehicle handed over
    COMPLETED = "Completed"  # vehicle returned
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"  # declined by staff


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class AgreementStatus(StrEnum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"


class InspectionType(StrEnum):
    HANDOVER = "handover"
    RETURN = "return"


class FuelLevel(StrEnum):
    FULL = "full"
    THREE_QUARTERS = "3/4"
    HALF = "1/2"
    QUARTER = "1/4"
    EMPTY = "empty"


class VehicleCondition(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class NotificationType(StrEnum):
    BOOKING = "booking"
    PAYMENT = "payment"
    DAMAGE = "damage"
    SYSTEM = "system"
    PCN = "pcn"
    DEPOSIT = "deposit"
    AGREEMENT = "agreement"


class TimeOfDayField(fields.CharField):
    """Wall-clock time stored as `HH:MM:SS` text; SQLite has no TIME column type."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(max_length=8, **kwargs)

    def to_db_value(self, value: Any, instance: Any) -> str | None:
        if isinstance(value, time):
            value = value.strftime("%H:%M:%S")
        return super().to_db_value(value, instance)

    def to_python_value(self, value: Any) -> time | None:
        if isinstance(value, str):
            return time.fromisoformat(value)
        return value


class TimestampedModel(Model):
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        abstract = True


class Car(TimestampedModel):
    id = fields.UUIDField(primary_key=True)

    name = fields.CharField(max_length=255)
    registration = fields.CharField(max_length=20, null=True)
    category = fields.CharField(max_length=64, null=True)
    rental_type = fields.CharEnumField(BookingType, default=BookingType.RENT)
    is_active = fields.BooleanField(default=True)

    class Meta:  # type: ignore
        table = "cars"


class Booking(TimestampedModel):
    id = fields.CharField(primary_key=True, max_length=16)  # e.g. SED-7KQ2MX

    car = fields.ForeignKeyField(
        "models.Car", related_name="bookings", on_delete=fields.RESTRICT
    )
    user_id = fields.UUIDField(null=True)  # null for guest bookings

    customer_name = fields.CharField(max_length=255)
    customer_email = fields.CharField(max_length=255)
    customer_phone = fields.CharField(max_length=50)

    pickup_location = fields.CharField(max_length=255)
    dropoff_location = fields.CharField(max_length=255)
    pickup_date = fields.DateField()
    dropoff_date = fields.DateField()
    pickup_time = TimeOfDayField()
    dropoff_time = TimeOfDayField()

    total_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    booking_type = fields.CharEnumField(BookingType, default=BookingType.RENT)

    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING_REVIEW)
    status_reason = fields.CharField(max_length=64, null=True)
    payment_status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)

    stripe_session_id = fields.CharField(max_length=255, null=True, db_index=True)
    stripe_payment_intent = fields.CharField(max_length=255, null=True, db_index=True)

    documents = fields.JSONField(null=True)
    documents_submitted_at = fields.DatetimeField(null=True)

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]


class Agreement(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    booking = fields.ForeignKeyField(
        "models.Booking", related_name="agreements", on_delete=fields.CASCADE
    )

    unsigned_agreement_url = fields.CharField(max_length=1024, null=True)
    signed_agreement_url = fields.CharField(max_length=1024, null=True)
    customer_signature_data = fields.TextField(null=True)
    signer_name = fields.CharField(max_length=255, null=True)
    agreement_text = fields.TextField(null=True)

    status = fields.CharEnumField(AgreementStatus, default=AgreementStatus.DRAFT)
    signed_at = fields.DatetimeField(null=True)

    # vehicle condition captured at signing / handover
    fuel_level = fields.CharEnumField(FuelLevel, null=True)
    odometer_reading = fields.IntField(null=True)
    vehicle_registration = fields.CharField(max_length=20, null=True)

    class Meta:  # type: ignore
        table = "agreements"
        ordering = ["-created_at"]


class VehicleInspection(Model):
    id = fields.UUIDField(primary_key=True)
    booking = fields.ForeignKeyField(
        "models.Booking", related_name="inspections", on_delete=fields.CASCADE
    )
    agreement = fields.ForeignKeyField(
        "models.Agreement",
        related_name="inspections",
        null=True,
        on_delete=fields.SET_NULL,
    )

    inspection_type = fields.CharEnumField(InspectionType)
    odometer_reading = fields.IntField()
    fuel_level = fields.CharEnumField(FuelLevel)

    exterior_photos = fields.JSONField(default=list)
    interior_photos = fields.JSONField(default=list)
    damage_photos = fields.JSONField(default=list)
    video_urls = fields.JSONField(default=list)

    damage_notes = fields.TextField(null=True)
    overall_condition = fields.CharEnumField(VehicleCondition)
    inspector_name = fields.CharField(max_length=255)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:  # type: ignore
        table = "vehicle_inspections"
        ordering = ["-created_at"]


class Notification(TimestampedModel):
    id = fields.UUIDField(primary_key=True)
    user_id = fields.UUIDField(db_index=True)

    title = fields.CharField(max_length=255)
    message = fields.TextField()
    type = fields.CharEnumField(NotificationType, default=NotificationType.SYSTEM)
    read = fields.BooleanField(default=False)
    link = fields.CharField(max_length=512, null=True)

    class Meta:  # type: ignore
        table = "notifications"
        ordering = ["-created_at"]
