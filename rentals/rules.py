"""Business rule tables: minimum hire durations, reason catalogues, required documents."""

from __future__ import annotations

from datetime import date
from enum import StrEnum

from rentals import errors
from rentals.models import BookingType

# booking type -> (minimum days, display text)
BOOKING_RULES: dict[BookingType, tuple[int, str]] = {
    BookingType.RENT: (1, "1 day"),
    BookingType.FLEXI_HIRE: (180, "6 months minimum"),
    BookingType.PCO_HIRE: (30, "1 month minimum"),
    BookingType.SALES: (0, "Purchase"),
}


class RejectionReason(StrEnum):
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    LICENSE_UNCLEAR = "LICENSE_UNCLEAR"
    LICENSE_EXPIRED = "LICENSE_EXPIRED"
    ADDRESS_UNCLEAR = "ADDRESS_UNCLEAR"
    ADDRESS_EXPIRED = "ADDRESS_EXPIRED"
    BANK_STATEMENT_ISSUE = "BANK_STATEMENT_ISSUE"
    PCO_LICENSE_ISSUE = "PCO_LICENSE_ISSUE"
    MISSING_DOCUMENTS = "MISSING_DOCUMENTS"
    FRAUDULENT_DOCUMENTS = "FRAUDULENT_DOCUMENTS"
    AGE_REQUIREMENT = "AGE_REQUIREMENT"
    DRIVING_HISTORY = "DRIVING_HISTORY"
    OTHER = "OTHER"


REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.NOT_ELIGIBLE: "Not Eligible - Does not meet rental requirements",
    RejectionReason.LICENSE_UNCLEAR: "Document Issue - Driving license photo is unclear or unreadable",
    RejectionReason.LICENSE_EXPIRED: "Document Issue - Driving license has expired",
    RejectionReason.ADDRESS_UNCLEAR: "Document Issue - Proof of address is unclear or unreadable",
    RejectionReason.ADDRESS_EXPIRED: "Document Issue - Proof of address is older than 3 months",
    RejectionReason.BANK_STATEMENT_ISSUE: "Document Issue - Bank statement is unclear or older than 3 months",
    RejectionReason.PCO_LICENSE_ISSUE: "Document Issue - Private hire license is unclear or expired",
    RejectionReason.MISSING_DOCUMENTS: "Missing Documents - Not all required documents were uploaded",
    RejectionReason.FRAUDULENT_DOCUMENTS: "Security Issue - Documents appear to be fraudulent or tampered",
    RejectionReason.AGE_REQUIREMENT: "Not Eligible - Does not meet minimum age requirement",
    RejectionReason.DRIVING_HISTORY: "Not Eligible - Driving history does not meet requirements",
    RejectionReason.OTHER: "Other - Please contact us for more information",
}


class CancellationReason(StrEnum):
    CUSTOMER_WITHDRAWAL = "CUSTOMER_WITHDRAWAL"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    VEHICLE_UNAVAILABLE = "VEHICLE_UNAVAILABLE"
    OTHER = "OTHER"


CANCELLATION_MESSAGES: dict[CancellationReason, str] = {
    CancellationReason.CUSTOMER_WITHDRAWAL: "Cancelled at the customer's request",
    CancellationReason.ADMIN_OVERRIDE: "Cancelled by our team",
    CancellationReason.PAYMENT_REFUNDED: "Cancelled - your payment has been refunded",
    CancellationReason.VEHICLE_UNAVAILABLE: "Cancelled - the vehicle is no longer available",
    CancellationReason.OTHER: "Other - Please contact us for more information",
}

BASE_DOCUMENTS = (
    "driving_license_front_url",
    "driving_license_back_url",
    "proof_of_address_url",
)
PCO_DOCUMENTS = (
    "private_hire_license_front_url",
    "private_hire_license_back_url",
)


def minimum_days(booking_type: BookingType) -> int:
    return BOOKING_RULES[booking_type][0]


def validate_booking_window(
    booking_type: BookingType, pickup_date: date, dropoff_date: date
) -> int:
    """Raise ValidationError unless the range is ordered and long enough. Returns the day count."""
    if pickup_date > dropoff_date:
        raise errors.ValidationError("pickup_date must be on or before dropoff_date")

    days = (dropoff_date - pickup_date).days
    min_days, display = BOOKING_RULES[booking_type]
    if days < min_days:
        raise errors.ValidationError(
            f"{booking_type} requires a minimum of {display}",
            minimum_days=min_days,
            requested_days=days,
        )
    return days


def required_documents(booking_type: BookingType) -> tuple[str, ...]:
    if booking_type == BookingType.PCO_HIRE:
        return BASE_DOCUMENTS + PCO_DOCUMENTS
    return BASE_DOCUMENTS


def reason_message(reason: str | None) -> str | None:
    """Customer-facing text for a stored reason code."""
    if reason is None:
        return None
    if reason in RejectionReason.__members__:
        return REJECTION_MESSAGES[RejectionReason(reason)]
    if reason in CancellationReason.__members__:
        return CANCELLATION_MESSAGES[CancellationReason(reason)]
    return None
