"""
Booking lifecycle state machine.

Pure functions only: which edges exist, which need a reason, and how stored
labels map onto BookingStatus. Guards that need the store (agreement signed,
inspections recorded) live in rentals.records and are applied by BookingCRUD.
"""

from __future__ import annotations

from rentals import errors
from rentals.models import BookingStatus
from rentals.rules import CancellationReason, RejectionReason

S = BookingStatus

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.REJECTED})

# Bookings in these states no longer hold their vehicle.
INACTIVE_STATUSES = frozenset({S.CANCELLED, S.REJECTED})

_VALID_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    S.PENDING_REVIEW: {S.PAYMENT_COMPLETED, S.REJECTED, S.CANCELLED},
    S.PAYMENT_COMPLETED: {S.DOCUMENTS_SUBMITTED, S.CANCELLED},
    S.DOCUMENTS_SUBMITTED: {S.DOCUMENTS_REJECTED, S.CONFIRMED, S.CANCELLED},
    S.DOCUMENTS_REJECTED: {S.DOCUMENTS_SUBMITTED, S.CANCELLED},
    S.CONFIRMED: {S.ON_RENT, S.CANCELLED},
    S.ON_RENT: {S.COMPLETED, S.CANCELLED},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
    S.REJECTED: set(),
}

_REJECTION_TARGETS = {S.REJECTED, S.DOCUMENTS_REJECTED}

# Linear progress of a healthy booking; used for "already at or past" checks.
_PROGRESS = [
    S.PENDING_REVIEW,
    S.PAYMENT_COMPLETED,
    S.DOCUMENTS_SUBMITTED,
    S.CONFIRMED,
    S.ON_RENT,
    S.COMPLETED,
]

# Labels written by older flows and other surfaces.
_ALIASES: dict[str, BookingStatus] = {
    "pending": S.PENDING_REVIEW,
    "pending_review": S.PENDING_REVIEW,
    "paid": S.PAYMENT_COMPLETED,
    "payment_completed": S.PAYMENT_COMPLETED,
    "documents_submitted": S.DOCUMENTS_SUBMITTED,
    "documents_rejected": S.DOCUMENTS_REJECTED,
    "confirmed": S.CONFIRMED,
    "on_rent": S.ON_RENT,
    "active": S.ON_RENT,
    "completed": S.COMPLETED,
    "cancelled": S.CANCELLED,
    "canceled": S.CANCELLED,
    "rejected": S.REJECTED,
}


def canonical_status(value: str | BookingStatus) -> BookingStatus:
    """The one place a free-form status label is turned into a BookingStatus."""
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(value)
    except ValueError:
        pass
    key = value.strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return _ALIASES[key]
    except KeyError:
        raise errors.ValidationError(f"Unknown booking status '{value}'") from None


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_targets(status: BookingStatus) -> set[BookingStatus]:
    return set(_VALID_TRANSITIONS.get(status, set()))


def has_reached(status: BookingStatus, milestone: BookingStatus) -> bool:
    """True if a non-diverted booking is at or beyond `milestone`."""
    if status not in _PROGRESS:
        return False
    return _PROGRESS.index(status) >= _PROGRESS.index(milestone)


def assert_transition(
    current: BookingStatus,
    target: BookingStatus,
    reason: str | None = None,
) -> None:
    """Raise GuardViolationError/ValidationError if `current -> target` is not allowed."""
    if is_terminal(current):
        raise errors.GuardViolationError(
            f"Booking is '{current}' and accepts no further transitions",
            current_status=current.value,
        )

    allowed = allowed_targets(current)
    if target not in allowed:
        raise errors.GuardViolationError(
            f"Cannot transition from '{current}' to '{target}'. "
            f"Allowed: {sorted(s.value for s in allowed)}",
            current_status=current.value,
        )

    if target in _REJECTION_TARGETS:
        if reason not in RejectionReason.__members__:
            raise errors.ValidationError(
                f"Transition to '{target}' requires a rejection reason, one of "
                f"{[r.value for r in RejectionReason]}"
            )
    elif target == S.CANCELLED:
        if reason not in CancellationReason.__members__:
            raise errors.ValidationError(
                "Cancellation requires a reason, one of "
                f"{[r.value for r in CancellationReason]}"
            )
