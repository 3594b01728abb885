"""
User-facing notifications.

`emit` is fire-and-forget: a failed insert is logged and swallowed so it can
never roll back or block the lifecycle change that triggered it.
"""

from __future__ import annotations

from uuid import UUID

from loguru import logger

from rentals import errors
from rentals.models import BookingStatus, Notification, NotificationType
from rentals.rules import reason_message
from rentals.schemas import BookingResponse, NotificationResponse

_STATUS_MESSAGES: dict[BookingStatus, tuple[str, str]] = {
    BookingStatus.PAYMENT_COMPLETED: (
        "Payment received",
        "We've received your payment for booking {id}. Please upload your documents.",
    ),
    BookingStatus.DOCUMENTS_SUBMITTED: (
        "Documents submitted",
        "Your documents for booking {id} are being reviewed.",
    ),
    BookingStatus.DOCUMENTS_REJECTED: (
        "Documents need attention",
        "Some documents for booking {id} need to be resubmitted.",
    ),
    BookingStatus.CONFIRMED: (
        "Booking confirmed",
        "Booking {id} is confirmed. Your rental agreement will follow shortly.",
    ),
    BookingStatus.ON_RENT: (
        "Rental started",
        "Enjoy your drive! Booking {id} is now on rent.",
    ),
    BookingStatus.COMPLETED: (
        "Rental completed",
        "Thanks for returning the vehicle for booking {id}.",
    ),
    BookingStatus.CANCELLED: (
        "Booking cancelled",
        "Booking {id} has been cancelled.",
    ),
    BookingStatus.REJECTED: (
        "Booking declined",
        "Unfortunately we could not accept booking {id}.",
    ),
}


def booking_link(booking_id: str) -> str:
    return f"/my-bookings/{booking_id}"


async def emit(
    user_id: UUID | None,
    type: NotificationType,
    title: str,
    message: str,
    link: str | None = None,
) -> Notification | None:
    if user_id is None:
        logger.debug("No recipient for notification '{}', skipped", title)
        return None
    try:
        return await Notification.create(
            user_id=user_id, type=type, title=title, message=message, link=link
        )
    except Exception:
        logger.opt(exception=True).warning(
            "Failed to write notification '{}' for user {}", title, user_id
        )
        return None


async def emit_for_transition(booking: BookingResponse) -> Notification | None:
    """One notification for the status the booking has just entered."""
    template = _STATUS_MESSAGES.get(booking.status)
    if template is None:
        return None
    title, message = template
    message = message.format(id=booking.id)
    detail = reason_message(booking.status_reason)
    if detail:
        message = f"{message} {detail}"
    return await emit(
        booking.user_id,
        NotificationType.BOOKING,
        title,
        message,
        link=booking_link(booking.id),
    )


# ---------------------------------------------------------------------------
# Recipient operations
# ---------------------------------------------------------------------------


async def list_for_user(user_id: UUID, limit: int = 10) -> list[NotificationResponse]:
    rows = await Notification.filter(user_id=user_id).order_by("-created_at").limit(limit)
    return [NotificationResponse.model_validate(n, from_attributes=True) for n in rows]


async def unread_count(user_id: UUID) -> int:
    return await Notification.filter(user_id=user_id, read=False).count()


async def mark_read(notification_id: UUID, user_id: UUID) -> NotificationResponse:
    inst = await Notification.get_or_none(id=notification_id, user_id=user_id)
    if inst is None:
        raise errors.NotFoundError("Notification not found")
    if not inst.read:
        inst.read = True
        await inst.save(update_fields=["read", "updated_at"])
    return NotificationResponse.model_validate(inst, from_attributes=True)


async def mark_all_read(user_id: UUID) -> int:
    return await Notification.filter(user_id=user_id, read=False).update(read=True)


async def delete(notification_id: UUID, user_id: UUID) -> None:
    deleted = await Notification.filter(id=notification_id, user_id=user_id).delete()
    if not deleted:
        raise errors.NotFoundError("Notification not found")
