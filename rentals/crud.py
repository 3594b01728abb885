from __future__ import annotations

import secrets
from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from tortoise.transactions import in_transaction

from rentals import errors, lifecycle, notifications, records, rules, settings
from rentals.availability import overlapping_bookings
from rentals.models import Booking, BookingStatus, Car, NotificationType, PaymentStatus
from rentals.schemas import (
    BlockedRange,
    BookingCreate,
    BookingDocuments,
    BookingFilters,
    BookingResponse,
    BookingUpdate,
)
from rentals.rules import CancellationReason

_REF_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no 0/O/1/I
_REF_LENGTH = 6
_REF_ATTEMPTS = 5

# Edits to dates/amount stop once the vehicle has been handed over.
_EDITABLE_STATUSES = {
    BookingStatus.PENDING_REVIEW,
    BookingStatus.PAYMENT_COMPLETED,
    BookingStatus.DOCUMENTS_SUBMITTED,
    BookingStatus.DOCUMENTS_REJECTED,
    BookingStatus.CONFIRMED,
}


def _new_reference() -> str:
    code = "".join(secrets.choice(_REF_ALPHABET) for _ in range(_REF_LENGTH))
    return f"{settings.BOOKING_REF_PREFIX}-{code}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BookingCRUD:
    async def _lock_car(self, car_id: UUID) -> Car:
        # Serialises every reservation for one vehicle: overlap check and write
        # happen under this row lock, inside the caller's transaction.
        car = await Car.filter(id=car_id).select_for_update().first()
        if car is None:
            raise errors.NotFoundError("Vehicle not found")
        return car

    async def _raise_if_taken(
        self,
        car_id: UUID,
        pickup_date,
        dropoff_date,
        exclude_id: str | None = None,
    ) -> None:
        conflicts = await overlapping_bookings(
            pickup_date, dropoff_date, car_id=car_id, exclude_booking_id=exclude_id
        ).order_by("pickup_date")
        if conflicts:
            blocked = [
                BlockedRange.model_validate(b, from_attributes=True).model_dump(mode="json")
                for b in conflicts
            ]
            raise errors.AvailabilityConflictError(
                "Vehicle is already booked for the requested dates", blocked=blocked
            )

    async def create_booking(
        self, payload: BookingCreate, user_id: UUID | None
    ) -> BookingResponse:
        """
        Persist a new booking after validating:
          - date order and the minimum duration for the booking type
          - no overlap with an active booking for the vehicle (atomic, locked)
        """
        rules.validate_booking_window(
            payload.booking_type, payload.pickup_date, payload.dropoff_date
        )

        async with errors.store_errors("create booking", car_id=payload.car_id):
            async with in_transaction():
                car = await self._lock_car(payload.car_id)
                if not car.is_active:
                    raise errors.ValidationError("Vehicle is not available for booking")
                await self._raise_if_taken(
                    payload.car_id, payload.pickup_date, payload.dropoff_date
                )

                for _ in range(_REF_ATTEMPTS):
                    reference = _new_reference()
                    if not await Booking.exists(id=reference):
                        break
                else:
                    raise errors.ExternalDependencyError()

                inst = await Booking.create(
                    id=reference,
                    car_id=payload.car_id,
                    user_id=user_id,
                    customer_name=payload.customer_name,
                    customer_email=str(payload.customer_email),
                    customer_phone=payload.customer_phone,
                    pickup_location=payload.pickup_location,
                    dropoff_location=payload.dropoff_location,
                    pickup_date=payload.pickup_date,
                    dropoff_date=payload.dropoff_date,
                    pickup_time=payload.pickup_time,
                    dropoff_time=payload.dropoff_time,
                    total_amount=payload.total_amount,
                    booking_type=payload.booking_type,
                )

        logger.info("Booking {} created for car {}", inst.id, payload.car_id)
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def get_booking(
        self,
        booking_id: str,
        user_id: UUID | None = None,
    ) -> BookingResponse | None:
        if user_id is not None:
            inst = await Booking.get_or_none(id=booking_id, user_id=user_id)
        else:
            inst = await Booking.get_or_none(id=booking_id)

        if not inst:
            return None
        return BookingResponse.model_validate(inst, from_attributes=True)

    async def list_bookings(
        self,
        filters: BookingFilters,
        user_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.all()

        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if filters.car_id is not None:
            qs = qs.filter(car_id=filters.car_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size)

        bookings = await qs
        return [
            BookingResponse.model_validate(b, from_attributes=True) for b in bookings
        ]

    async def update_booking(
        self, booking_id: str, payload: BookingUpdate
    ) -> BookingResponse:
        """Apply a typed edit; date changes are re-checked against other bookings."""
        changes = payload.model_dump(exclude_none=True)
        if not changes:
            raise errors.ValidationError("No fields to update")

        async with errors.store_errors("update booking", booking_id=booking_id):
            async with in_transaction():
                inst = await Booking.filter(id=booking_id).select_for_update().first()
                if inst is None:
                    raise errors.NotFoundError("Booking not found")
                if inst.status not in _EDITABLE_STATUSES:
                    raise errors.GuardViolationError(
                        f"Booking is '{inst.status}' and can no longer be edited"
                    )

                if payload.changes_dates:
                    pickup = payload.pickup_date or inst.pickup_date
                    dropoff = payload.dropoff_date or inst.dropoff_date
                    rules.validate_booking_window(inst.booking_type, pickup, dropoff)
                    await self._lock_car(inst.car_id)
                    await self._raise_if_taken(
                        inst.car_id, pickup, dropoff, exclude_id=inst.id
                    )

                for field, value in changes.items():
                    setattr(inst, field, value)
                await inst.save(update_fields=[*changes, "updated_at"])

        return BookingResponse.model_validate(inst, from_attributes=True)

    async def transition_status(
        self,
        booking_id: str,
        target: BookingStatus,
        reason: str | None = None,
    ) -> BookingResponse:
        """
        Move a booking along the lifecycle. The status write commits on its own;
        the notification and downstream work run after the commit.
        """
        log = logger.bind(booking_id=booking_id, target=target.value)

        async with errors.store_errors(
            "status transition", booking_id=booking_id, target=target.value
        ):
            async with in_transaction():
                inst = await Booking.filter(id=booking_id).select_for_update().first()
                if inst is None:
                    raise errors.NotFoundError("Booking not found")

                current = lifecycle.canonical_status(inst.status)
                lifecycle.assert_transition(current, target, reason)
                await self._check_guard(inst.id, target)

                inst.status = target
                inst.status_reason = reason
                await inst.save(update_fields=["status", "status_reason", "updated_at"])

        log.info("Booking moved {} -> {}", current.value, target.value)
        booking = BookingResponse.model_validate(inst, from_attributes=True)
        await self._after_transition(booking)
        return booking

    async def _check_guard(self, booking_id: str, target: BookingStatus) -> None:
        if target == BookingStatus.ON_RENT:
            missing = await records.activation_blockers(booking_id)
        elif target == BookingStatus.COMPLETED:
            missing = await records.completion_blockers(booking_id)
        else:
            return
        if missing:
            raise errors.GuardViolationError(
                f"Cannot move booking to '{target}': missing {', '.join(missing)}",
                missing=missing,
            )

    async def _after_transition(self, booking: BookingResponse) -> None:
        await notifications.emit_for_transition(booking)
        try:
            if booking.status == BookingStatus.PAYMENT_COMPLETED:
                await records.ensure_draft_agreement(booking.id)
            elif booking.status == BookingStatus.ON_RENT:
                await records.stamp_handover_condition(booking.id)
        except errors.STORE_ERRORS:
            logger.opt(exception=True).error(
                "Follow-up work after '{}' failed for booking {}",
                booking.status.value,
                booking.id,
            )

    async def activate_if_ready(self, booking_id: str) -> BookingResponse | None:
        """
        Confirmed -> On Rent once both the signature and the handover inspection
        exist. Returns None when the booking is not ready or not Confirmed.
        """
        async with errors.store_errors("activation check", booking_id=booking_id):
            booking = await self.get_booking(booking_id)
            if booking is None or booking.status != BookingStatus.CONFIRMED:
                return None
            if not await records.can_activate_rental(booking_id):
                return None
        try:
            return await self.transition_status(booking_id, BookingStatus.ON_RENT)
        except errors.GuardViolationError:
            # lost a race with another activation or a cancellation
            return None

    async def submit_documents(
        self, booking_id: str, documents: BookingDocuments
    ) -> BookingResponse:
        """Store the document references and move to Documents Submitted in one write."""
        provided = documents.model_dump(exclude_none=True)

        async with errors.store_errors("submit documents", booking_id=booking_id):
            async with in_transaction():
                inst = await Booking.filter(id=booking_id).select_for_update().first()
                if inst is None:
                    raise errors.NotFoundError("Booking not found")

                missing = [
                    d for d in rules.required_documents(inst.booking_type) if d not in provided
                ]
                if missing:
                    raise errors.ValidationError(
                        f"Missing required documents: {', '.join(missing)}", missing=missing
                    )
                current = lifecycle.canonical_status(inst.status)
                lifecycle.assert_transition(current, BookingStatus.DOCUMENTS_SUBMITTED)

                inst.documents = provided
                inst.documents_submitted_at = _now()
                inst.status = BookingStatus.DOCUMENTS_SUBMITTED
                inst.status_reason = None
                await inst.save(
                    update_fields=[
                        "documents",
                        "documents_submitted_at",
                        "status",
                        "status_reason",
                        "updated_at",
                    ]
                )

        logger.bind(booking_id=booking_id).info(
            "Booking moved {} -> {}", current.value, inst.status.value
        )
        booking = BookingResponse.model_validate(inst, from_attributes=True)
        await self._after_transition(booking)
        return booking

    # -----------------------------------------------------------------------
    # Payment facts
    # -----------------------------------------------------------------------

    async def find_by_payment_intent(self, payment_intent: str) -> Booking | None:
        return await Booking.get_or_none(stripe_payment_intent=payment_intent)

    async def attach_checkout_session(self, booking_id: str, session_id: str) -> None:
        async with errors.store_errors("attach checkout session", booking_id=booking_id):
            await Booking.filter(id=booking_id).update(stripe_session_id=session_id)

    async def confirm_payment(
        self,
        booking_id: str,
        session_id: str | None,
        payment_intent: str | None,
    ) -> tuple[BookingResponse | None, bool]:
        """
        Record a confirmed payment and move Pending Review -> Payment Completed.
        Returns (booking, transitioned). Redelivery of the same fact is a no-op.
        """
        log = logger.bind(booking_id=booking_id, session_id=session_id)

        async with errors.store_errors("confirm payment", booking_id=booking_id):
            async with in_transaction():
                inst = await Booking.filter(id=booking_id).select_for_update().first()
                if inst is None:
                    log.warning("Payment confirmed for unknown booking")
                    return None, False

                current = lifecycle.canonical_status(inst.status)
                update_fields = []
                if session_id and inst.stripe_session_id != session_id:
                    inst.stripe_session_id = session_id
                    update_fields.append("stripe_session_id")
                if payment_intent and inst.stripe_payment_intent != payment_intent:
                    inst.stripe_payment_intent = payment_intent
                    update_fields.append("stripe_payment_intent")
                if inst.payment_status != PaymentStatus.PAID:
                    inst.payment_status = PaymentStatus.PAID
                    update_fields.append("payment_status")

                transitioned = current == BookingStatus.PENDING_REVIEW
                if transitioned:
                    inst.status = BookingStatus.PAYMENT_COMPLETED
                    inst.status_reason = None
                    update_fields += ["status", "status_reason"]
                elif lifecycle.is_terminal(current):
                    log.warning(
                        "Payment captured for booking in terminal status '{}', needs follow-up",
                        current.value,
                    )
                elif lifecycle.has_reached(current, BookingStatus.PAYMENT_COMPLETED):
                    log.info("Payment already applied (status '{}'), no-op", current.value)
                else:
                    log.info("Payment recorded, status '{}' left as is", current.value)

                if update_fields:
                    await inst.save(update_fields=[*update_fields, "updated_at"])

        booking = BookingResponse.model_validate(inst, from_attributes=True)
        if transitioned:
            log.info("Booking moved {} -> {}", current.value, booking.status.value)
            await self._after_transition(booking)
        return booking, transitioned

    async def mark_payment_failed(self, payment_intent: str) -> BookingResponse | None:
        async with errors.store_errors("payment failed", payment_intent=payment_intent):
            inst = await self.find_by_payment_intent(payment_intent)
            if inst is None:
                logger.warning("Payment failure for unknown intent {}", payment_intent)
                return None
            changed = inst.payment_status != PaymentStatus.FAILED
            if changed:
                inst.payment_status = PaymentStatus.FAILED
                await inst.save(update_fields=["payment_status", "updated_at"])

        booking = BookingResponse.model_validate(inst, from_attributes=True)
        if changed:
            await notifications.emit(
                booking.user_id,
                NotificationType.PAYMENT,
                "Payment failed",
                f"Your payment for booking {booking.id} did not go through. Please try again.",
                link=notifications.booking_link(booking.id),
            )
        return booking

    async def apply_refund(self, payment_intent: str) -> BookingResponse | None:
        """Mark the payment refunded and cancel the booking unless it is already terminal."""
        async with errors.store_errors("refund", payment_intent=payment_intent):
            inst = await self.find_by_payment_intent(payment_intent)
            if inst is None:
                logger.warning("Refund for unknown intent {}", payment_intent)
                return None
            if inst.payment_status != PaymentStatus.REFUNDED:
                inst.payment_status = PaymentStatus.REFUNDED
                await inst.save(update_fields=["payment_status", "updated_at"])

        if lifecycle.is_terminal(lifecycle.canonical_status(inst.status)):
            return BookingResponse.model_validate(inst, from_attributes=True)
        return await self.transition_status(
            inst.id, BookingStatus.CANCELLED, CancellationReason.PAYMENT_REFUNDED
        )


booking_crud = BookingCRUD()
