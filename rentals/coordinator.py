"""
Agreement & inspection coordination.

Sequence: agreement issued -> sent -> signed, handover inspection, return
inspection. Signature and handover may complete in either order; whichever
lands last moves the booking from Confirmed to On Rent. Each entity write
commits first, then guards are re-read, then the lifecycle write happens, so
a retry after a partial failure converges on the same state.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from tortoise.transactions import in_transaction

from rentals import errors, notifications, records
from rentals.crud import BookingCRUD, booking_crud
from rentals.deps import CurrentUser
from rentals.models import (
    Agreement,
    AgreementStatus,
    Booking,
    BookingStatus,
    InspectionType,
    NotificationType,
    VehicleInspection,
)
from rentals.schemas import (
    AgreementIssue,
    AgreementResponse,
    AgreementSign,
    AgreementVehicleData,
    BookingResponse,
    InspectionCreate,
    InspectionResponse,
)

_INSPECTION_STATUSES: dict[InspectionType, set[BookingStatus]] = {
    InspectionType.HANDOVER: {BookingStatus.CONFIRMED, BookingStatus.ON_RENT},
    InspectionType.RETURN: {BookingStatus.ON_RENT, BookingStatus.COMPLETED},
}


def _agreement(inst: Agreement) -> AgreementResponse:
    return AgreementResponse.model_validate(inst, from_attributes=True)


def owns_booking(booking: Booking | BookingResponse, user: CurrentUser) -> bool:
    if booking.user_id is not None and booking.user_id == user.id:
        return True
    return bool(
        user.email
        and booking.customer_email
        and booking.customer_email.lower() == user.email.lower()
    )


class AgreementCoordinator:
    def __init__(self, bookings: BookingCRUD) -> None:
        self._bookings = bookings

    async def can_activate_rental(self, booking_id: str) -> bool:
        async with errors.store_errors("activation guard", booking_id=booking_id):
            return await records.can_activate_rental(booking_id)

    async def can_complete_rental(self, booking_id: str) -> bool:
        async with errors.store_errors("completion guard", booking_id=booking_id):
            return await records.can_complete_rental(booking_id)

    async def get_agreement(self, agreement_id: UUID) -> tuple[AgreementResponse, Booking]:
        inst = await Agreement.get_or_none(id=agreement_id).prefetch_related("booking")
        if inst is None:
            raise errors.NotFoundError("Agreement not found")
        return _agreement(inst), inst.booking

    async def issue_agreement(
        self, booking_id: str, payload: AgreementIssue
    ) -> AgreementResponse:
        """Attach the unsigned document to the booking's current agreement."""
        async with errors.store_errors("issue agreement", booking_id=booking_id):
            async with in_transaction():
                booking = await Booking.filter(id=booking_id).select_for_update().first()
                if booking is None:
                    raise errors.NotFoundError("Booking not found")
                if booking.status in (
                    BookingStatus.PENDING_REVIEW,
                    BookingStatus.CANCELLED,
                    BookingStatus.REJECTED,
                    BookingStatus.COMPLETED,
                ):
                    raise errors.GuardViolationError(
                        f"Cannot issue an agreement for a booking in '{booking.status}'"
                    )

                inst = await records.latest_agreement(booking_id)
                if inst is not None and inst.status == AgreementStatus.SIGNED:
                    raise errors.GuardViolationError("Agreement is already signed")
                if inst is None:
                    inst = Agreement(booking_id=booking_id)

                inst.unsigned_agreement_url = payload.unsigned_agreement_url
                inst.agreement_text = payload.agreement_text
                inst.vehicle_registration = payload.vehicle_registration
                await inst.save()

        logger.info("Agreement {} issued for booking {}", inst.id, booking_id)
        return _agreement(inst)

    async def send_agreement(self, agreement_id: UUID) -> AgreementResponse:
        async with errors.store_errors("send agreement", agreement_id=agreement_id):
            inst = await Agreement.get_or_none(id=agreement_id).prefetch_related("booking")
            if inst is None:
                raise errors.NotFoundError("Agreement not found")
            if inst.status == AgreementStatus.SIGNED:
                raise errors.GuardViolationError("Agreement is already signed")
            if not inst.unsigned_agreement_url:
                raise errors.GuardViolationError("Agreement has no document to send")
            if inst.status != AgreementStatus.SENT:
                inst.status = AgreementStatus.SENT
                await inst.save(update_fields=["status", "updated_at"])

        await notifications.emit(
            inst.booking.user_id,
            NotificationType.AGREEMENT,
            "Agreement ready to sign",
            f"Your rental agreement for booking {inst.booking_id} is ready for signature.",
            link=notifications.booking_link(inst.booking_id),
        )
        return _agreement(inst)

    async def sign_agreement(
        self,
        agreement_id: UUID,
        payload: AgreementSign,
        caller: CurrentUser,
    ) -> AgreementResponse:
        log = logger.bind(agreement_id=agreement_id, user_id=caller.id)

        async with errors.store_errors("sign agreement", agreement_id=agreement_id):
            async with in_transaction():
                inst = (
                    await Agreement.filter(id=agreement_id).select_for_update().first()
                )
                if inst is None:
                    raise errors.NotFoundError("Agreement not found")
                booking = await Booking.get(id=inst.booking_id)
                if not owns_booking(booking, caller):
                    log.warning("Signature refused: caller does not own booking {}", booking.id)
                    raise errors.AuthorizationError(
                        "You can only sign agreements for your own bookings"
                    )

                already_signed = inst.status == AgreementStatus.SIGNED
                if not already_signed:
                    if inst.status != AgreementStatus.SENT:
                        raise errors.GuardViolationError(
                            "Agreement has not been sent for signature yet"
                        )
                    if not inst.unsigned_agreement_url:
                        raise errors.GuardViolationError("Agreement has no document to sign")

                    inst.customer_signature_data = payload.signature_data
                    inst.signer_name = payload.signer_name
                    inst.signed_agreement_url = payload.signed_agreement_url
                    inst.signed_at = datetime.now(timezone.utc)
                    inst.status = AgreementStatus.SIGNED
                    await inst.save(
                        update_fields=[
                            "customer_signature_data",
                            "signer_name",
                            "signed_agreement_url",
                            "signed_at",
                            "status",
                            "updated_at",
                        ]
                    )

        if already_signed:
            log.info("Agreement already signed, re-checking activation")
        else:
            log.info("Agreement signed by {}", payload.signer_name)
            await notifications.emit(
                booking.user_id,
                NotificationType.AGREEMENT,
                "Agreement signed",
                f"Thanks for signing the agreement for booking {booking.id}.",
                link=notifications.booking_link(booking.id),
            )

        await self._bookings.activate_if_ready(booking.id)
        return _agreement(inst)

    async def correct_vehicle_data(
        self, agreement_id: UUID, payload: AgreementVehicleData
    ) -> AgreementResponse:
        changes = payload.model_dump(exclude_none=True)
        if not changes:
            raise errors.ValidationError("No fields to update")

        async with errors.store_errors("correct agreement", agreement_id=agreement_id):
            inst = await Agreement.get_or_none(id=agreement_id)
            if inst is None:
                raise errors.NotFoundError("Agreement not found")
            for field, value in changes.items():
                setattr(inst, field, value)
            await inst.save(update_fields=[*changes, "updated_at"])

        logger.info("Agreement {} corrected: {}", agreement_id, sorted(changes))
        return _agreement(inst)

    async def record_inspection(
        self,
        booking_id: str,
        payload: InspectionCreate,
        inspector: CurrentUser,
    ) -> InspectionResponse:
        """Insert a new inspection; earlier ones of the same type are left untouched."""
        async with errors.store_errors(
            "record inspection", booking_id=booking_id, type=payload.inspection_type.value
        ):
            booking = await Booking.get_or_none(id=booking_id)
            if booking is None:
                raise errors.NotFoundError("Booking not found")
            allowed = _INSPECTION_STATUSES[payload.inspection_type]
            if booking.status not in allowed:
                raise errors.GuardViolationError(
                    f"A {payload.inspection_type} inspection needs the booking to be "
                    f"one of {sorted(s.value for s in allowed)}, not '{booking.status}'"
                )

            agreement = await records.latest_agreement(booking_id)
            data = payload.model_dump(exclude={"inspector_name"})
            inst = await VehicleInspection.create(
                booking_id=booking_id,
                agreement_id=agreement.id if agreement else None,
                inspector_name=payload.inspector_name or inspector.username,
                **data,
            )

        logger.info(
            "{} inspection {} recorded for booking {}",
            payload.inspection_type.value,
            inst.id,
            booking_id,
        )
        if payload.inspection_type == InspectionType.HANDOVER:
            await self._bookings.activate_if_ready(booking_id)
        elif payload.damage_photos or payload.damage_notes:
            await notifications.emit(
                booking.user_id,
                NotificationType.DAMAGE,
                "Damage recorded",
                f"Damage was noted when booking {booking_id} was returned.",
                link=notifications.booking_link(booking_id),
            )
        return InspectionResponse.model_validate(inst, from_attributes=True)

    async def list_inspections(self, booking_id: str) -> list[InspectionResponse]:
        rows = await VehicleInspection.filter(booking_id=booking_id).order_by("-created_at")
        return [InspectionResponse.model_validate(r, from_attributes=True) for r in rows]


coordinator = AgreementCoordinator(booking_crud)
