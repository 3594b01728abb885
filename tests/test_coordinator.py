"""
Agreement & inspection coordination against SQLite, plus the agreement and
inspection endpoints driven through httpx.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from rentals import errors, records
from rentals.coordinator import coordinator, owns_booking
from rentals.models import (
    Agreement,
    AgreementStatus,
    BookingStatus,
    InspectionType,
    Notification,
    NotificationType,
    VehicleInspection,
)
from rentals.schemas import (
    AgreementIssue,
    AgreementSign,
    AgreementVehicleData,
    BookingResponse,
    InspectionCreate,
)

from .factories import (
    CUSTOMER_EMAIL,
    CUSTOMER_ID,
    OTHER_USER_ID,
    booking_response,
    create_agreement,
    create_booking,
    create_car,
    inspection_payload,
    make_customer,
    make_staff,
    signature_payload,
)


def sign_payload(**overrides) -> AgreementSign:
    return AgreementSign(**signature_payload(**overrides))


def inspection(inspection_type: str = "handover", **overrides) -> InspectionCreate:
    return InspectionCreate(**inspection_payload(inspection_type, **overrides))


async def status_of(booking) -> BookingStatus:
    await booking.refresh_from_db()
    return booking.status


class TestOwnsBooking:
    def test_matching_user_id(self):
        booking = BookingResponse(**booking_response())
        assert owns_booking(booking, make_customer(email=None))

    def test_matching_email_ignores_case(self):
        booking = BookingResponse(**booking_response(user_id=None))
        assert owns_booking(booking, make_customer(user_id=OTHER_USER_ID, email="JANE@example.com"))

    def test_stranger(self):
        booking = BookingResponse(**booking_response())
        assert not owns_booking(
            booking, make_customer(user_id=OTHER_USER_ID, email="other@example.com")
        )

    def test_no_email_on_either_side(self):
        booking = BookingResponse(**booking_response(user_id=None))
        assert not owns_booking(booking, make_customer(user_id=OTHER_USER_ID, email=None))


class TestIssueAndSend:
    async def test_issue_requires_payment(self, db):
        car = await create_car()
        inst = await create_booking(car)
        with pytest.raises(errors.GuardViolationError):
            await coordinator.issue_agreement(
                inst.id, AgreementIssue(unsigned_agreement_url="https://f/a.pdf")
            )

    async def test_issue_fills_existing_draft(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.PAYMENT_COMPLETED)
        draft = await records.ensure_draft_agreement(inst.id)

        agreement = await coordinator.issue_agreement(
            inst.id,
            AgreementIssue(
                unsigned_agreement_url="https://f/a.pdf", vehicle_registration="AB12 CDE"
            ),
        )

        assert agreement.id == draft.id
        assert agreement.unsigned_agreement_url == "https://f/a.pdf"
        assert await Agreement.filter(booking_id=inst.id).count() == 1

    async def test_signed_agreement_cannot_be_reissued(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        await create_agreement(inst, status=AgreementStatus.SIGNED)
        with pytest.raises(errors.GuardViolationError):
            await coordinator.issue_agreement(
                inst.id, AgreementIssue(unsigned_agreement_url="https://f/b.pdf")
            )

    async def test_send_requires_document(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.PAYMENT_COMPLETED)
        draft = await records.ensure_draft_agreement(inst.id)
        with pytest.raises(errors.GuardViolationError):
            await coordinator.send_agreement(draft.id)

    async def test_send_marks_sent_and_notifies(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst, status=AgreementStatus.DRAFT)

        sent = await coordinator.send_agreement(agreement.id)

        assert sent.status == AgreementStatus.SENT
        note = await Notification.get(user_id=CUSTOMER_ID)
        assert note.type == NotificationType.AGREEMENT

    async def test_unknown_agreement(self, db):
        with pytest.raises(errors.NotFoundError):
            await coordinator.send_agreement(uuid4())


class TestSignAgreement:
    async def test_non_owner_forbidden(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        stranger = make_customer(user_id=OTHER_USER_ID, email="other@example.com")
        with pytest.raises(errors.AuthorizationError):
            await coordinator.sign_agreement(agreement.id, sign_payload(), stranger)

        await agreement.refresh_from_db()
        assert agreement.status == AgreementStatus.SENT

    async def test_guest_booking_signed_by_email_match(self, db):
        car = await create_car()
        inst = await create_booking(car, user_id=None, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        signer = make_customer(user_id=OTHER_USER_ID, email=CUSTOMER_EMAIL.upper())
        signed = await coordinator.sign_agreement(agreement.id, sign_payload(), signer)

        assert signed.status == AgreementStatus.SIGNED
        assert signed.signer_name == "Jane Driver"
        assert signed.signed_at is not None

    async def test_draft_cannot_be_signed(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst, status=AgreementStatus.DRAFT)
        with pytest.raises(errors.GuardViolationError):
            await coordinator.sign_agreement(agreement.id, sign_payload(), make_customer())

    def test_empty_signature_rejected_by_schema(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            sign_payload(signature_data="")

    async def test_resign_is_a_noop(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        await coordinator.sign_agreement(agreement.id, sign_payload(), make_customer())
        second = await coordinator.sign_agreement(
            agreement.id, sign_payload(signer_name="Someone Else"), make_customer()
        )

        assert second.signer_name == "Jane Driver"
        signed_notes = await Notification.filter(title="Agreement signed").count()
        assert signed_notes == 1


class TestActivation:
    async def test_signature_then_handover(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        await coordinator.sign_agreement(agreement.id, sign_payload(), make_customer())
        assert await status_of(inst) == BookingStatus.CONFIRMED
        assert not await coordinator.can_activate_rental(inst.id)

        await coordinator.record_inspection(inst.id, inspection("handover"), make_staff())
        assert await status_of(inst) == BookingStatus.ON_RENT

    async def test_handover_then_signature(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        await coordinator.record_inspection(inst.id, inspection("handover"), make_staff())
        assert await status_of(inst) == BookingStatus.CONFIRMED

        await coordinator.sign_agreement(agreement.id, sign_payload(), make_customer())
        assert await status_of(inst) == BookingStatus.ON_RENT
        assert await coordinator.can_activate_rental(inst.id)

    async def test_resign_retries_activation(self, db):
        # signature and handover both landed but activation never ran
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst, status=AgreementStatus.SIGNED)
        await VehicleInspection.create(
            booking_id=inst.id,
            inspection_type=InspectionType.HANDOVER,
            odometer_reading=100,
            fuel_level="full",
            overall_condition="good",
            inspector_name="desk_staff",
        )
        assert await status_of(inst) == BookingStatus.CONFIRMED

        await coordinator.sign_agreement(agreement.id, sign_payload(), make_customer())
        assert await status_of(inst) == BookingStatus.ON_RENT


class TestInspections:
    async def test_handover_needs_confirmed_booking(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.PAYMENT_COMPLETED)
        with pytest.raises(errors.GuardViolationError):
            await coordinator.record_inspection(inst.id, inspection("handover"), make_staff())

    async def test_return_needs_on_rent(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        with pytest.raises(errors.GuardViolationError):
            await coordinator.record_inspection(inst.id, inspection("return"), make_staff())

    async def test_inspector_defaults_to_caller_and_links_agreement(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        recorded = await coordinator.record_inspection(
            inst.id, inspection("handover"), make_staff()
        )

        assert recorded.inspector_name == "desk_staff"
        assert recorded.agreement_id == agreement.id

    async def test_return_with_damage_notifies_and_keeps_on_rent(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.ON_RENT)

        await coordinator.record_inspection(
            inst.id,
            inspection(
                "return",
                damage_notes="Scratch on rear bumper",
                damage_photos=["https://f/d.jpg"],
            ),
            make_staff(),
        )

        assert await status_of(inst) == BookingStatus.ON_RENT
        assert await coordinator.can_complete_rental(inst.id)
        note = await Notification.get(user_id=CUSTOMER_ID)
        assert note.type == NotificationType.DAMAGE

    async def test_latest_inspection_wins(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.ON_RENT)
        await coordinator.record_inspection(
            inst.id, inspection("handover", odometer_reading=100), make_staff()
        )
        await coordinator.record_inspection(
            inst.id, inspection("handover", odometer_reading=150), make_staff()
        )

        listed = await coordinator.list_inspections(inst.id)
        assert len(listed) == 2
        latest = await records.latest_inspection(inst.id, InspectionType.HANDOVER)
        assert latest.odometer_reading == 150


class TestCorrectVehicleData:
    async def test_signed_agreement_can_be_corrected(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.ON_RENT)
        agreement = await create_agreement(inst, status=AgreementStatus.SIGNED)

        corrected = await coordinator.correct_vehicle_data(
            agreement.id, AgreementVehicleData(odometer_reading=12345, fuel_level="1/2")
        )

        assert corrected.odometer_reading == 12345
        assert corrected.fuel_level == "1/2"
        assert corrected.status == AgreementStatus.SIGNED

    async def test_empty_correction_rejected(self, db):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.ON_RENT)
        agreement = await create_agreement(inst)
        with pytest.raises(errors.ValidationError):
            await coordinator.correct_vehicle_data(agreement.id, AgreementVehicleData())


class TestAgreementEndpoints:
    async def test_owner_signs_over_http(self, db, async_client_factory):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        async with async_client_factory(make_customer()) as client:
            resp = await client.post(
                f"/agreements/{agreement.id}/sign", json=signature_payload()
            )
        assert resp.status_code == 200
        assert resp.json()["status"] == "signed"

    async def test_stranger_gets_403(self, db, async_client_factory):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        stranger = make_customer(user_id=OTHER_USER_ID, email="other@example.com")
        async with async_client_factory(stranger) as client:
            resp = await client.post(
                f"/agreements/{agreement.id}/sign", json=signature_payload()
            )
        assert resp.status_code == 403

    async def test_stranger_cannot_read_agreement(self, db, async_client_factory):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)
        agreement = await create_agreement(inst)

        stranger = make_customer(user_id=OTHER_USER_ID, email="other@example.com")
        async with async_client_factory(stranger) as client:
            resp = await client.get(f"/agreements/{agreement.id}")
        assert resp.status_code == 404

        async with async_client_factory(make_customer()) as client:
            resp = await client.get(f"/agreements/{agreement.id}")
        assert resp.status_code == 200

    async def test_staff_records_handover_over_http(self, db, async_client_factory):
        car = await create_car()
        inst = await create_booking(car, status=BookingStatus.CONFIRMED)

        async with async_client_factory(make_staff()) as client:
            resp = await client.post(
                f"/bookings/{inst.id}/inspections", json=inspection_payload("handover")
            )
            listed = await client.get(f"/bookings/{inst.id}/inspections")
        assert resp.status_code == 201
        assert resp.json()["inspection_type"] == "handover"
        assert len(listed.json()) == 1

    async def test_inspection_in_wrong_state_returns_400(self, db, async_client_factory):
        car = await create_car()
        inst = await create_booking(car)
        async with async_client_factory(make_staff()) as client:
            resp = await client.post(
                f"/bookings/{inst.id}/inspections", json=inspection_payload("return")
            )
        assert resp.status_code == 400
