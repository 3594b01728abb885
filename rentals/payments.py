"""
Stripe integration: checkout session creation and webhook reconciliation.

Webhook events are verified against the signing secret before anything is
read from them. Each handler is idempotent, so redelivery by Stripe is safe.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import stripe
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from rentals import errors
from rentals.crud import BookingCRUD
from rentals.models import BookingStatus
from rentals.schemas import BookingResponse, CheckoutResponse

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"

HANDLED_EVENTS = {CHECKOUT_COMPLETED, PAYMENT_SUCCEEDED, PAYMENT_FAILED, CHARGE_REFUNDED}


class WebhookRejected(Exception):
    """The request is not a verifiable, well-formed Stripe event; answered with 400."""


def verify_event(payload: bytes, signature: str | None, secret: str) -> dict[str, Any]:
    """
    Check the Stripe-Signature header against the raw body, then decode the
    body as plain JSON. Handlers work on dicts whatever the SDK's event class.
    """
    if not signature:
        raise WebhookRejected("No signature")
    try:
        stripe.WebhookSignature.verify_header(
            payload, signature, secret, stripe.Webhook.DEFAULT_TOLERANCE
        )
    except stripe.SignatureVerificationError:
        raise WebhookRejected("Invalid signature") from None
    except ValueError:
        raise WebhookRejected("Invalid payload") from None

    try:
        event = json.loads(payload)
    except ValueError:
        raise WebhookRejected("Invalid payload") from None
    if not isinstance(event, dict):
        raise WebhookRejected("Invalid payload")
    return event


def event_parts(event: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """(type, data.object) of a decoded event; WebhookRejected when either is missing."""
    event_type = event.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise WebhookRejected("Event has no type")
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise WebhookRejected("Event has no data.object")
    if event_type in HANDLED_EVENTS and not isinstance(obj.get("id"), str):
        raise WebhookRejected(f"{event_type} object has no id")
    return event_type, obj


def _booking_id_from(obj: dict[str, Any]) -> str | None:
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    return metadata.get("booking_id") or obj.get("client_reference_id")


def to_pence(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


class PaymentReconciler:
    def __init__(self, bookings: BookingCRUD) -> None:
        self._bookings = bookings

    async def handle(self, event: dict[str, Any]) -> BookingResponse | None:
        event_type, obj = event_parts(event)
        log = logger.bind(event_id=event.get("id"), event_type=event_type)

        if event_type == CHECKOUT_COMPLETED:
            return await self._checkout_completed(obj, log)
        if event_type == PAYMENT_SUCCEEDED:
            return await self._payment_succeeded(obj, log)
        if event_type == PAYMENT_FAILED:
            return await self._bookings.mark_payment_failed(obj["id"])
        if event_type == CHARGE_REFUNDED:
            payment_intent = obj.get("payment_intent")
            if not payment_intent:
                log.warning("Refund without payment intent, cannot reconcile")
                return None
            return await self._refunded(payment_intent, log)

        log.info("Unhandled event type")
        return None

    async def _checkout_completed(self, session, log) -> BookingResponse | None:
        booking_id = _booking_id_from(session)
        if not booking_id:
            log.error("No booking_id in checkout session {} metadata", session.get("id"))
            return None
        booking, _ = await self._bookings.confirm_payment(
            booking_id, session.get("id"), session.get("payment_intent")
        )
        return booking

    async def _payment_succeeded(self, intent, log) -> BookingResponse | None:
        booking_id = _booking_id_from(intent)
        if not booking_id:
            inst = await self._bookings.find_by_payment_intent(intent["id"])
            booking_id = inst.id if inst else None
        if not booking_id:
            # usually arrives before checkout.session.completed stores the intent
            log.info("Payment intent {} not linked to a booking yet", intent["id"])
            return None
        booking, _ = await self._bookings.confirm_payment(booking_id, None, intent["id"])
        return booking

    async def _refunded(self, payment_intent: str, log) -> BookingResponse | None:
        try:
            return await self._bookings.apply_refund(payment_intent)
        except errors.GuardViolationError as exc:
            log.warning("Refund recorded but booking not cancelled: {}", exc.detail)
            return None


async def create_checkout_session(
    booking: BookingResponse,
    api_key: str,
    currency: str,
    success_url: str,
    cancel_url: str,
) -> CheckoutResponse:
    """Open a Stripe Checkout session for a booking awaiting payment."""
    if booking.status != BookingStatus.PENDING_REVIEW:
        raise errors.GuardViolationError(
            f"Booking is '{booking.status}' and is not awaiting payment"
        )
    if not api_key:
        logger.error("STRIPE_SECRET_KEY is not configured")
        raise errors.ExternalDependencyError()

    metadata = {"booking_id": booking.id}
    try:
        session = await run_in_threadpool(
            stripe.checkout.Session.create,
            api_key=api_key,
            mode="payment",
            client_reference_id=booking.id,
            customer_email=booking.customer_email,
            line_items=[
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": to_pence(booking.total_amount),
                        "product_data": {
                            "name": f"{booking.booking_type} booking {booking.id}",
                            "description": (
                                f"{booking.pickup_date.isoformat()} to "
                                f"{booking.dropoff_date.isoformat()}"
                            ),
                        },
                    },
                    "quantity": 1,
                }
            ],
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
            success_url=success_url.replace("{booking_id}", booking.id),
            cancel_url=cancel_url.replace("{booking_id}", booking.id),
        )
    except stripe.StripeError as exc:
        logger.bind(booking_id=booking.id).error("Stripe checkout failed: {}", exc)
        raise errors.ExternalDependencyError() from exc

    return CheckoutResponse(
        booking_id=booking.id,
        session_id=session.id,
        checkout_url=getattr(session, "url", None),
        client_secret=getattr(session, "client_secret", None),
    )
