from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from rentals import errors, lifecycle, payments, settings
from rentals.cache import BlockedRangesCache, get_blocked_cache
from rentals.crud import booking_crud

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

reconciler = payments.PaymentReconciler(booking_crud)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    cache: BlockedRangesCache = Depends(get_blocked_cache),
) -> JSONResponse:
    """
    Stripe calls this without gateway headers; the signature is the only
    authentication. Anything but 2xx makes Stripe redeliver the event.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Webhook secret not configured"},
        )

    payload = await request.body()
    try:
        event = payments.verify_event(
            payload, stripe_signature, settings.STRIPE_WEBHOOK_SECRET
        )
    except payments.WebhookRejected as exc:
        logger.warning("Stripe webhook rejected: {}", exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)}
        )

    try:
        booking = await reconciler.handle(event)
    except payments.WebhookRejected as exc:
        logger.bind(event_id=event.get("id")).warning("Malformed Stripe event: {}", exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)}
        )
    except errors.ExternalDependencyError:
        logger.bind(event_id=event.get("id")).error(
            "Could not apply {}, asking Stripe to retry", event.get("type")
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Temporary failure, retry later"},
        )

    if booking is not None and booking.status in lifecycle.INACTIVE_STATUSES:
        await cache.invalidate(booking.car_id)
    return JSONResponse(content={"received": True})
