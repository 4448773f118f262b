import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from quickshow.db.session import get_db
from quickshow.api.deps import get_notifier
from quickshow.schemas.booking import WebhookAck
from quickshow.services import ledger
from quickshow.services.ledger import PaymentOutcome
from quickshow.services.notifications import BOOKING_CONFIRMED, NotificationDispatcher
from quickshow.services.payments import (
    EVENT_FAILED,
    EVENT_SUCCEEDED,
    PaymentEvent,
    PaymentProvider,
    get_payment_provider,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def _parse_booking_ref(ref: Optional[str]) -> Optional[UUID]:
    try:
        return UUID(ref) if ref else None
    except ValueError:
        return None


def apply_payment_event(db: Session, event: PaymentEvent, booking_id: UUID) -> Optional[dict]:
    """
    Record a verified payment event. Returns the confirmation payload when
    this event is the one that marked the booking paid.
    """
    if event.kind == EVENT_FAILED:
        ledger.record_payment_failure(db, booking_id, event.payment_ref)
        return None

    if ledger.mark_paid(db, booking_id, event.payment_ref) != PaymentOutcome.paid:
        return None

    booking = ledger.get_booking(db, booking_id)
    show = booking.show
    return {
        "user_id": booking.user_id,
        "booking_id": booking.id,
        "seats": list(booking.booked_seats),
        "movie_title": show.movie.title if show and show.movie else None,
        "show_datetime": show.show_datetime if show else None,
    }


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    payments: PaymentProvider = Depends(get_payment_provider),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """
    Payment provider callback.

    The signature is verified before anything else; after that the provider
    always gets a 200, even when the callback turns out to be a duplicate or
    refers to a booking that already expired.
    """
    # Raw body is needed for the signature, database work goes to the threadpool
    payload = await request.body()
    event = payments.parse_webhook(payload, stripe_signature)
    logger.info("Received payment webhook: %s", event.provider_event_type or event.kind)

    if event.kind not in (EVENT_SUCCEEDED, EVENT_FAILED):
        return WebhookAck()

    booking_id = _parse_booking_ref(event.booking_ref)
    if booking_id is None:
        logger.error("Payment webhook %s without a usable booking id", event.provider_event_type)
        return WebhookAck()

    confirmation = await run_in_threadpool(apply_payment_event, db, event, booking_id)
    if confirmation:
        background_tasks.add_task(notifier.notify, BOOKING_CONFIRMED, confirmation)

    return WebhookAck()
