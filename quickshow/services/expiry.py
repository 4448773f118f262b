"""
Expiry Scheduler.

Every unpaid booking has a row in ``booking_expiries``. When it comes due the
booking is deleted *only if it is still unpaid*, its seats are released, and
the task row is removed, all in one transaction. The payment callback uses
the mirror-image guard (``UPDATE ... WHERE payment_state = 'unpaid'``), so
whichever of the two commits first decides the outcome and the other one
becomes a no-op.

Delivery is at-least-once: a task that fails is pushed back and retried, and
firing an already-resolved booking does nothing.
"""
import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from quickshow.core.config import settings
from quickshow.core.exceptions import ShowNotFoundError
from quickshow.models.booking import Booking, BookingExpiry, PaymentState
from quickshow.services.payments import PaymentProvider
from quickshow.services.reservation import release

logger = logging.getLogger(__name__)


class ExpiryOutcome(str, enum.Enum):
    released = "released"
    already_paid = "already_paid"
    missing = "missing"


def hold_deadline(created_at: datetime) -> datetime:
    return created_at + timedelta(minutes=settings.BOOKING_HOLD_MINUTES)


def arm(db: Session, booking_id: UUID, show_id: UUID, fire_at: datetime) -> BookingExpiry:
    """Schedule (or re-schedule) the expiry of a booking. Does not commit."""
    task = db.get(BookingExpiry, booking_id)
    if task is None:
        task = BookingExpiry(booking_id=booking_id, show_id=show_id, fire_at=fire_at, attempts=0)
        db.add(task)
    else:
        task.fire_at = fire_at
        task.last_error = None
    db.flush()
    return task


def cancel(db: Session, booking_id: UUID) -> bool:
    """Drop a pending expiry task. Does not commit."""
    deleted = (
        db.query(BookingExpiry)
        .filter(BookingExpiry.booking_id == booking_id)
        .delete(synchronize_session=False)
    )
    return bool(deleted)


def expire_booking(
    db: Session, booking_id: UUID, payments: Optional[PaymentProvider] = None
) -> ExpiryOutcome:
    """
    Release the seats of an unpaid booking and delete it.

    Safe to call any number of times, and safe to race with ``mark_paid``.
    Commits on success; on error the transaction is left for the caller to
    roll back. When ``payments`` is given the booking's checkout is closed
    after the commit.
    """
    row = (
        db.query(
            Booking.show_id,
            Booking.booked_seats,
            Booking.payment_state,
            Booking.payment_session_id,
        )
        .filter(Booking.id == booking_id)
        .first()
    )
    if row is None:
        cancel(db, booking_id)
        db.commit()
        logger.info("Expiry for booking %s: booking already gone", booking_id)
        return ExpiryOutcome.missing

    deleted = (
        db.query(Booking)
        .filter(Booking.id == booking_id, Booking.payment_state == PaymentState.unpaid)
        .delete(synchronize_session=False)
    )
    if not deleted:
        # Paid in the meantime (or deleted by a concurrent fire)
        cancel(db, booking_id)
        db.commit()
        still_there = db.query(Booking.id).filter(Booking.id == booking_id).first()
        outcome = ExpiryOutcome.already_paid if still_there else ExpiryOutcome.missing
        logger.info("Expiry for booking %s: no-op (%s)", booking_id, outcome.value)
        return outcome

    freed = []
    if row.booked_seats:
        try:
            freed = release(db, row.show_id, row.booked_seats, include_inactive=True)
        except ShowNotFoundError:
            logger.warning("Show %s of expired booking %s no longer exists", row.show_id, booking_id)

    cancel(db, booking_id)
    db.commit()
    logger.info(
        "Booking %s expired unpaid, released seats %s on show %s",
        booking_id, ", ".join(freed) or "-", row.show_id,
    )

    if payments is not None and row.payment_session_id:
        _close_checkout(payments, booking_id, row.payment_session_id)
    return ExpiryOutcome.released


def _close_checkout(payments: PaymentProvider, booking_id: UUID, session_id: str) -> None:
    # Best effort: a late payment is still acknowledged and logged by mark_paid
    try:
        payments.cancel_checkout(session_id)
    except Exception as e:
        logger.warning(
            "Could not close checkout %s of expired booking %s: %s", session_id, booking_id, e
        )


def run_due_expiries(
    db: Session, now: Optional[datetime] = None, payments: Optional[PaymentProvider] = None
) -> int:
    """
    Fire every expiry task that is due. Returns how many tasks were resolved.

    Failed tasks stay in the table with a pushed-back ``fire_at``.
    """
    now = now or datetime.now(timezone.utc)
    due = (
        db.query(BookingExpiry.booking_id)
        .filter(BookingExpiry.fire_at <= now)
        .order_by(BookingExpiry.fire_at)
        .limit(settings.EXPIRY_BATCH_SIZE)
        .all()
    )

    resolved = 0
    for (booking_id,) in due:
        # Row lock held until expire_booking commits; other workers skip it
        claimed = (
            db.query(BookingExpiry.booking_id)
            .filter(BookingExpiry.booking_id == booking_id, BookingExpiry.fire_at <= now)
            .with_for_update(skip_locked=True)
            .first()
        )
        if claimed is None:
            db.rollback()
            continue
        try:
            expire_booking(db, booking_id, payments)
            resolved += 1
        except Exception as e:
            db.rollback()
            logger.exception("Expiry of booking %s failed, will retry", booking_id)
            _reschedule_after_failure(db, booking_id, now, e)
    return resolved


def _reschedule_after_failure(db: Session, booking_id: UUID, now: datetime, error: Exception) -> None:
    task = db.get(BookingExpiry, booking_id)
    if task is None:
        return
    task.attempts = (task.attempts or 0) + 1
    task.last_error = f"{type(error).__name__}: {error}"[:1000]
    task.fire_at = now + timedelta(seconds=settings.EXPIRY_RETRY_SECONDS * task.attempts)
    db.commit()
