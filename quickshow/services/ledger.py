"""
Booking Ledger.

Owns the Booking records: who holds which seats on which show, how much
they owe, and whether they paid. Seat occupancy itself lives on the Show and
is changed only through the reservation engine.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from quickshow.core.exceptions import BookingNotFoundError, PaymentUpstreamError
from quickshow.models.booking import Booking, PaymentState
from quickshow.models.movie import Movie
from quickshow.models.show import Show
from quickshow.services import expiry
from quickshow.services.payments import CheckoutRequest, PaymentProvider, checkout_expiry
from quickshow.services.reservation import release, reserve
from quickshow.services.show_registry import get_seat_map, occupied_labels

logger = logging.getLogger(__name__)


class PaymentOutcome(str, enum.Enum):
    paid = "paid"
    already_paid = "already_paid"
    missing = "missing"


@dataclass(frozen=True)
class DashboardStats:
    total_bookings: int
    total_revenue: Decimal
    active_shows: int
    total_users: int


# ---------------------------------------------------------------------------
# Creating a booking
# ---------------------------------------------------------------------------


def _movie_title(db: Session, show_id: UUID) -> str:
    title = (
        db.query(Movie.title)
        .join(Show, Show.movie_id == Movie.id)
        .filter(Show.id == show_id)
        .scalar()
    )
    return title or "Movie ticket"


def create_booking(
    db: Session,
    holder_id: str,
    show_id: UUID,
    seats: Sequence[str],
    payments: PaymentProvider,
    origin: str,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Hold the seats, record an unpaid Booking, and open a checkout for it.

    The hold, the Booking and its expiry task are committed together. If the
    payment provider then fails, all three are undone before
    ``PaymentUpstreamError`` is raised, so no hold is left without a way to
    pay for it.
    """
    now = now or datetime.now(timezone.utc)

    labels = list(seats)
    try:
        seat_map = reserve(db, show_id, labels, holder_id)
        booking = Booking(
            user_id=holder_id,
            show_id=show_id,
            booked_seats=labels,
            amount=Decimal(seat_map.price) * len(labels),
            payment_state=PaymentState.unpaid,
            created_at=now,
        )
        db.add(booking)
        db.flush()
        expiry.arm(db, booking.id, show_id, expiry.hold_deadline(now))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)

    logger.info(
        "Booking %s created for %s on show %s: seats %s, amount %s",
        booking.id, holder_id, show_id, ", ".join(labels), booking.amount,
    )

    try:
        session = payments.open_checkout(
            CheckoutRequest(
                amount=booking.amount,
                description=_movie_title(db, show_id),
                booking_ref=str(booking.id),
                success_url=f"{origin}/loading/my-bookings",
                cancel_url=f"{origin}/my-bookings",
                expires_at=checkout_expiry(now),
            )
        )
    except Exception as e:
        _roll_back_booking(db, booking.id, show_id, labels)
        if isinstance(e, PaymentUpstreamError):
            raise
        raise PaymentUpstreamError() from e

    linked = (
        db.query(Booking)
        .filter(Booking.id == booking.id)
        .update(
            {
                Booking.payment_session_id: session.session_id,
                Booking.payment_link: session.checkout_url,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if not linked:
        # Expired while the provider was answering
        raise PaymentUpstreamError("Checkout took too long, please select your seats again")
    db.refresh(booking)
    return booking


def _roll_back_booking(db: Session, booking_id: UUID, show_id: UUID, seats: List[str]) -> None:
    try:
        release(db, show_id, seats)
        db.query(Booking).filter(Booking.id == booking_id).delete(synchronize_session=False)
        expiry.cancel(db, booking_id)
        db.commit()
    except Exception:
        # The expiry task is still armed and will release the hold
        db.rollback()
        logger.exception("Rolling back booking %s failed, leaving it to expiry", booking_id)
        return
    logger.warning("Checkout failed, booking %s rolled back and seats released", booking_id)


# ---------------------------------------------------------------------------
# Payment callbacks
# ---------------------------------------------------------------------------


def mark_paid(
    db: Session, booking_id: UUID, payment_ref: Optional[str], now: Optional[datetime] = None
) -> PaymentOutcome:
    """
    Move an unpaid booking to paid. Seats stay held.

    Repeated callbacks are no-ops that keep the first payment reference. A
    callback for a booking that already expired is a logged no-op.
    """
    now = now or datetime.now(timezone.utc)
    updated = (
        db.query(Booking)
        .filter(Booking.id == booking_id, Booking.payment_state == PaymentState.unpaid)
        .update(
            {
                Booking.payment_state: PaymentState.paid,
                Booking.payment_intent_id: payment_ref,
                Booking.paid_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()

    if updated:
        logger.info("Booking %s paid (payment %s)", booking_id, payment_ref)
        return PaymentOutcome.paid

    if db.query(Booking.id).filter(Booking.id == booking_id).first():
        logger.info("Booking %s already paid, ignoring repeated callback", booking_id)
        return PaymentOutcome.already_paid

    logger.warning(
        "Payment %s received for booking %s which no longer exists (expired); "
        "the checkout outlived the hold and needs a manual refund",
        payment_ref, booking_id,
    )
    return PaymentOutcome.missing


def record_payment_failure(db: Session, booking_id: UUID, payment_ref: Optional[str] = None) -> None:
    """Seats stay held until the expiry fires; the user may retry checkout."""
    exists = db.query(Booking.id).filter(Booking.id == booking_id).first()
    logger.warning(
        "Payment %s failed for booking %s%s",
        payment_ref or "-", booking_id, "" if exists else " (booking no longer exists)",
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_occupied_seats(db: Session, show_id: UUID) -> List[str]:
    """Held or paid, every occupied seat blocks selection."""
    return occupied_labels(get_seat_map(db, show_id))


def get_booking(db: Session, booking_id: UUID, holder_id: Optional[str] = None) -> Booking:
    query = (
        db.query(Booking)
        .options(joinedload(Booking.show).joinedload(Show.movie))
        .filter(Booking.id == booking_id)
    )
    if holder_id is not None:
        query = query.filter(Booking.user_id == holder_id)
    booking = query.first()
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return booking


def list_bookings(
    db: Session,
    holder_id: Optional[str] = None,
    payment_state: Optional[PaymentState] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Booking], int]:
    query = db.query(Booking).options(joinedload(Booking.show).joinedload(Show.movie))
    if holder_id is not None:
        query = query.filter(Booking.user_id == holder_id)
    if payment_state is not None:
        query = query.filter(Booking.payment_state == payment_state)

    total = query.count()
    bookings = (
        query.order_by(Booking.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return bookings, total


def dashboard_stats(db: Session, now: Optional[datetime] = None) -> DashboardStats:
    """Totals over paid bookings. Revenue is the sum of their amounts."""
    now = now or datetime.now(timezone.utc)
    paid = db.query(
        func.count(Booking.id),
        func.coalesce(func.sum(Booking.amount), 0),
        func.count(func.distinct(Booking.user_id)),
    ).filter(Booking.payment_state == PaymentState.paid).one()

    active_shows = (
        db.query(func.count(Show.id))
        .filter(Show.is_active == True, Show.show_datetime >= now)  # noqa: E712
        .scalar()
    )

    return DashboardStats(
        total_bookings=paid[0],
        total_revenue=Decimal(str(paid[1])),
        active_shows=active_shows or 0,
        total_users=paid[2],
    )
