from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from quickshow.db.session import get_db
from quickshow.core.config import settings
from quickshow.api.deps import CurrentUser, get_current_user
from quickshow.models.booking import Booking
from quickshow.schemas.booking import (
    BookingCreate,
    BookingCheckout,
    Booking as BookingSchema,
    BookingShowSummary,
)
from quickshow.schemas.common import ErrorResponse, PaginatedResponse, SeatsUnavailableError
from quickshow.services import expiry, ledger
from quickshow.services.payments import PaymentProvider, get_payment_provider

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def serialize_booking(booking: Booking) -> BookingSchema:
    """Convert a Booking ORM object to its schema representation."""
    show_summary = None
    if booking.show:
        s = booking.show
        show_summary = BookingShowSummary(
            show_datetime=s.show_datetime,
            movie_title=s.movie.title if s.movie else None,
            theater_id=s.theater_id,
            screen=s.screen,
        )

    return BookingSchema(
        id=booking.id,
        user_id=booking.user_id,
        show_id=booking.show_id,
        booked_seats=list(booking.booked_seats or []),
        amount=booking.amount,
        payment_state=booking.payment_state.value,
        payment_link=booking.payment_link,
        paid_at=booking.paid_at,
        created_at=booking.created_at,
        show=show_summary,
    )


# ---------------------------------------------------------------------------
# POST /bookings — hold seats and open a checkout
# ---------------------------------------------------------------------------


@router.post(
    "/",
    response_model=BookingCheckout,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": SeatsUnavailableError},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def create_booking(
    data: BookingCreate,
    origin: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    payments: PaymentProvider = Depends(get_payment_provider),
):
    """
    Hold the selected seats for the current user and start payment.

    - Seats are held immediately; a conflicting request gets **409** with
      `conflicting_seats`.
    - The hold expires after the configured hold window unless the payment
      webhook confirms the booking first.
    - Pay at `checkout_url`.
    """
    booking = ledger.create_booking(
        db,
        holder_id=current_user.id,
        show_id=data.show_id,
        seats=data.seats,
        payments=payments,
        origin=origin or settings.FRONTEND_ORIGIN,
    )
    return BookingCheckout(
        booking_id=booking.id,
        checkout_url=booking.payment_link,
        amount=booking.amount,
        seats=list(booking.booked_seats),
        expires_at=expiry.hold_deadline(booking.created_at),
    )


# ---------------------------------------------------------------------------
# GET /bookings — list current user's bookings
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[BookingSchema])
def list_my_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Return the authenticated user's bookings, newest first."""
    bookings, total = ledger.list_bookings(db, holder_id=current_user.id, page=page, limit=limit)
    return PaginatedResponse(
        data=[serialize_booking(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


# ---------------------------------------------------------------------------
# GET /bookings/{id} — single booking detail
# ---------------------------------------------------------------------------


@router.get("/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Return a single booking. Only the owning user can access it."""
    return serialize_booking(ledger.get_booking(db, booking_id, holder_id=current_user.id))
