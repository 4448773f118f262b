from uuid import UUID
from typing import List, Optional
from datetime import date, datetime, time, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from quickshow.db.session import get_db
from quickshow.core.exceptions import ShowNotFoundError
from quickshow.models.show import Show
from quickshow.schemas.show import (
    Show as ShowSchema,
    MovieSummary,
    OccupiedSeatsResponse,
    AvailabilityRequest,
    AvailabilityResponse,
)
from quickshow.services import ledger, reservation

router = APIRouter(prefix="/shows", tags=["Shows"])


def serialize_show(show: Show) -> ShowSchema:
    """Convert a Show ORM object to its public representation."""
    return ShowSchema(
        id=show.id,
        movie_id=show.movie_id,
        theater_id=show.theater_id,
        screen=show.screen,
        format=show.format,
        show_datetime=show.show_datetime,
        price=show.price,
        occupied_count=sum(1 for holder in (show.occupied_seats or {}).values() if holder),
        movie=MovieSummary.model_validate(show.movie) if show.movie else None,
    )


# ---------------------------------------------------------------------------
# GET /shows — upcoming shows (movie detail / date picker)
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[ShowSchema])
def list_shows(
    movie_id: Optional[UUID] = Query(None, description="Only shows of this movie"),
    on_date: Optional[date] = Query(None, alias="date", description="Only shows on this date (YYYY-MM-DD, UTC)"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Return active shows that have not started yet, soonest first."""
    now = datetime.now(timezone.utc)
    query = (
        db.query(Show)
        .options(joinedload(Show.movie))
        .filter(Show.is_active == True, Show.show_datetime >= now)  # noqa: E712
    )
    if movie_id:
        query = query.filter(Show.movie_id == movie_id)
    if on_date:
        day_start = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
        query = query.filter(
            Show.show_datetime >= day_start,
            Show.show_datetime < day_start + timedelta(days=1),
        )

    shows = query.order_by(Show.show_datetime).limit(limit).all()
    return [serialize_show(s) for s in shows]


@router.get("/{show_id}", response_model=ShowSchema)
def get_show(show_id: UUID, db: Session = Depends(get_db)):
    show = (
        db.query(Show)
        .options(joinedload(Show.movie))
        .filter(Show.id == show_id, Show.is_active == True)  # noqa: E712
        .first()
    )
    if not show:
        raise ShowNotFoundError(show_id)
    return serialize_show(show)


# ---------------------------------------------------------------------------
# Seat selection screen
# ---------------------------------------------------------------------------


@router.get("/{show_id}/occupied-seats", response_model=OccupiedSeatsResponse)
def get_occupied_seats(show_id: UUID, db: Session = Depends(get_db)):
    """
    Seats that cannot be selected: paid ones and unexpired holds alike.
    Does not require authentication.
    """
    return OccupiedSeatsResponse(
        show_id=show_id,
        occupied_seats=ledger.get_occupied_seats(db, show_id),
    )


@router.post("/{show_id}/check-availability", response_model=AvailabilityResponse)
def check_availability(
    show_id: UUID,
    body: AvailabilityRequest,
    db: Session = Depends(get_db),
):
    """Advisory only. The booking request re-checks at write time."""
    result = reservation.check_availability(db, show_id, body.seats)
    return AvailabilityResponse(available=result.available, conflicts=result.conflicts)
