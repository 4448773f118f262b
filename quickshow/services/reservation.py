"""
Seat Reservation Engine.

``reserve`` and ``release`` are read-check-write loops over the guarded
seat-map write: the decision is re-made against the map version that is
actually being replaced, so two requests can never both win the same seat.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from quickshow.core.config import settings
from quickshow.core.exceptions import (
    BookingValidationError,
    SeatConflictError,
    SeatMapBusyError,
    StaleSeatMapError,
)
from quickshow.services.show_registry import SeatMap, get_seat_map, write_seat_map

logger = logging.getLogger(__name__)

MAX_SEAT_LABEL_LENGTH = 16


@dataclass(frozen=True)
class Availability:
    available: bool
    conflicts: List[str]


def validate_seats(seats: Sequence[str]) -> List[str]:
    """Reject malformed seat lists before anything touches storage."""
    if not seats:
        raise BookingValidationError("At least one seat must be selected")

    labels = list(seats)
    for label in labels:
        if not isinstance(label, str) or not label.strip():
            raise BookingValidationError("Seat labels must be non-empty strings")
        if any(ch.isspace() for ch in label):
            raise BookingValidationError(f"Seat label {label!r} must not contain whitespace")
        if len(label) > MAX_SEAT_LABEL_LENGTH:
            raise BookingValidationError(f"Seat label {label!r} is too long")

    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise BookingValidationError(f"Duplicate seats in request: {', '.join(duplicates)}")

    if len(labels) > settings.MAX_SEATS_PER_BOOKING:
        raise BookingValidationError(
            f"You can book at most {settings.MAX_SEATS_PER_BOOKING} seats at a time"
        )
    return labels


def _conflicts(seat_map: SeatMap, seats: Sequence[str]) -> List[str]:
    return [label for label in seats if seat_map.holder_of(label)]


def check_availability(db: Session, show_id: UUID, seats: Sequence[str]) -> Availability:
    """
    Best-effort availability read.

    The answer can be outdated the moment it is returned; ``reserve`` checks
    again at write time.
    """
    labels = validate_seats(seats)
    conflicts = _conflicts(get_seat_map(db, show_id), labels)
    return Availability(available=not conflicts, conflicts=conflicts)


def reserve(db: Session, show_id: UUID, seats: Sequence[str], holder_id: str) -> SeatMap:
    """
    Hold every seat in ``seats`` for ``holder_id``, or none of them.

    Raises ``SeatConflictError`` with the taken seats, or ``SeatMapBusyError``
    when the guarded write keeps losing or the store stays unavailable.
    Does not commit. A storage error rolls the session back, so this must be
    the first write of its unit of work.
    """
    labels = validate_seats(seats)
    if not holder_id:
        raise BookingValidationError("A holder id is required to reserve seats")

    for attempt in range(1, settings.SEAT_WRITE_MAX_RETRIES + 1):
        try:
            seat_map = get_seat_map(db, show_id)
            conflicts = _conflicts(seat_map, labels)
            if conflicts:
                raise SeatConflictError(conflicts)

            new_seats: Dict[str, str] = dict(seat_map.seats)
            for label in labels:
                new_seats[label] = holder_id

            version = write_seat_map(db, show_id, seat_map.version, new_seats)
        except StaleSeatMapError:
            logger.warning(
                "Seat map of show %s changed during reserve (attempt %d/%d)",
                show_id, attempt, settings.SEAT_WRITE_MAX_RETRIES,
            )
            continue
        except OperationalError as e:
            db.rollback()
            logger.warning(
                "Storage unavailable during reserve on show %s (attempt %d/%d): %s",
                show_id, attempt, settings.SEAT_WRITE_MAX_RETRIES, e.orig,
            )
            continue

        return SeatMap(show_id=show_id, seats=new_seats, version=version, price=seat_map.price)

    raise SeatMapBusyError(show_id)


def release(db: Session, show_id: UUID, seats: Sequence[str], include_inactive: bool = True) -> List[str]:
    """
    Free the given seats whoever holds them. Returns the labels actually freed.

    Releasing a free seat is a no-op; when nothing changes no write happens.
    Does not commit.
    """
    if not seats:
        raise BookingValidationError("At least one seat must be given to release")

    for attempt in range(1, settings.SEAT_WRITE_MAX_RETRIES + 1):
        seat_map = get_seat_map(db, show_id, include_inactive=include_inactive)
        freed = [label for label in dict.fromkeys(seats) if label in seat_map.seats]
        if not freed:
            return []

        new_seats = {k: v for k, v in seat_map.seats.items() if k not in freed}
        try:
            write_seat_map(db, show_id, seat_map.version, new_seats)
        except StaleSeatMapError:
            logger.warning(
                "Seat map of show %s changed during release (attempt %d/%d)",
                show_id, attempt, settings.SEAT_WRITE_MAX_RETRIES,
            )
            continue
        return freed

    raise SeatMapBusyError(show_id)
