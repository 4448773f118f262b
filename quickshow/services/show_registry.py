"""
Seat-map storage primitives.

Every change to a show's ``occupied_seats`` goes through ``write_seat_map``,
which only succeeds if ``seat_version`` still equals the version the caller
read. A lost race surfaces as ``StaleSeatMapError`` and the caller re-reads.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List
from uuid import UUID

from sqlalchemy.orm import Session

from quickshow.core.exceptions import ShowNotFoundError, StaleSeatMapError
from quickshow.models.show import Show


@dataclass(frozen=True)
class SeatMap:
    show_id: UUID
    seats: Dict[str, str]
    version: int
    price: Decimal = field(default=Decimal("0"))

    def holder_of(self, label: str):
        return self.seats.get(label) or None


def get_seat_map(db: Session, show_id: UUID, include_inactive: bool = False) -> SeatMap:
    """
    Read the current seat map and its guard version.

    Columns are selected directly so the result never comes from a stale
    instance in the session's identity map.
    """
    query = db.query(Show.occupied_seats, Show.seat_version, Show.price).filter(
        Show.id == show_id
    )
    if not include_inactive:
        query = query.filter(Show.is_active == True)  # noqa: E712
    row = query.first()
    if row is None:
        raise ShowNotFoundError(show_id)

    return SeatMap(
        show_id=show_id,
        seats=dict(row.occupied_seats or {}),
        version=row.seat_version,
        price=row.price,
    )


def write_seat_map(
    db: Session, show_id: UUID, expected_version: int, new_seats: Dict[str, str]
) -> int:
    """
    Replace the seat map if nobody wrote it since ``expected_version``.

    Returns the new version. Does not commit.
    """
    updated = (
        db.query(Show)
        .filter(Show.id == show_id, Show.seat_version == expected_version)
        .update(
            {
                Show.occupied_seats: dict(new_seats),
                Show.seat_version: expected_version + 1,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise StaleSeatMapError(show_id, expected_version)
    return expected_version + 1


def occupied_labels(seat_map: SeatMap) -> List[str]:
    return [label for label, holder in seat_map.seats.items() if holder]
