from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quickshow.db.session import get_db
from quickshow.api.deps import CurrentUser, get_current_admin_user
from quickshow.api.v1.public.bookings import serialize_booking
from quickshow.models.booking import PaymentState
from quickshow.schemas.booking import Booking as BookingSchema
from quickshow.schemas.common import DashboardStats, PaginatedResponse
from quickshow.services import ledger

router = APIRouter(prefix="/admin", tags=["Admin - Bookings"])


@router.get("/bookings", response_model=PaginatedResponse[BookingSchema])
def list_all_bookings(
    payment_state: Optional[PaymentState] = Query(None, description="unpaid | paid"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin_user),
):
    """Every booking on the platform, newest first."""
    bookings, total = ledger.list_bookings(
        db, payment_state=payment_state, page=page, limit=limit
    )
    return PaginatedResponse(
        data=[serialize_booking(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/dashboard", response_model=DashboardStats)
def get_dashboard(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin_user),
):
    """Paid bookings, revenue (sum of paid amounts), upcoming shows, paying users."""
    stats = ledger.dashboard_stats(db)
    return DashboardStats(
        total_bookings=stats.total_bookings,
        total_revenue=stats.total_revenue,
        active_shows=stats.active_shows,
        total_users=stats.total_users,
    )
