"""
Notification Dispatcher.

Best-effort, in-app notifications. ``notify`` opens its own session, so a
failure here can never undo the booking work that triggered it; routes run
it as a background task after the response has been sent.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from quickshow.core.config import settings
from quickshow.models.booking import Booking, PaymentState
from quickshow.models.movie import Movie
from quickshow.models.notification import Notification
from quickshow.models.show import Show

logger = logging.getLogger(__name__)

BOOKING_CONFIRMED = "booking_confirmed"
SHOW_ADDED = "show_added"
SHOW_REMINDER = "show_reminder"


def _format_when(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%B %d, %Y at %H:%M")
    return str(value or "")


def _build(kind: str, payload: dict) -> Iterable[Notification]:
    title = payload.get("movie_title") or "your movie"

    if kind == BOOKING_CONFIRMED:
        seats = ", ".join(payload.get("seats") or [])
        yield Notification(
            user_id=payload["user_id"],
            title=f'Payment Confirmation: "{title}" booked!',
            message=(
                f"Your booking for {title} on {_format_when(payload.get('show_datetime'))} "
                f"is confirmed. Seats: {seats}."
            ),
            type=BOOKING_CONFIRMED,
            reference_id=payload.get("booking_id"),
        )
    elif kind == SHOW_ADDED:
        yield Notification(
            user_id=None,
            title=f"New Show Added: {title}",
            message=f'We\'ve just added new shows for "{title}". Book your tickets now!',
            type=SHOW_ADDED,
            reference_id=payload.get("movie_id"),
        )
    elif kind == SHOW_REMINDER:
        yield Notification(
            user_id=payload["user_id"],
            title=f'Reminder: Your movie "{title}" starts soon!',
            message=f"{title} is scheduled for {_format_when(payload.get('show_datetime'))}.",
            type=SHOW_REMINDER,
            reference_id=payload.get("show_id"),
        )
    else:
        raise ValueError(f"Unknown notification kind: {kind}")


class NotificationDispatcher:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def notify(self, kind: str, payload: dict) -> int:
        """Record the notification. Never raises; returns rows written."""
        try:
            db = self.session_factory()
            try:
                rows = list(_build(kind, payload))
                db.add_all(rows)
                db.commit()
            finally:
                db.close()
        except Exception:
            logger.exception("Failed to dispatch %s notification", kind)
            return 0
        logger.info("Dispatched %s notification (%d row(s))", kind, len(rows))
        return len(rows)


def send_show_reminders(
    db: Session, dispatcher: NotificationDispatcher, now: Optional[datetime] = None
) -> int:
    """
    Remind every paying customer of shows starting within the lead window.

    Each customer is reminded at most once per show.
    """
    now = now or datetime.now(timezone.utc)
    window_end = now + timedelta(hours=settings.REMINDER_LEAD_HOURS)

    shows = (
        db.query(Show.id, Show.show_datetime, Movie.title)
        .join(Movie, Movie.id == Show.movie_id)
        .filter(
            Show.is_active == True,  # noqa: E712
            Show.show_datetime > now,
            Show.show_datetime <= window_end,
        )
        .all()
    )

    sent = 0
    for show in shows:
        holders = {
            user_id
            for (user_id,) in db.query(Booking.user_id).filter(
                Booking.show_id == show.id,
                Booking.payment_state == PaymentState.paid,
            )
        }
        already = {
            user_id
            for (user_id,) in db.query(Notification.user_id).filter(
                Notification.type == SHOW_REMINDER,
                Notification.reference_id == show.id,
            )
        }
        for user_id in sorted(holders - already):
            sent += dispatcher.notify(
                SHOW_REMINDER,
                {
                    "user_id": user_id,
                    "show_id": show.id,
                    "movie_title": show.title,
                    "show_datetime": show.show_datetime,
                },
            )
    return sent
