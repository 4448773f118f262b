import logging
from uuid import UUID
from typing import List
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session, joinedload

from quickshow.db.session import get_db
from quickshow.api.deps import CurrentUser, get_current_admin_user, get_notifier
from quickshow.api.v1.public.shows import serialize_show
from quickshow.models.movie import Movie
from quickshow.models.show import Show
from quickshow.schemas.show import Show as ShowSchema, ShowScheduleCreate, ShowScheduleResponse
from quickshow.services.notifications import SHOW_ADDED, NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/shows", tags=["Admin - Shows"])


def _resolve_movie(db: Session, data: ShowScheduleCreate) -> Movie:
    """Use the given movie, or register it by title on first scheduling."""
    if data.movie_id:
        movie = db.query(Movie).filter(Movie.id == data.movie_id).first()
        if not movie:
            raise HTTPException(status_code=404, detail="Movie not found")
        return movie

    title = data.movie_title.strip()
    movie = db.query(Movie).filter(Movie.title == title).first()
    if not movie:
        movie = Movie(title=title)
        db.add(movie)
        db.flush()
    return movie


@router.post("/", response_model=ShowScheduleResponse, status_code=status.HTTP_201_CREATED)
def schedule_shows(
    data: ShowScheduleCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin_user),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """
    Schedule screenings of one movie in bulk: every (date, time) pair in
    `shows_input` becomes a Show with an empty seat map.

    Pairs that already exist for the same movie, theater and screen are skipped.
    Users are notified about the new shows in the background.
    """
    movie = _resolve_movie(db, data)

    created: List[Show] = []
    skipped = 0
    for entry in data.shows_input:
        for t in entry.times:
            show_datetime = datetime.combine(entry.date, t, tzinfo=timezone.utc)
            exists = db.query(Show.id).filter(
                Show.movie_id == movie.id,
                Show.theater_id == data.theater_id,
                Show.screen == data.screen,
                Show.show_datetime == show_datetime,
                Show.is_active == True,  # noqa: E712
            ).first()
            if exists:
                skipped += 1
                continue
            show = Show(
                movie_id=movie.id,
                theater_id=data.theater_id,
                screen=data.screen,
                format=data.format,
                show_datetime=show_datetime,
                price=data.show_price,
                occupied_seats={},
                seat_version=0,
            )
            db.add(show)
            created.append(show)

    db.commit()
    logger.info("Scheduled %d show(s) for %s (%d skipped)", len(created), movie.title, skipped)

    if created:
        background_tasks.add_task(
            notifier.notify,
            SHOW_ADDED,
            {"movie_id": movie.id, "movie_title": movie.title},
        )

    return ShowScheduleResponse(
        movie_id=movie.id,
        created_count=len(created),
        skipped_count=skipped,
        show_ids=[s.id for s in created],
    )


@router.get("/", response_model=List[ShowSchema])
def list_upcoming_shows(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin_user),
):
    """All active shows that have not started yet, soonest first."""
    shows = (
        db.query(Show)
        .options(joinedload(Show.movie))
        .filter(Show.is_active == True, Show.show_datetime >= datetime.now(timezone.utc))  # noqa: E712
        .order_by(Show.show_datetime)
        .all()
    )
    return [serialize_show(s) for s in shows]


@router.delete("/{show_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_show(
    show_id: UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin_user),
):
    """
    Take a show off sale. The row is kept so existing bookings still resolve;
    new holds on it are rejected.
    """
    show = db.query(Show).filter(Show.id == show_id, Show.is_active == True).first()  # noqa: E712
    if not show:
        raise HTTPException(status_code=404, detail="Show not found")
    show.is_active = False
    db.commit()
    logger.info("Show %s deactivated by %s", show_id, current_user.id)
