from typing import Annotated, Optional, List
from pydantic import BaseModel, ConfigDict, Field, UUID4, model_validator
from decimal import Decimal
from datetime import date as Date, datetime, time as Time


class MovieSummary(BaseModel):
    id: UUID4
    title: str
    poster_url: Optional[str] = None
    runtime_minutes: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


# Show — public response (GET /shows, GET /shows/{id})
class Show(BaseModel):
    id: UUID4
    movie_id: UUID4
    theater_id: Optional[str] = None
    screen: Optional[str] = None
    format: Optional[str] = None
    show_datetime: datetime
    price: Decimal
    occupied_count: int = 0
    movie: Optional[MovieSummary] = None

    model_config = ConfigDict(from_attributes=True)


# GET /shows/{id}/occupied-seats
class OccupiedSeatsResponse(BaseModel):
    show_id: UUID4
    occupied_seats: List[str]


# POST /shows/{id}/check-availability
class AvailabilityRequest(BaseModel):
    seats: List[str]


class AvailabilityResponse(BaseModel):
    available: bool
    conflicts: List[str]


# --- Admin scheduling (POST /admin/shows) ---

class ShowInput(BaseModel):
    date: Date
    times: Annotated[List[Time], Field(min_length=1)]


class ShowScheduleCreate(BaseModel):
    movie_id: Optional[UUID4] = None
    movie_title: Optional[str] = None
    theater_id: Optional[str] = None
    screen: Optional[str] = None
    format: Optional[str] = None
    show_price: Annotated[Decimal, Field(gt=0, max_digits=10, decimal_places=2)]
    shows_input: Annotated[List[ShowInput], Field(min_length=1)]

    @model_validator(mode="after")
    def movie_reference_required(self):
        if not self.movie_id and not (self.movie_title and self.movie_title.strip()):
            raise ValueError("Either movie_id or movie_title is required")
        return self


class ShowScheduleResponse(BaseModel):
    movie_id: UUID4
    created_count: int
    skipped_count: int
    show_ids: List[UUID4]
