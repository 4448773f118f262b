from typing import List, Generic, TypeVar
from decimal import Decimal
from pydantic import BaseModel

T = TypeVar("T")


# Paginated response wrapper — used by all list endpoints
class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Error responses
class ErrorResponse(BaseModel):
    detail: str


class SeatsUnavailableError(ErrorResponse):
    conflicting_seats: List[str]


# Admin dashboard
class DashboardStats(BaseModel):
    total_bookings: int
    total_revenue: Decimal
    active_shows: int
    total_users: int
