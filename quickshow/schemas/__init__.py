from quickshow.schemas.common import PaginatedResponse, ErrorResponse, SeatsUnavailableError, DashboardStats
from quickshow.schemas.show import (
    Show, MovieSummary, OccupiedSeatsResponse, AvailabilityRequest, AvailabilityResponse,
    ShowInput, ShowScheduleCreate, ShowScheduleResponse,
)
from quickshow.schemas.booking import (
    Booking, BookingCreate, BookingCheckout, BookingShowSummary, WebhookAck,
)
from quickshow.schemas.notification import Notification
