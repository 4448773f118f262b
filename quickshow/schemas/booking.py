from typing import Optional, List
from pydantic import BaseModel, ConfigDict, UUID4
from decimal import Decimal
from datetime import datetime


# Booking — Create (POST /bookings)
class BookingCreate(BaseModel):
    show_id: UUID4
    seats: List[str]


# Booking — Created response with the checkout handle
class BookingCheckout(BaseModel):
    booking_id: UUID4
    checkout_url: Optional[str] = None
    amount: Decimal
    seats: List[str]
    expires_at: datetime


class BookingShowSummary(BaseModel):
    show_datetime: datetime
    movie_title: Optional[str] = None
    theater_id: Optional[str] = None
    screen: Optional[str] = None


# Booking — Full response (GET /bookings, GET /bookings/{id})
class Booking(BaseModel):
    id: UUID4
    user_id: str
    show_id: UUID4
    booked_seats: List[str]
    amount: Decimal
    payment_state: str
    payment_link: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    show: Optional[BookingShowSummary] = None

    model_config = ConfigDict(from_attributes=True)


# Payment webhook acknowledgement
class WebhookAck(BaseModel):
    received: bool = True
