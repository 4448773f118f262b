import uuid
import enum
from sqlalchemy import Column, String, DateTime, func, DECIMAL, Integer, ForeignKey, Text, JSON, Enum, Uuid
from sqlalchemy.orm import relationship
from quickshow.db.session import Base

class PaymentState(str, enum.Enum):
    unpaid = "unpaid"
    paid = "paid"

class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, index=True) # Opaque holder id from the identity provider
    show_id = Column(Uuid, ForeignKey("shows.id"), nullable=False, index=True)
    booked_seats = Column(JSON, nullable=False)
    amount = Column(DECIMAL(10, 2), nullable=False)
    payment_state = Column(
        Enum(PaymentState, name="payment_state"),
        nullable=False,
        default=PaymentState.unpaid,
        index=True,
    )
    payment_link = Column(Text, nullable=True)
    payment_session_id = Column(String(255), nullable=True, index=True)
    payment_intent_id = Column(String(255), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    show = relationship("Show", back_populates="bookings")

class BookingExpiry(Base):
    """Durable expiry task, one per unpaid booking."""

    __tablename__ = "booking_expiries"

    # No FK: the task row is removed in the same transaction that deletes the booking
    booking_id = Column(Uuid, primary_key=True)
    show_id = Column(Uuid, nullable=False)
    fire_at = Column(DateTime(timezone=True), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
