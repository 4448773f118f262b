import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, DECIMAL, Integer, ForeignKey, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from quickshow.db.session import Base

# Seat label -> holder id. Absent key means the seat is free.
SeatMapType = JSON().with_variant(JSONB(), "postgresql")

class Show(Base):
    __tablename__ = "shows"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    movie_id = Column(Uuid, ForeignKey("movies.id"), nullable=False, index=True)
    theater_id = Column(String(64), nullable=True, index=True)
    screen = Column(String(50), nullable=True)
    format = Column(String(20), nullable=True) # 2D, 3D, IMAX
    show_datetime = Column(DateTime(timezone=True), nullable=False, index=True)
    price = Column(DECIMAL(10, 2), nullable=False)
    occupied_seats = Column(SeatMapType, nullable=False, default=dict)
    # Guard token for conditional seat-map writes; bumped on every write
    seat_version = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    movie = relationship("Movie", back_populates="shows")
    bookings = relationship("Booking", back_populates="show")
