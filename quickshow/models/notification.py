import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Text, Uuid
from quickshow.db.session import Base

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=True, index=True) # NULL = broadcast to everyone
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False) # booking_confirmed, show_added, show_reminder
    is_read = Column(Boolean, default=False)
    reference_id = Column(Uuid, nullable=True) # Booking, show or movie ID
    created_at = Column(DateTime(timezone=True), server_default=func.now())
