import uuid
from sqlalchemy import Column, String, DateTime, func, Integer, Text, Uuid
from sqlalchemy.orm import relationship
from quickshow.db.session import Base

class Movie(Base):
    __tablename__ = "movies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False, index=True)
    overview = Column(Text, nullable=True)
    runtime_minutes = Column(Integer, nullable=True)
    poster_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    shows = relationship("Show", back_populates="movie")
