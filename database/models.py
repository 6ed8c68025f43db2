from sqlalchemy import Column, Integer, String, Text, Float, DateTime
from sqlalchemy.sql import func

from .database import Base


class WebSession(Base):
    """Server-side session record keyed by the id held in the session cookie."""
    __tablename__ = "web_sessions"

    session_id = Column(String(64), primary_key=True)
    data = Column(Text, nullable=False, default="{}")   # JSON object
    expires_at = Column(Float, nullable=False, index=True)  # epoch seconds
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
