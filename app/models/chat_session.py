from sqlalchemy import Column, DateTime, Text

from app.database import Base
from app.models.types import JSONType, utcnow


class ChatSession(Base):
    """Durable copy of the per-sender dialog session, one row per sender."""

    __tablename__ = "sessions"

    user_id = Column(Text, primary_key=True)
    current_state = Column(Text, nullable=False)
    session_data = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
