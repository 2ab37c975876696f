from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from datetime import datetime

from app.core.database import Base

WARNING_TYPES = ("info", "warning", "danger")

class Warning(Base):
    """Site-wide moderation banner."""
    __tablename__ = "warnings"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    message = Column(Text, nullable=False)
    type = Column(String(16), default="warning", nullable=False)    # info | warning | danger
    expires = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
