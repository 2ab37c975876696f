from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime
from app.core.database import Base

class Clickstream(Base):
    __tablename__ = "clickstreams"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True, nullable=True)
    action = Column(String(128), index=True)             # e.g., submitted change request, edited notebook
    notebook_id = Column(Integer, index=True, nullable=True)
    tracking = Column(String(64), nullable=True)         # reqid or commit id
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
