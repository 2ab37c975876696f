from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
from typing import Optional

from app.core.database import Base
from app.utils import content_sink

CACHE_NAMESPACE = "stages"

class Stage(Base):
    """Uploaded content parked under a token until a change request is submitted."""
    __tablename__ = "stages"

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def content(self) -> Optional[str]:
        return content_sink.read_content(CACHE_NAMESPACE, self.uuid)

    @content.setter
    def content(self, value: str) -> None:
        content_sink.write_content(CACHE_NAMESPACE, self.uuid, value)

    def remove_content(self) -> bool:
        return content_sink.remove_content(CACHE_NAMESPACE, self.uuid)
