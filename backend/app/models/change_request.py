from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
import enum

from app.core.database import Base
from app.core.errors import NotPending
from app.models.notebook import EXTENSION_LIMITS
from app.utils import content_sink

CACHE_NAMESPACE = "change_requests"

class ChangeRequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELED = "canceled"

# pending is the only non-terminal state
TRANSITIONS = {
    ChangeRequestStatus.PENDING: {
        ChangeRequestStatus.ACCEPTED,
        ChangeRequestStatus.DECLINED,
        ChangeRequestStatus.CANCELED,
    },
    ChangeRequestStatus.ACCEPTED: set(),
    ChangeRequestStatus.DECLINED: set(),
    ChangeRequestStatus.CANCELED: set(),
}

COMMENT_LIMIT = 2000

class ChangeRequest(Base):
    __tablename__ = "change_requests"

    id = Column(Integer, primary_key=True)
    reqid = Column(String(36), unique=True, index=True, nullable=False)
    notebook_id = Column(Integer, ForeignKey("notebooks.id"), index=True, nullable=False)
    requestor_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String(16), default=ChangeRequestStatus.PENDING.value, nullable=False)
    requestor_comment = Column(Text, nullable=True)
    owner_comment = Column(Text, nullable=True)
    description = Column(Text, nullable=True)       # extension field
    license = Column(String(100), nullable=True)    # extension field
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    notebook = relationship("Notebook", back_populates="change_requests")
    requestor = relationship("User", back_populates="change_requests", foreign_keys=[requestor_id])

    # ---- proposed content (lives in the content cache, not the row) ----

    @property
    def filename(self) -> Path:
        return content_sink.path_for(CACHE_NAMESPACE, self.reqid)

    @property
    def proposed_content(self) -> Optional[str]:
        return content_sink.read_content(CACHE_NAMESPACE, self.reqid)

    @proposed_content.setter
    def proposed_content(self, content: str) -> None:
        content_sink.write_content(CACHE_NAMESPACE, self.reqid, content)

    def remove_content(self) -> bool:
        return content_sink.remove_content(CACHE_NAMESPACE, self.reqid)

    # ---- state machine ----

    @property
    def is_pending(self) -> bool:
        return self.status == ChangeRequestStatus.PENDING.value

    def ensure_pending(self) -> None:
        if not self.is_pending:
            raise NotPending("change request is not in pending status")

    def transition(self, new_status: ChangeRequestStatus) -> None:
        current = ChangeRequestStatus(self.status)
        if new_status not in TRANSITIONS[current]:
            raise NotPending(f"cannot move change request from {current.value} to {new_status.value}")
        self.status = new_status.value
        self.updated_at = datetime.utcnow()

    def validate(self) -> Dict[str, List[str]]:
        errors: Dict[str, List[str]] = {}
        try:
            ChangeRequestStatus(self.status)
        except ValueError:
            errors.setdefault("status", []).append("is not included in the list")
        for attr in ("requestor_comment", "owner_comment"):
            value = getattr(self, attr)
            if value and len(value) > COMMENT_LIMIT:
                errors.setdefault(attr, []).append(f"is too long (maximum is {COMMENT_LIMIT} characters)")
        for attr, limit in EXTENSION_LIMITS.items():
            value = getattr(self, attr)
            if value and len(value) > limit:
                errors.setdefault(attr, []).append(f"is too long (maximum is {limit} characters)")
        return errors
