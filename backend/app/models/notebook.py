from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import Dict, List

from app.core.database import Base

# Optional fields a change request may carry and mirror onto its notebook on acceptance
EXTENSION_FIELDS = ("description", "license")

# Column limits for the extension fields, shared with ChangeRequest.validate()
EXTENSION_LIMITS = {"description": 4000, "license": 100}

class Notebook(Base):
    __tablename__ = "notebooks"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    title = Column(String(255), nullable=False)
    public = Column(Boolean, default=True, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    updater_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    lang = Column(String(64), nullable=False, default="unknown")
    lang_version = Column(String(64), nullable=True)
    commit_id = Column(String(64), nullable=True)          # last Notebook Store commit, or "no changes"
    description = Column(Text, nullable=True)
    license = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship("User", back_populates="notebooks", foreign_keys=[owner_id])
    updater = relationship("User", foreign_keys=[updater_id])
    change_requests = relationship("ChangeRequest", back_populates="notebook")

    @property
    def basename(self) -> str:
        return f"{self.uuid}.ipynb"

    def validate(self) -> Dict[str, List[str]]:
        errors: Dict[str, List[str]] = {}
        if not (self.title or "").strip():
            errors.setdefault("title", []).append("can't be blank")
        elif len(self.title) > 255:
            errors.setdefault("title", []).append("is too long (maximum is 255 characters)")
        if not (self.lang or "").strip():
            errors.setdefault("lang", []).append("can't be blank")
        for attr, limit in EXTENSION_LIMITS.items():
            value = getattr(self, attr)
            if value and len(value) > limit:
                errors.setdefault(attr, []).append(f"is too long (maximum is {limit} characters)")
        return errors
