from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from app.models.warning import Warning, WARNING_TYPES

FIELDS = ("message", "type", "expires", "user_id")

def _check(data: Dict[str, Any]) -> None:
    if "message" in data and not (data["message"] or "").strip():
        raise ValueError("message can't be blank")
    if "type" in data and data["type"] not in WARNING_TYPES:
        raise ValueError(f"type must be one of {list(WARNING_TYPES)}")

def create_warning(db: Session, data: Dict[str, Any]) -> Warning:
    data = {k: v for k, v in data.items() if k in FIELDS and v is not None}
    if "message" not in data:
        raise ValueError("message can't be blank")
    _check(data)
    w = Warning(**data)
    db.add(w); db.commit(); db.refresh(w)
    return w

def update_warning(db: Session, w: Warning, data: Dict[str, Any]) -> Warning:
    data = {k: v for k, v in data.items() if k in FIELDS and v is not None}
    _check(data)
    for k, v in data.items():
        setattr(w, k, v)
    db.commit(); db.refresh(w)
    return w

def delete_warning(db: Session, w: Warning) -> None:
    db.delete(w); db.commit()

def list_warnings(db: Session) -> List[Warning]:
    return db.query(Warning).order_by(Warning.created_at.desc()).all()

def current_warning(db: Session) -> Optional[Warning]:
    """Newest warning that has not expired."""
    now = datetime.utcnow()
    return (
        db.query(Warning)
        .filter((Warning.expires == None) | (Warning.expires > now))  # noqa: E711
        .order_by(Warning.created_at.desc())
        .first()
    )
