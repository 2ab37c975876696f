from __future__ import annotations
from typing import Optional, Dict, Any
from datetime import datetime

from sqlalchemy.orm import Session

from app.models.clickstream import Clickstream
from app.models.notebook import Notebook
from app.models.user import User
from app.utils.clickstream_sink import write_event

def record_click(
    db: Session,
    user: Optional[User],
    action: str,
    notebook: Optional[Notebook] = None,
    tracking: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Clickstream:
    """
    Persist a usage-tracking event to DB and mirror it to the filesystem as JSONL.
    """
    row = Clickstream(
        user_id=user.id if user else None,
        action=action,
        notebook_id=notebook.id if notebook else None,
        tracking=tracking,
        details=details or {},
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    write_event({
        "id": row.id,
        "action": row.action,
        "user": user.user_name if user else None,
        "notebook_id": row.notebook_id,
        "tracking": row.tracking,
        "details": row.details or {},
        "created_at": row.created_at.isoformat() if row.created_at else datetime.utcnow().isoformat(),
    })
    return row
