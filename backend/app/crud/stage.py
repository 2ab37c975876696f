from __future__ import annotations
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.models.stage import Stage
from app.models.user import User

def create_stage(db: Session, user: User, content: str) -> Stage:
    st = Stage(uuid=str(uuid.uuid4()), user_id=user.id)
    st.content = content
    db.add(st); db.commit(); db.refresh(st)
    return st

def get_stage(db: Session, stage_uuid: str, user: Optional[User] = None) -> Optional[Stage]:
    q = db.query(Stage).filter(Stage.uuid == stage_uuid)
    if user is not None:
        q = q.filter(Stage.user_id == user.id)
    return q.first()

def delete_stage(db: Session, stage: Stage, commit: bool = True) -> None:
    stage.remove_content()
    db.delete(stage)
    if commit:
        db.commit()

def prune_stages(db: Session, older_than_hours: int) -> int:
    cutoff = datetime.utcnow() - timedelta(hours=older_than_hours)
    rows = db.query(Stage).filter(Stage.created_at < cutoff).all()
    for st in rows:
        delete_stage(db, st, commit=False)
    db.commit()
    return len(rows)
