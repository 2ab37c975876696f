from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.authz import AuthContext
from app.core.config import MAX_NOTEBOOK_BYTES, STAGE_TTL_HOURS
from app.core.database import get_db
from app.core.errors import BadUpload
from app.crud.stage import create_stage, delete_stage, get_stage, prune_stages
from app.deps.auth import get_current_user, require_admin
from app.models.stage import Stage

router = APIRouter()

class StageIn(BaseModel):
    content: str

class StageOut(BaseModel):
    staging_id: str
    created_at: datetime
    content: str

def _own_stage(db: Session, auth: AuthContext, staging_id: str) -> Stage:
    # stages are private to the uploader, admins included
    st = get_stage(db, staging_id, auth.user)
    if not st:
        raise HTTPException(status_code=404, detail="Staged content not found")
    return st


@router.post("/stages", status_code=201, response_model=dict)
def stage(body: StageIn, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    if not body.content.strip():
        raise BadUpload("bad content", {"content": ["can't be blank"]})
    if not auth.is_admin and len(body.content.encode("utf-8")) > MAX_NOTEBOOK_BYTES:
        raise BadUpload("bad content", {"content": [f"is larger than {MAX_NOTEBOOK_BYTES} bytes"]})
    st = create_stage(db, auth.user, body.content)
    return {"staging_id": st.uuid}

@router.get("/stages/{staging_id}", response_model=StageOut)
def show(staging_id: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    st = _own_stage(db, auth, staging_id)
    content = st.content
    if content is None:
        raise HTTPException(status_code=404, detail="Staged content not found")
    return StageOut(staging_id=st.uuid, created_at=st.created_at, content=content)

@router.delete("/stages/{staging_id}", status_code=204)
def destroy(staging_id: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    delete_stage(db, _own_stage(db, auth, staging_id))
    return Response(status_code=204)

@router.post("/admin/stages/prune", response_model=dict)
def prune(older_than_hours: int = STAGE_TTL_HOURS,
          db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    return {"deleted": prune_stages(db, older_than_hours), "older_than_hours": older_than_hours}
