from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.core.authz import AuthContext
from app.core.database import get_db
from app.crud import warning as warning_crud
from app.deps.auth import get_current_user, require_admin
from app.models.warning import Warning

router = APIRouter()

class WarningIn(BaseModel):
    message: str
    type: Literal["info", "warning", "danger"] = "warning"
    expires: Optional[datetime] = None

class WarningPatch(BaseModel):
    message: Optional[str] = None
    type: Optional[Literal["info", "warning", "danger"]] = None
    expires: Optional[datetime] = None

class WarningOut(BaseModel):
    id: int
    message: str
    type: str
    expires: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

def _load(db: Session, warning_id: int) -> Warning:
    w = db.get(Warning, warning_id)
    if not w:
        raise HTTPException(status_code=404, detail="Warning not found")
    return w


@router.get("/warnings", response_model=List[WarningOut])
def index(db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    return warning_crud.list_warnings(db)

@router.get("/warnings/current", response_model=Optional[WarningOut])
def current(db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    return warning_crud.current_warning(db)

@router.get("/warnings/{warning_id}", response_model=WarningOut)
def show(warning_id: int, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    return _load(db, warning_id)

@router.post("/warnings", status_code=201, response_model=WarningOut)
def create(body: WarningIn, db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    data = body.model_dump()
    data["user_id"] = auth.user.id
    return warning_crud.create_warning(db, data)

@router.patch("/warnings/{warning_id}", response_model=WarningOut)
def update(warning_id: int, body: WarningPatch, db: Session = Depends(get_db),
           auth: AuthContext = Depends(require_admin)):
    return warning_crud.update_warning(db, _load(db, warning_id), body.model_dump(exclude_unset=True))

@router.delete("/warnings/{warning_id}", status_code=204)
def destroy(warning_id: int, db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    warning_crud.delete_warning(db, _load(db, warning_id))
    return Response(status_code=204)
