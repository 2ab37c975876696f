from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.authz import AuthContext
from app.core.database import get_db
from app.core.errors import Forbidden
from app.api.notebooks import NotebookOut, notebook_out
from app.crud import user as user_crud
from app.crud.notebook import list_visible_notebooks
from app.deps.auth import get_current_user, require_admin
from app.models.user import User

router = APIRouter()

class UserIn(BaseModel):
    user_name: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    org: Optional[str] = None
    admin: bool = False

class UserPatch(BaseModel):
    user_name: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    org: Optional[str] = None
    admin: Optional[bool] = None

class UserOut(BaseModel):
    id: int
    user_name: str
    email: str
    full_name: str
    org: Optional[str] = None
    admin: bool
    terms_accepted_at: Optional[datetime] = None

def _out(u: User) -> UserOut:
    return UserOut(
        id=u.id, user_name=u.user_name, email=u.email, full_name=u.full_name,
        org=u.org, admin=bool(u.admin), terms_accepted_at=u.terms_accepted_at,
    )

def _load(db: Session, ident: str) -> User:
    u = user_crud.find_user(db, ident)
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return u


@router.get("/users", response_model=List[str])
def index(prefix: Optional[str] = None, db: Session = Depends(get_db),
          auth: AuthContext = Depends(get_current_user)):
    # short prefixes would enumerate the whole directory
    if not auth.is_admin and (not prefix or len(prefix) < 3):
        raise Forbidden("a prefix of at least 3 characters is required")
    return user_crud.list_user_names(db, prefix)

@router.post("/users/me/terms", response_model=UserOut)
def accept_terms(db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    return _out(user_crud.accept_terms(db, auth.user))

@router.get("/users/{ident}", response_model=UserOut)
def show(ident: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    return _out(_load(db, ident))

@router.get("/users/{ident}/notebooks", response_model=List[NotebookOut])
def notebooks(ident: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    u = _load(db, ident)
    return [notebook_out(nb) for nb in list_visible_notebooks(db, auth, owner_id=u.id)]

@router.post("/users", status_code=201, response_model=UserOut)
def create(body: UserIn, db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    return _out(user_crud.create_user(db, body.model_dump()))

@router.patch("/users/{ident}", response_model=UserOut)
def update(ident: str, body: UserPatch, db: Session = Depends(get_db),
           auth: AuthContext = Depends(get_current_user)):
    u = _load(db, ident)
    if not (auth.is_admin or auth.is_user(u)):
        raise Forbidden("you may only edit your own profile")
    data = body.model_dump(exclude_unset=True)
    if "admin" in data and not auth.is_admin:
        raise Forbidden("only administrators may change the admin flag")
    return _out(user_crud.update_user(db, u, data, user_crud.permitted_fields(auth)))

@router.delete("/users/{ident}", status_code=204)
def destroy(ident: str, db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    user_crud.delete_user(db, _load(db, ident))
    return Response(status_code=204)
