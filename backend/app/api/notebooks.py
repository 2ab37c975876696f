from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.authz import AuthContext, Capability
from app.core.database import get_db
from app.core.errors import Forbidden
from app.crud.notebook import create_notebook, get_notebook, list_visible_notebooks
from app.deps.auth import get_current_user, require_accepted_terms
from app.models.notebook import Notebook
from app.services.notebook_store import NotebookStore, get_notebook_store

router = APIRouter()

class NotebookIn(BaseModel):
    title: str
    content: str
    public: bool = True
    description: Optional[str] = None
    license: Optional[str] = None

class NotebookOut(BaseModel):
    uuid: str
    title: str
    public: bool
    owner: str
    lang: str
    lang_version: Optional[str] = None
    commit_id: Optional[str] = None
    description: Optional[str] = None
    license: Optional[str] = None
    updated_at: datetime

def notebook_out(nb: Notebook) -> NotebookOut:
    return NotebookOut(
        uuid=nb.uuid,
        title=nb.title,
        public=bool(nb.public),
        owner=nb.owner.user_name,
        lang=nb.lang,
        lang_version=nb.lang_version,
        commit_id=nb.commit_id,
        description=nb.description,
        license=nb.license,
        updated_at=nb.updated_at,
    )

def _viewable(db: Session, auth: AuthContext, notebook_uuid: str) -> Notebook:
    nb = get_notebook(db, notebook_uuid)
    if not nb:
        raise HTTPException(status_code=404, detail="Notebook not found")
    if not auth.can(Capability.VIEW, nb):
        raise Forbidden("you are not allowed to view this notebook")
    return nb


@router.get("/notebooks", response_model=List[NotebookOut])
def index(mine: bool = False, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    owner_id = auth.user.id if mine else None
    return [notebook_out(nb) for nb in list_visible_notebooks(db, auth, owner_id=owner_id)]

@router.post("/notebooks", status_code=201, response_model=NotebookOut)
def create(
    body: NotebookIn,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_accepted_terms),
    store: NotebookStore = Depends(get_notebook_store),
):
    nb = create_notebook(
        db, auth, store, body.title, body.content,
        public=body.public, description=body.description, license=body.license,
    )
    return notebook_out(nb)

@router.get("/notebooks/{notebook_uuid}", response_model=NotebookOut)
def show(notebook_uuid: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    return notebook_out(_viewable(db, auth, notebook_uuid))

@router.get("/notebooks/{notebook_uuid}/download")
def download(
    notebook_uuid: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_current_user),
    store: NotebookStore = Depends(get_notebook_store),
):
    nb = _viewable(db, auth, notebook_uuid)
    content = store.read(nb.basename)
    if content is None:
        raise HTTPException(status_code=404, detail="Notebook content not found")
    return Response(
        content=content,
        media_type="application/x-ipynb+json",
        headers={"Content-Disposition": f'attachment; filename="{nb.title}.ipynb"'},
    )
