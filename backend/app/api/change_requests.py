from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import FileResponse, HTMLResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.authz import AuthContext
from app.core.config import CHANGE_REQUEST_RETENTION_DAYS
from app.core.database import get_db
from app.core.errors import BadUpload
from app.crud import change_request as workflow
from app.crud.notebook import get_notebook
from app.crud.stage import get_stage
from app.deps.auth import get_current_user, require_admin, require_accepted_terms
from app.models.change_request import ChangeRequest
from app.services.notebook_store import NotebookStore, get_notebook_store
from app.services.notify import get_notifier
from app.utils.diff import render_compare, render_diff, render_inline

router = APIRouter()

class ChangeRequestOut(BaseModel):
    reqid: str
    status: str
    notebook_id: str
    notebook_title: str
    requestor: str
    requestor_comment: Optional[str] = None
    owner_comment: Optional[str] = None
    description: Optional[str] = None
    license: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class ChangeRequestIn(BaseModel):
    notebook_id: str
    staging_id: str
    comment: Optional[str] = None
    description: Optional[str] = None
    license: Optional[str] = None
    allow_language_change: bool = False

class ReviewIn(BaseModel):
    comment: Optional[str] = None
    allow_language_change: bool = False

def _out(cr: ChangeRequest) -> ChangeRequestOut:
    return ChangeRequestOut(
        reqid=cr.reqid,
        status=cr.status,
        notebook_id=cr.notebook.uuid,
        notebook_title=cr.notebook.title,
        requestor=cr.requestor.user_name,
        requestor_comment=cr.requestor_comment,
        owner_comment=cr.owner_comment,
        description=cr.description,
        license=cr.license,
        created_at=cr.created_at,
        updated_at=cr.updated_at,
    )

def _load(db: Session, reqid: str) -> ChangeRequest:
    cr = workflow.get_change_request(db, reqid)
    if not cr:
        raise HTTPException(status_code=404, detail="Change request not found")
    return cr

def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


@router.get("/change_requests", response_model=Dict[str, List[ChangeRequestOut]])
def index(db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    requested, owned = workflow.list_my_change_requests(db, auth)
    return {"requested": [_out(cr) for cr in requested], "owned": [_out(cr) for cr in owned]}

@router.get("/change_requests/all", response_model=List[ChangeRequestOut])
def all_requests(db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    return [_out(cr) for cr in workflow.list_all_change_requests(db, auth)]

@router.get("/change_requests/{reqid}", response_model=ChangeRequestOut)
def show(reqid: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    cr = _load(db, reqid)
    workflow.verify_view(auth, cr)
    return _out(cr)

def _diff_view(reqid: str, db: Session, auth: AuthContext, store: NotebookStore, renderer) -> HTMLResponse:
    cr = _load(db, reqid)
    workflow.verify_view(auth, cr)
    current = store.read(cr.notebook.basename)
    return HTMLResponse(renderer(current, cr.proposed_content))

@router.get("/change_requests/{reqid}/diff", response_class=HTMLResponse)
def diff(reqid: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user),
         store: NotebookStore = Depends(get_notebook_store)):
    return _diff_view(reqid, db, auth, store, render_diff)

@router.get("/change_requests/{reqid}/compare", response_class=HTMLResponse)
def compare(reqid: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user),
            store: NotebookStore = Depends(get_notebook_store)):
    return _diff_view(reqid, db, auth, store, render_compare)

@router.get("/change_requests/{reqid}/diff_inline", response_class=HTMLResponse)
def diff_inline(reqid: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user),
                store: NotebookStore = Depends(get_notebook_store)):
    return _diff_view(reqid, db, auth, store, render_inline)

@router.get("/change_requests/{reqid}/download")
def download(reqid: str, db: Session = Depends(get_db), auth: AuthContext = Depends(get_current_user)):
    cr = _load(db, reqid)
    workflow.verify_view(auth, cr)
    fp = cr.filename
    if not fp.exists():
        raise HTTPException(status_code=404, detail="Proposed content not found")
    return FileResponse(
        str(fp),
        media_type="application/x-ipynb+json",
        filename=f"{cr.notebook.title} -- Change Request.ipynb",
    )

@router.post("/change_requests", status_code=201, response_model=dict)
def create(
    body: ChangeRequestIn,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_accepted_terms),
    store: NotebookStore = Depends(get_notebook_store),
    notifier=Depends(get_notifier),
):
    notebook = get_notebook(db, body.notebook_id)
    if not notebook:
        raise BadUpload("notebook not found", {"notebook_id": ["does not exist"]})
    stage = get_stage(db, body.staging_id, auth.user)
    if not stage:
        raise BadUpload("staged content not found", {"staging_id": ["does not exist"]})
    params: Dict[str, Any] = body.model_dump()
    cr = workflow.create_change_request(
        db, auth, notebook, stage, store, notifier,
        comment=body.comment, params=params, base_url=_base_url(request),
    )
    return {"reqid": cr.reqid}

@router.delete("/change_requests/{reqid}", status_code=204)
def destroy(reqid: str, db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    workflow.destroy_change_request(db, auth, _load(db, reqid))
    return Response(status_code=204)

@router.patch("/change_requests/{reqid}/accept", response_model=dict)
def accept(
    reqid: str,
    request: Request,
    body: Optional[ReviewIn] = None,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_accepted_terms),
    store: NotebookStore = Depends(get_notebook_store),
    notifier=Depends(get_notifier),
):
    body = body or ReviewIn()
    workflow.accept_change_request(
        db, auth, _load(db, reqid), store, notifier,
        comment=body.comment, params=body.model_dump(), base_url=_base_url(request),
    )
    return {"message": "change request accepted"}

@router.patch("/change_requests/{reqid}/decline", response_model=dict)
def decline(
    reqid: str,
    request: Request,
    body: Optional[ReviewIn] = None,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_current_user),
    notifier=Depends(get_notifier),
):
    body = body or ReviewIn()
    workflow.decline_change_request(
        db, auth, _load(db, reqid), notifier, comment=body.comment, base_url=_base_url(request)
    )
    return {"message": "change request declined"}

@router.patch("/change_requests/{reqid}/cancel", response_model=dict)
def cancel(
    reqid: str,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_current_user),
    notifier=Depends(get_notifier),
):
    workflow.cancel_change_request(db, auth, _load(db, reqid), notifier, base_url=_base_url(request))
    return {"message": "change request canceled"}

@router.post("/admin/change_requests/prune", response_model=dict)
def prune(older_than_days: int = CHANGE_REQUEST_RETENTION_DAYS,
          db: Session = Depends(get_db), auth: AuthContext = Depends(require_admin)):
    deleted = workflow.prune_change_requests(db, older_than_days)
    return {"deleted": deleted, "older_than_days": older_than_days}
