# app/crud/change_request.py
"""
Change request workflow.

A change request proposes a full replacement of a notebook's content. It is
created `pending` and moves exactly once to `accepted`, `declined` or
`canceled`:

    pending --accept (owner/admin)----> accepted
    pending --decline (owner/admin)---> declined
    pending --cancel (requestor/admin)-> canceled

Every operation receives the acting user's AuthContext explicitly and checks
authorization before the pending precondition, and both before mutating
anything. Notifications are handed to a notifier whose enqueue() returns
immediately.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.authz import AuthContext, Capability
from app.core.config import APP_BASE_URL
from app.core.errors import BadUpload, Forbidden
from app.crud.notebook import persist_notebook
from app.crud.stage import delete_stage
from app.metrics import change_request_transitions_total, notebook_commits_total
from app.models.change_request import ChangeRequest, ChangeRequestStatus
from app.models.notebook import EXTENSION_FIELDS, Notebook
from app.models.stage import Stage
from app.models.user import User
from app.services import mailer
from app.services.clickstream import record_click
from app.services.notebook_store import NotebookStore
from app.utils.ipynb import notebook_language, validate_notebook

logger = logging.getLogger(__name__)

# commit id recorded when an accepted request leaves the content untouched
NO_CHANGES = "no changes"


class Notifier(Protocol):
    def enqueue(self, msg: mailer.MailMessage) -> None: ...


def _extension_values(source: Any) -> Dict[str, Any]:
    """Extension fields that are present and non-blank on a mapping or object."""
    out: Dict[str, Any] = {}
    for attr in EXTENSION_FIELDS:
        if isinstance(source, Mapping):
            value = source.get(attr)
        else:
            value = getattr(source, attr, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        out[attr] = value
    return out

def commit_message(acceptor: User, notebook: Notebook, requestor: User) -> str:
    return (
        f"{acceptor.user_name}: [edit] {notebook.title}\n"
        f"Accepted change request from {requestor.user_name}"
    )


# -------------------------- authorization --------------------------

def verify_view(auth: AuthContext, cr: ChangeRequest) -> None:
    if not (auth.is_user(cr.requestor) or auth.can(Capability.EDIT, cr.notebook)):
        raise Forbidden("you are not allowed to view this request")

def _verify_edit_or_admin(auth: AuthContext, cr: ChangeRequest) -> None:
    if not auth.can(Capability.EDIT, cr.notebook):
        raise Forbidden("you are not allowed to review this request")

def _verify_requestor_or_admin(auth: AuthContext, cr: ChangeRequest) -> None:
    if not (auth.is_user(cr.requestor) or auth.is_admin):
        raise Forbidden("you are not allowed to cancel this request")

def _verify_admin(auth: AuthContext) -> None:
    if not auth.can(Capability.ADMIN):
        raise Forbidden("administrator access required")


# -------------------------- create --------------------------

def create_change_request(
    db: Session,
    auth: AuthContext,
    notebook: Notebook,
    stage: Stage,
    store: NotebookStore,
    notifier: Notifier,
    comment: Optional[str] = None,
    params: Optional[Mapping[str, Any]] = None,
    base_url: str = APP_BASE_URL,
) -> ChangeRequest:
    """Open a pending change request from staged content."""
    params = dict(params or {})
    if not auth.can(Capability.VIEW, notebook):
        raise Forbidden("you are not allowed to view this notebook")

    staged = stage.content
    if staged == store.read(notebook.basename):
        raise BadUpload(
            "proposed content is the same as the original",
            {"content": ["is the same as the original"]},
        )

    errors = validate_notebook(staged, notebook, auth.user, params)
    if errors:
        raise BadUpload("bad content", errors)

    cr = ChangeRequest(
        reqid=str(uuid.uuid4()),
        requestor_id=auth.user.id,
        notebook_id=notebook.id,
        status=ChangeRequestStatus.PENDING.value,
        requestor_comment=comment,
    )
    for attr, value in _extension_values(params).items():
        setattr(cr, attr, value)

    errors = cr.validate()
    if errors:
        raise BadUpload("invalid parameters", errors)

    # materialize into the content cache, then save the row
    cr.proposed_content = staged
    try:
        db.add(cr)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        cr.remove_content()
        logger.warning(f"[workflow] change request for {notebook.uuid} failed to save: {e}")
        raise BadUpload("invalid parameters", {"base": [e.__class__.__name__]})
    db.refresh(cr)

    delete_stage(db, stage)
    record_click(db, auth.user, "agreed to terms", notebook=notebook)
    record_click(db, auth.user, "submitted change request", notebook=notebook, tracking=cr.reqid)
    change_request_transitions_total.labels(action="created").inc()
    notifier.enqueue(mailer.create_mail(cr, base_url))
    logger.info(f"[workflow] {cr.reqid} submitted by {auth.user.user_name} for {notebook.uuid}")
    return cr


# -------------------------- accept --------------------------

def _check_owner_comment(db: Session, cr: ChangeRequest, comment: Optional[str]) -> None:
    cr.owner_comment = comment
    errors = cr.validate()
    if errors:
        db.rollback()
        raise BadUpload("invalid parameters", errors)

def _restore_store(store: NotebookStore, notebook: Notebook, old_content: Optional[str], message: str) -> None:
    """Best-effort compensation for a store write whose notebook row never saved."""
    if old_content is None:
        logger.error(f"[workflow] no prior content for {notebook.basename}; store keeps the rejected write")
        return
    try:
        store.edit_file(notebook.basename, old_content, public=notebook.public, message=message)
        notebook_commits_total.labels(kind="rollback").inc()
    except Exception as e:
        # known gap: store and notebook record now disagree
        logger.error(f"[workflow] rollback write for {notebook.basename} failed: {e}")
        raise

def accept_change_request(
    db: Session,
    auth: AuthContext,
    cr: ChangeRequest,
    store: NotebookStore,
    notifier: Notifier,
    comment: Optional[str] = None,
    params: Optional[Mapping[str, Any]] = None,
    base_url: str = APP_BASE_URL,
) -> ChangeRequest:
    """
    Apply the proposed content to the notebook and mark the request accepted.

    The content is validated again as the accepting user, since validation
    depends on who is acting. The store is written before the notebook row;
    if the row then fails to save, the original content is written back with
    the same commit message and BadUpload carries the notebook's errors. The
    request stays pending in that case.
    """
    _verify_edit_or_admin(auth, cr)
    cr.ensure_pending()

    notebook = cr.notebook
    requestor = cr.requestor
    new_content = cr.proposed_content
    errors = validate_notebook(new_content, notebook, auth.user, params)
    if errors:
        raise BadUpload("bad content", errors)
    _check_owner_comment(db, cr, comment)

    notebook.lang, notebook.lang_version = notebook_language(new_content)
    notebook.updater_id = requestor.id
    for attr, value in _extension_values(cr).items():
        setattr(notebook, attr, value)
    errors = notebook.validate()
    if errors:
        db.rollback()
        raise BadUpload("invalid parameters", errors)

    old_content = store.read(notebook.basename)
    message = commit_message(auth.user, notebook, requestor)
    wrote = old_content != new_content
    if wrote:
        try:
            notebook.commit_id = store.edit_file(
                notebook.basename, new_content, public=notebook.public, message=message
            )
        except Exception:
            db.rollback()
            raise
        notebook_commits_total.labels(kind="write").inc()
    else:
        notebook.commit_id = NO_CHANGES
        notebook_commits_total.labels(kind="noop").inc()

    errors = persist_notebook(db, notebook)
    if errors:
        if wrote:
            _restore_store(store, notebook, old_content, message)
        change_request_transitions_total.labels(action="accept_failed").inc()
        raise BadUpload("invalid notebook", errors)

    cr.transition(ChangeRequestStatus.ACCEPTED)
    cr.owner_comment = comment
    db.commit()
    db.refresh(cr)

    record_click(db, auth.user, "agreed to terms", notebook=notebook)
    record_click(db, auth.user, "accepted change request", notebook=notebook, tracking=cr.reqid)
    record_click(db, requestor, "edited notebook", notebook=notebook, tracking=notebook.commit_id)
    change_request_transitions_total.labels(action="accepted").inc()
    notifier.enqueue(mailer.accept_mail(cr, auth.user, base_url))
    logger.info(f"[workflow] {cr.reqid} accepted by {auth.user.user_name} (commit {notebook.commit_id})")
    return cr


# -------------------------- decline / cancel / destroy --------------------------

def decline_change_request(
    db: Session,
    auth: AuthContext,
    cr: ChangeRequest,
    notifier: Notifier,
    comment: Optional[str] = None,
    base_url: str = APP_BASE_URL,
) -> ChangeRequest:
    _verify_edit_or_admin(auth, cr)
    cr.ensure_pending()
    _check_owner_comment(db, cr, comment)

    cr.transition(ChangeRequestStatus.DECLINED)
    cr.owner_comment = comment
    db.commit()
    db.refresh(cr)

    record_click(db, auth.user, "declined change request", notebook=cr.notebook, tracking=cr.reqid)
    change_request_transitions_total.labels(action="declined").inc()
    notifier.enqueue(mailer.decline_mail(cr, auth.user, base_url))
    logger.info(f"[workflow] {cr.reqid} declined by {auth.user.user_name}")
    return cr

def cancel_change_request(
    db: Session,
    auth: AuthContext,
    cr: ChangeRequest,
    notifier: Notifier,
    base_url: str = APP_BASE_URL,
) -> ChangeRequest:
    _verify_requestor_or_admin(auth, cr)
    cr.ensure_pending()

    cr.transition(ChangeRequestStatus.CANCELED)
    db.commit()
    db.refresh(cr)

    record_click(db, auth.user, "canceled change request", notebook=cr.notebook, tracking=cr.reqid)
    change_request_transitions_total.labels(action="canceled").inc()
    notifier.enqueue(mailer.cancel_mail(cr, base_url))
    logger.info(f"[workflow] {cr.reqid} canceled by {auth.user.user_name}")
    return cr

def destroy_change_request(db: Session, auth: AuthContext, cr: ChangeRequest) -> None:
    """Admin-only hard delete; the normal workflow never removes requests."""
    _verify_admin(auth)
    reqid = cr.reqid
    cr.remove_content()
    db.delete(cr)
    db.commit()
    change_request_transitions_total.labels(action="destroyed").inc()
    logger.info(f"[workflow] {reqid} destroyed by {auth.user.user_name}")

def prune_change_requests(db: Session, older_than_days: int) -> int:
    """Retention sweep: drop finished requests not touched for the given number of days."""
    cutoff = datetime.utcnow() - timedelta(days=older_than_days)
    rows = (
        db.query(ChangeRequest)
        .filter(
            ChangeRequest.status != ChangeRequestStatus.PENDING.value,
            ChangeRequest.updated_at < cutoff,
        )
        .all()
    )
    for cr in rows:
        cr.remove_content()
        db.delete(cr)
    db.commit()
    return len(rows)


# -------------------------- queries --------------------------

def get_change_request(db: Session, reqid: str) -> Optional[ChangeRequest]:
    return db.query(ChangeRequest).filter(ChangeRequest.reqid == reqid).first()

def _compare(a: ChangeRequest, b: ChangeRequest) -> int:
    pending = ChangeRequestStatus.PENDING.value
    if a.status == pending and b.status != pending:
        return -1
    if a.status != pending and b.status == pending:
        return 1
    if a.status == b.status:
        # most recently updated first
        return (b.updated_at > a.updated_at) - (b.updated_at < a.updated_at)
    return (a.status > b.status) - (a.status < b.status)

def sort_change_requests(rows: Iterable[ChangeRequest]) -> List[ChangeRequest]:
    return sorted(rows, key=cmp_to_key(_compare))

def list_my_change_requests(db: Session, auth: AuthContext) -> Tuple[List[ChangeRequest], List[ChangeRequest]]:
    """(requests made by the caller, requests on notebooks the caller owns), each sorted."""
    uid = auth.user.id
    requested = db.query(ChangeRequest).filter(ChangeRequest.requestor_id == uid).all()
    owned = (
        db.query(ChangeRequest)
        .join(Notebook, ChangeRequest.notebook_id == Notebook.id)
        .filter(Notebook.owner_id == uid)
        .all()
    )
    return sort_change_requests(requested), sort_change_requests(owned)

def list_all_change_requests(db: Session, auth: AuthContext) -> List[ChangeRequest]:
    _verify_admin(auth)
    return db.query(ChangeRequest).order_by(ChangeRequest.updated_at.desc()).all()
