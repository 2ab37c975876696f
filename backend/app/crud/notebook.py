from __future__ import annotations
import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.authz import AuthContext, Capability
from app.core.errors import BadUpload
from app.models.notebook import Notebook
from app.services.clickstream import record_click
from app.services.notebook_store import NotebookStore
from app.utils.ipynb import notebook_language, validate_notebook

logger = logging.getLogger(__name__)

def get_notebook(db: Session, notebook_uuid: str) -> Optional[Notebook]:
    return db.query(Notebook).filter(Notebook.uuid == notebook_uuid).first()

def list_visible_notebooks(db: Session, auth: AuthContext, owner_id: Optional[int] = None) -> List[Notebook]:
    q = db.query(Notebook)
    if owner_id is not None:
        q = q.filter(Notebook.owner_id == owner_id)
    rows = q.order_by(Notebook.updated_at.desc()).all()
    return [nb for nb in rows if auth.can(Capability.VIEW, nb)]

def create_notebook(
    db: Session,
    auth: AuthContext,
    store: NotebookStore,
    title: str,
    content: str,
    public: bool = True,
    description: Optional[str] = None,
    license: Optional[str] = None,
) -> Notebook:
    errors = validate_notebook(content, None, auth.user)
    if errors:
        raise BadUpload("bad content", errors)

    nb = Notebook(
        uuid=str(uuid.uuid4()),
        title=title,
        public=public,
        owner_id=auth.user.id,
        updater_id=auth.user.id,
        description=description,
        license=license,
    )
    nb.lang, nb.lang_version = notebook_language(content)
    errors = nb.validate()
    if errors:
        raise BadUpload("invalid parameters", errors)

    nb.commit_id = store.edit_file(
        nb.basename, content, public=nb.public,
        message=f"{auth.user.user_name}: [new] {nb.title}",
    )
    db.add(nb)
    db.commit()
    db.refresh(nb)
    record_click(db, auth.user, "uploaded notebook", notebook=nb, tracking=nb.commit_id)
    return nb

def persist_notebook(db: Session, notebook: Notebook) -> Optional[Dict[str, List[str]]]:
    """
    Validate and commit a notebook row. Returns None on success, or the
    validation/database errors after rolling the session back.
    """
    errors = notebook.validate()
    if not errors:
        try:
            db.add(notebook)
            db.commit()
            db.refresh(notebook)
            return None
        except SQLAlchemyError as e:
            logger.warning(f"[workflow] notebook {notebook.uuid} failed to save: {e}")
            errors = {"base": [str(e.__class__.__name__)]}
    db.rollback()
    return errors
