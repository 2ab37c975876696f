from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.authz import AuthContext
from app.models.user import User

GENERAL_FIELDS = ("email", "user_name", "first_name", "last_name", "org")
ADMIN_FIELDS = GENERAL_FIELDS + ("admin",)

def permitted_fields(auth: AuthContext) -> tuple:
    return ADMIN_FIELDS if auth.is_admin else GENERAL_FIELDS

def find_user(db: Session, ident: str) -> Optional[User]:
    """Look up by user name, then email, then numeric id."""
    user = db.query(User).filter(User.user_name == ident).first()
    if user is None:
        user = db.query(User).filter(User.email == ident).first()
    if user is None and ident.isdigit():
        user = db.get(User, int(ident))
    return user

def list_user_names(db: Session, prefix: Optional[str] = None) -> List[str]:
    q = db.query(User.user_name)
    if prefix:
        q = q.filter(User.user_name.like(f"{prefix}%"))
    return [row[0] for row in q.order_by(User.user_name.asc()).all()]

def _check_unique(db: Session, data: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
    conds = []
    if data.get("user_name"):
        conds.append(User.user_name == data["user_name"])
    if data.get("email"):
        conds.append(User.email == data["email"])
    if not conds:
        return
    q = db.query(User).filter(or_(*conds))
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first():
        raise ValueError("user_name or email already taken")

def create_user(db: Session, data: Dict[str, Any]) -> User:
    if not data.get("user_name") or not data.get("email"):
        raise ValueError("user_name and email are required")
    _check_unique(db, data)
    user = User(**{k: v for k, v in data.items() if k in ADMIN_FIELDS})
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValueError("user_name or email already taken")
    db.refresh(user)
    return user

def update_user(db: Session, user: User, data: Dict[str, Any], fields: tuple) -> User:
    changes = {k: v for k, v in data.items() if k in fields and v is not None}
    _check_unique(db, changes, exclude_id=user.id)
    for k, v in changes.items():
        setattr(user, k, v)
    user.updated_at = datetime.utcnow()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValueError("user_name or email already taken")
    db.refresh(user)
    return user

def accept_terms(db: Session, user: User) -> User:
    if user.terms_accepted_at is None:
        user.terms_accepted_at = datetime.utcnow()
        db.commit(); db.refresh(user)
    return user

def delete_user(db: Session, user: User) -> None:
    db.delete(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValueError("user still owns notebooks or change requests")
