from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.authz import AuthContext, Capability
from app.core.database import get_db
from app.core.errors import Forbidden
from app.core.security import decode_token
from app.models.user import User

def get_current_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> AuthContext:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        data = decode_token(token, expected_type="access")
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired token")
    user = db.query(User).filter(User.user_name == data.get("sub")).first()
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return AuthContext(user=user)

def require_admin(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
    if not auth.can(Capability.ADMIN):
        raise Forbidden("administrator access required")
    return auth

def require_accepted_terms(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
    if not auth.accepted_terms:
        raise Forbidden("you must accept the terms of service first")
    return auth
