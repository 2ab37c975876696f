import jwt
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from app.core.config import JWT_SECRET, JWT_ALGO, ACCESS_TTL_MIN, REFRESH_TTL_MIN

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _encode(payload: Dict[str, Any]) -> str:
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGO)

def _decode(token: str) -> Dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])

def _issue(user_name: str, token_type: str, ttl_min: int) -> str:
    now = _now()
    payload = {
        "sub": user_name,
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    return _encode(payload)

def create_access_token(user_name: str) -> str:
    return _issue(user_name, "access", ACCESS_TTL_MIN)

def create_refresh_token(user_name: str) -> str:
    return _issue(user_name, "refresh", REFRESH_TTL_MIN)

def decode_token(token: str, expected_type: str | None = None) -> Dict[str, Any]:
    data = _decode(token)
    if expected_type and data.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"unexpected token type: {data.get('type')}")
    return data
