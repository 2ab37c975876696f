from contextlib import asynccontextmanager
from datetime import datetime
import logging, time

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from app.core.config import ALLOWED_ORIGINS, DEV_LOGIN_ENABLED, LOG_LEVEL
from app.core.database import get_db, engine, Base
from app.core.errors import BadUpload, Forbidden, NotPending
from app.core.security import create_access_token, create_refresh_token, decode_token, ACCESS_TTL_MIN
from app.core.authz import AuthContext
from app.deps.auth import require_admin
from app.metrics import init_metrics_zero, request_latency_seconds
from app.models import Notebook, User
from app.services.notify import get_notifier
from app.utils.runtime_config import set_notify_webhook, get_notify_webhook
from app.api.change_requests import router as change_requests_router
from app.api.notebooks import router as notebooks_router
from app.api.stages import router as stages_router
from app.api.users import router as users_router
from app.api.warnings import router as warnings_router

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"[startup] database {engine.name} at {engine.url.render_as_string(hide_password=True)}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"[startup] creating tables failed: {e}")
        raise
    logger.info(f"[startup] tables: {inspect(engine).get_table_names()}")
    init_metrics_zero()
    yield
    get_notifier().shutdown()
    logger.info("[shutdown] notification worker stopped")


app = FastAPI(
    title="Notebook Sharing API",
    description="Notebook sharing service with reviewed change requests",
    version="0.3.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS, allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)

@app.middleware("http")
async def track_latency(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    request_latency_seconds.observe(time.perf_counter() - start)
    return response

app.include_router(change_requests_router)
app.include_router(notebooks_router)
app.include_router(stages_router)
app.include_router(users_router)
app.include_router(warnings_router)


@app.exception_handler(BadUpload)
async def bad_upload_handler(request: Request, exc: BadUpload):
    return JSONResponse(status_code=422, content={"detail": exc.message, "errors": exc.errors})

@app.exception_handler(Forbidden)
async def forbidden_handler(request: Request, exc: Forbidden):
    return JSONResponse(status_code=403, content={"detail": str(exc) or "forbidden"})

@app.exception_handler(NotPending)
async def not_pending_handler(request: Request, exc: NotPending):
    return JSONResponse(status_code=400, content={"detail": str(exc) or "change request is not pending"})

@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        notebooks_count = db.query(Notebook).count()
        return {
            "status": "healthy",
            "database": "connected",
            "notebooks_count": notebooks_count,
            "tables": inspect(engine).get_table_names(),
            "timestamp": datetime.now(),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
            "timestamp": datetime.now(),
        }

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class LoginIn(BaseModel):
    user_name: str

@app.post("/auth/login")
def auth_login(body: LoginIn, db: Session = Depends(get_db)):
    if not DEV_LOGIN_ENABLED:
        raise HTTPException(status_code=404, detail="Development login is disabled")
    user = db.query(User).filter(User.user_name == body.user_name).first()
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return {
        "access_token": create_access_token(user.user_name),
        "refresh_token": create_refresh_token(user.user_name),
        "token_type": "bearer",
        "expires_in": ACCESS_TTL_MIN * 60,
        "user_name": user.user_name,
        "admin": bool(user.admin),
    }

class RefreshIn(BaseModel):
    refresh_token: str

@app.post("/auth/refresh")
def auth_refresh(body: RefreshIn):
    try:
        data = decode_token(body.refresh_token, expected_type="refresh")
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired refresh token")
    return {"access_token": create_access_token(data["sub"]), "token_type": "bearer", "expires_in": ACCESS_TTL_MIN * 60}


class NotifyWebhookIn(BaseModel):
    webhook_url: str

@app.post("/config/notify-webhook", response_model=dict)
def api_set_notify_webhook(body: NotifyWebhookIn, auth: AuthContext = Depends(require_admin)):
    url = body.webhook_url.strip()
    if url and not url.startswith(("https://", "http://")):
        raise HTTPException(status_code=400, detail="Invalid webhook URL")
    set_notify_webhook(url)
    return {"saved": True, "configured": bool(url)}

@app.get("/config/notify-webhook", response_model=dict)
def api_get_notify_webhook(auth: AuthContext = Depends(require_admin)):
    val = get_notify_webhook()
    masked = (val[:20] + "...") if val else None
    return {"configured": bool(val), "webhook_url_preview": masked}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
