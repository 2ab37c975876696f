import json
import os
import tempfile
from datetime import datetime
from pathlib import Path

import pytest

# configure storage before the app modules read their settings
_TMP = Path(tempfile.mkdtemp(prefix="nbshare-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["CONTENT_CACHE_DIR"] = str(_TMP / "cache")
os.environ["CLICKSTREAM_DIR"] = str(_TMP / "clickstream")
os.environ["NOTEBOOK_STORE_DIR"] = str(_TMP / "store")
os.environ["DEV_LOGIN_ENABLED"] = "1"
os.environ.setdefault("SMTP_HOST", "")

from fastapi.testclient import TestClient  # noqa: E402

from backend.main import app  # noqa: E402
from app.core.authz import AuthContext  # noqa: E402
from app.core.database import Base, SessionLocal, engine  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.crud.notebook import create_notebook  # noqa: E402
from app.crud.stage import create_stage  # noqa: E402
from app.models import User  # noqa: E402
from app.services.notebook_store import FileNotebookStore, get_notebook_store  # noqa: E402
from app.services.notify import get_notifier  # noqa: E402


def ipynb(*sources, lang="python", version="3.11"):
    """Minimal nbformat 4 document with one code cell per source string."""
    return json.dumps({
        "nbformat": 4,
        "nbformat_minor": 5,
        "metadata": {"language_info": {"name": lang, "version": version}},
        "cells": [{"cell_type": "code", "source": src, "metadata": {}, "outputs": []} for src in sources],
    }, indent=1)


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def enqueue(self, msg):
        self.messages.append(msg)

    def kinds(self):
        return [m.kind for m in self.messages]


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(tmp_path):
    return FileNotebookStore(tmp_path / "store")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(store, notifier):
    app.dependency_overrides[get_notebook_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(user_name, admin=False, terms=True):
        u = User(
            user_name=user_name,
            email=f"{user_name}@example.com",
            first_name=user_name.capitalize(),
            admin=admin,
            terms_accepted_at=datetime.utcnow() if terms else None,
        )
        db.add(u)
        db.commit()
        db.refresh(u)
        return u
    return _make


@pytest.fixture
def make_notebook(db, store):
    def _make(owner, content=None, title="Analysis", public=True):
        return create_notebook(
            db, AuthContext(owner), store, title, content or ipynb("print('v1')"), public=public
        )
    return _make


@pytest.fixture
def make_stage(db):
    def _make(user, content):
        return create_stage(db, user, content)
    return _make


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.user_name)}"}


@pytest.fixture
def headers():
    return auth_headers
