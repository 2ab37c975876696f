# backend/__init__.py
"""Notebook sharing service; `backend.app` is the FastAPI instance."""
import os, sys

_backend_dir = os.path.dirname(__file__)
if _backend_dir not in sys.path:
    # code under backend/ imports its modules as "app.*"
    sys.path.insert(0, _backend_dir)

from .main import app

__all__ = ["app"]
