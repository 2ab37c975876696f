from __future__ import annotations
import os
from pathlib import Path
from typing import Optional

from app.core.config import CONTENT_CACHE_DIR

def path_for(namespace: str, key: str) -> Path:
    """
    Location of one cached document.
    File name: <CONTENT_CACHE_DIR>/<namespace>/<key>.ipynb
    """
    if not key or "/" in key or ".." in key:
        raise ValueError(f"Invalid cache key '{key}'")
    return CONTENT_CACHE_DIR / namespace / f"{key}.ipynb"

def write_content(namespace: str, key: str, content: str) -> Path:
    fp = path_for(namespace, key)
    fp.parent.mkdir(parents=True, exist_ok=True)
    tmp = fp.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        fh.write(content)
    os.replace(tmp, fp)
    return fp

def read_content(namespace: str, key: str) -> Optional[str]:
    fp = path_for(namespace, key)
    if not fp.exists():
        return None
    return fp.read_text(encoding="utf-8")

def remove_content(namespace: str, key: str) -> bool:
    fp = path_for(namespace, key)
    if fp.exists():
        fp.unlink(missing_ok=True)
        return True
    return False
