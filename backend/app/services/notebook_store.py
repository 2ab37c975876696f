from __future__ import annotations
import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional, Any

from app.core.config import NOTEBOOK_STORE_DIR

logger = logging.getLogger(__name__)


class NotebookStore(ABC):
    """Canonical notebook content plus an append-only commit history."""

    @abstractmethod
    def read(self, basename: str) -> Optional[str]:
        """Current content of a notebook, or None if it was never written."""

    @abstractmethod
    def edit_file(self, basename: str, content: str, public: bool = True, message: str = "") -> str:
        """Write new content and return the commit id of the write."""

    @abstractmethod
    def history(self, basename: str) -> List[Dict[str, Any]]:
        """Commits for a notebook, oldest first."""


def _commit_id(basename: str, content: str, message: str, at: str) -> str:
    h = hashlib.sha1()
    for part in (basename, at, message, content):
        h.update(part.encode("utf-8"))
        h.update(b"\0")
    return h.hexdigest()


class FileNotebookStore(NotebookStore):
    """
    Directory-backed store.

    Layout:
      <root>/public/<basename>    current content of public notebooks
      <root>/private/<basename>   current content of private notebooks
      <root>/commits.jsonl        one JSON object per commit
    """

    def __init__(self, root: Path = NOTEBOOK_STORE_DIR):
        self.root = Path(root)
        self._lock = RLock()

    def _path(self, basename: str, public: bool) -> Path:
        if not basename or "/" in basename or ".." in basename:
            raise ValueError(f"Invalid notebook basename '{basename}'")
        return self.root / ("public" if public else "private") / basename

    def read(self, basename: str) -> Optional[str]:
        for public in (True, False):
            fp = self._path(basename, public)
            if fp.exists():
                return fp.read_text(encoding="utf-8")
        return None

    def edit_file(self, basename: str, content: str, public: bool = True, message: str = "") -> str:
        with self._lock:
            fp = self._path(basename, public)
            fp.parent.mkdir(parents=True, exist_ok=True)
            # visibility may have flipped since the last write
            self._path(basename, not public).unlink(missing_ok=True)
            tmp = fp.with_suffix(".tmp")
            tmp.write_text(content, encoding="utf-8")
            os.replace(tmp, fp)

            at = datetime.now(timezone.utc).isoformat()
            commit_id = _commit_id(basename, content, message, at)
            with (self.root / "commits.jsonl").open("a", encoding="utf-8") as fh:
                json.dump({"id": commit_id, "file": basename, "public": public,
                           "message": message, "at": at}, fh, ensure_ascii=False)
                fh.write("\n")
        logger.info(f"[store] committed {basename} as {commit_id[:12]}")
        return commit_id

    def history(self, basename: str) -> List[Dict[str, Any]]:
        log = self.root / "commits.jsonl"
        if not log.exists():
            return []
        out = []
        with log.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                entry = json.loads(line)
                if entry.get("file") == basename:
                    out.append(entry)
        return out


_store: Optional[NotebookStore] = None

def get_notebook_store() -> NotebookStore:
    global _store
    if _store is None:
        _store = FileNotebookStore()
    return _store
