from __future__ import annotations
import json
from typing import Any, Dict, List, Mapping, Optional, Tuple, TYPE_CHECKING

from app.core.config import MAX_NOTEBOOK_BYTES

if TYPE_CHECKING:
    from app.models.notebook import Notebook
    from app.models.user import User

CELL_TYPES = {"code", "markdown", "raw"}
MIN_NBFORMAT = 4

def parse_notebook(content: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(content)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None

def _cell_source(cell: Mapping[str, Any]) -> str:
    src = cell.get("source", "")
    if isinstance(src, list):
        return "".join(str(s) for s in src)
    return str(src)

def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}

def notebook_language(content: str) -> Tuple[str, str]:
    """(language, version) from notebook metadata; ("unknown", "") when absent."""
    meta = _mapping((parse_notebook(content) or {}).get("metadata"))
    info = _mapping(meta.get("language_info"))
    kernel = _mapping(meta.get("kernelspec"))
    lang = info.get("name") or kernel.get("language") or "unknown"
    version = info.get("version") or ""
    return str(lang).lower(), str(version)

def validate_notebook(
    content: Optional[str],
    notebook: Optional["Notebook"],
    user: "User",
    params: Optional[Mapping[str, Any]] = None,
) -> Dict[str, List[str]]:
    """
    Check uploaded notebook content in the context of the target notebook,
    the acting user and the submitted parameters.

    Returns a field -> messages mapping; empty means valid. The size limit
    applies to non-admins only, and a change of kernel language needs
    `allow_language_change` in params, so the same content can pass for one
    user and fail for another.
    """
    params = params or {}
    errors: Dict[str, List[str]] = {}

    if content is None:
        return {"content": ["is missing"]}
    if not user.admin and len(content.encode("utf-8")) > MAX_NOTEBOOK_BYTES:
        errors.setdefault("content", []).append(
            f"exceeds the maximum size of {MAX_NOTEBOOK_BYTES} bytes"
        )

    data = parse_notebook(content)
    if data is None:
        errors.setdefault("content", []).append("is not a valid notebook JSON document")
        return errors

    nbformat = data.get("nbformat")
    if not isinstance(nbformat, int) or nbformat < MIN_NBFORMAT:
        errors.setdefault("nbformat", []).append(f"must be {MIN_NBFORMAT} or later")

    meta = data.get("metadata", {})
    if not isinstance(meta, dict):
        errors.setdefault("metadata", []).append("must be an object")
    else:
        for key in ("language_info", "kernelspec"):
            if key in meta and not isinstance(meta[key], dict):
                errors.setdefault("metadata", []).append(f"{key} must be an object")

    cells = data.get("cells")
    if not isinstance(cells, list):
        errors.setdefault("cells", []).append("must be a list")
    else:
        for i, cell in enumerate(cells):
            if not isinstance(cell, dict) or not isinstance(cell.get("cell_type"), str) \
                    or cell["cell_type"] not in CELL_TYPES:
                errors.setdefault("cells", []).append(f"cell {i} has an invalid cell_type")
            elif not isinstance(cell.get("source", ""), (str, list)):
                errors.setdefault("cells", []).append(f"cell {i} has an invalid source")

    if notebook is not None and notebook.lang and notebook.lang != "unknown":
        lang, _ = notebook_language(content)
        if lang != notebook.lang and not params.get("allow_language_change"):
            errors.setdefault("lang", []).append(
                f"changes from {notebook.lang} to {lang}; set allow_language_change to confirm"
            )
    return errors

def notebook_lines(content: Optional[str]) -> List[str]:
    """Flatten a notebook into text lines, one header line per cell."""
    data = parse_notebook(content or "")
    if data is None:
        return (content or "").splitlines()
    lines: List[str] = []
    cells = data.get("cells")
    for i, cell in enumerate(cells if isinstance(cells, list) else []):
        if not isinstance(cell, dict):
            continue
        lines.append(f"# [{i}] {cell.get('cell_type', '?')}")
        lines.extend(_cell_source(cell).splitlines())
    return lines
