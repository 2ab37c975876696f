from __future__ import annotations
import json
from datetime import datetime, timezone
from typing import Dict, Any

from app.core.config import CLICKSTREAM_DIR

def _ensure_dir() -> None:
    CLICKSTREAM_DIR.mkdir(parents=True, exist_ok=True)

def write_event(event: Dict[str, Any]) -> None:
    """
    Append a single clickstream event to a day-partitioned .jsonl file.
    Each line is a JSON object.
    """
    _ensure_dir()
    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    fp = CLICKSTREAM_DIR / f"{day}.jsonl"
    with fp.open("a", encoding="utf-8") as fh:
        json.dump(event, fh, ensure_ascii=False, default=str)
        fh.write("\n")
