import os
from threading import RLock

_lock = RLock()
_state = {
    # seed from environment on boot; can be overridden at runtime
    "NOTIFY_WEBHOOK_URL": os.getenv("NOTIFY_WEBHOOK_URL", "").strip(),
}

def set_notify_webhook(url: str | None) -> None:
    with _lock:
        _state["NOTIFY_WEBHOOK_URL"] = (url or "").strip()

def get_notify_webhook() -> str:
    with _lock:
        return _state.get("NOTIFY_WEBHOOK_URL", "")
