# backend/app/metrics.py
from prometheus_client import Counter, Histogram

# === Core metrics (definitions ONLY here) ===
change_request_transitions_total = Counter(
    "change_request_transitions_total", "Change request lifecycle events", ["action"]
)

notebook_commits_total = Counter(
    "notebook_commits_total", "Notebook Store writes made by accepted change requests", ["kind"]
)

notifications_total = Counter(
    "notifications_total", "Notification deliveries", ["kind", "outcome"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds", "Request latency"
)

def init_metrics_zero():
    # create label combos at 0 so dashboards never see "no data"
    for action in ("created", "accepted", "declined", "canceled", "destroyed", "accept_failed"):
        change_request_transitions_total.labels(action=action).inc(0)
    for kind in ("write", "noop", "rollback"):
        notebook_commits_total.labels(kind=kind).inc(0)
    for kind in ("create", "accept", "decline", "cancel"):
        for outcome in ("sent", "skipped", "failed"):
            notifications_total.labels(kind=kind, outcome=outcome).inc(0)
