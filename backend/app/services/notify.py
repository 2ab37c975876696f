from __future__ import annotations
import logging
import queue
import smtplib
import threading
from dataclasses import asdict
from email.message import EmailMessage
from typing import Callable, Optional

import requests

from app.core.config import SMTP_HOST, SMTP_PORT, MAIL_FROM
from app.metrics import notifications_total
from app.services.mailer import MailMessage
from app.utils.runtime_config import get_notify_webhook

logger = logging.getLogger(__name__)


def _smtp_send(msg: MailMessage) -> None:
    em = EmailMessage()
    em["From"] = MAIL_FROM
    em["To"] = ", ".join(msg.to)
    em["Subject"] = msg.subject
    for k, v in msg.headers.items():
        em[k] = v
    em.set_content(msg.body)
    with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=10) as smtp:
        smtp.send_message(em)

def _webhook_send(url: str, msg: MailMessage) -> None:
    r = requests.post(url, json={"text": msg.subject, **asdict(msg)}, timeout=10)
    logger.info(f"[notify] webhook POST status={r.status_code}")
    r.raise_for_status()

def deliver(msg: MailMessage) -> str:
    """
    Send one message through whichever channel is configured.
    SMTP wins over the webhook; with neither set the message is dropped.
    Returns the outcome label: sent | skipped.
    """
    if not msg.to:
        logger.info(f"[notify] {msg.kind} for {msg.reqid} has no recipients; skipping")
        return "skipped"
    if SMTP_HOST:
        _smtp_send(msg)
        return "sent"
    url = get_notify_webhook()
    if url:
        _webhook_send(url, msg)
        return "sent"
    logger.info(f"[notify] no channel configured; dropping {msg.kind} for {msg.reqid}")
    return "skipped"


class NotificationQueue:
    """
    Fire-and-forget dispatcher: enqueue() returns immediately and a daemon
    worker thread delivers messages in the background.
    """

    def __init__(self, sender: Callable[[MailMessage], str] = deliver):
        self._sender = sender
        self._queue: "queue.Queue[Optional[MailMessage]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name="notify-worker", daemon=True)
                self._thread.start()

    def enqueue(self, msg: MailMessage) -> None:
        self._ensure_worker()
        self._queue.put(msg)

    def _run(self) -> None:
        while True:
            msg = self._queue.get()
            try:
                if msg is None:
                    return
                self._deliver_one(msg)
            finally:
                self._queue.task_done()

    def _deliver_one(self, msg: MailMessage) -> None:
        try:
            outcome = self._sender(msg)
        except Exception as e:
            # delivery failures stay inside the dispatcher
            logger.error(f"[notify] {msg.kind} for {msg.reqid} failed: {e}")
            outcome = "failed"
        notifications_total.labels(kind=msg.kind, outcome=outcome).inc()

    def join(self) -> None:
        """Block until everything enqueued so far has been handled."""
        self._queue.join()

    def shutdown(self) -> None:
        with self._lock:
            thread = self._thread
        if thread is not None and thread.is_alive():
            self._queue.put(None)
            thread.join(timeout=5)


_notifier: Optional[NotificationQueue] = None

def get_notifier() -> NotificationQueue:
    global _notifier
    if _notifier is None:
        _notifier = NotificationQueue()
    return _notifier
