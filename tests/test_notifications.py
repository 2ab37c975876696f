import pytest

from conftest import ipynb
from app.core.authz import AuthContext
from app.crud.change_request import create_change_request
from app.services import notify
from app.services.mailer import MailMessage, create_mail, reload_templates
from app.utils.runtime_config import set_notify_webhook


def message(**kw):
    base = dict(kind="create", to=["owner@example.com"], subject="s", body="b", reqid="r1")
    base.update(kw)
    return MailMessage(**base)


@pytest.fixture(autouse=True)
def no_webhook():
    set_notify_webhook("")
    yield
    set_notify_webhook("")


def test_queue_delivers_in_background():
    sent = []
    q = notify.NotificationQueue(sender=lambda m: sent.append(m) or "sent")
    q.enqueue(message(reqid="a"))
    q.enqueue(message(reqid="b"))
    q.join()
    assert [m.reqid for m in sent] == ["a", "b"]
    q.shutdown()

def test_sender_failures_stay_in_worker():
    def boom(m):
        raise RuntimeError("smtp down")

    q = notify.NotificationQueue(sender=boom)
    q.enqueue(message())
    q.join()
    q.shutdown()

def test_deliver_without_channel_skips():
    assert notify.deliver(message()) == "skipped"
    assert notify.deliver(message(to=[])) == "skipped"

def test_deliver_posts_to_webhook(monkeypatch):
    calls = []

    class FakeResponse:
        status_code = 200
        def raise_for_status(self):
            pass

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json))
        return FakeResponse()

    monkeypatch.setattr(notify.requests, "post", fake_post)
    set_notify_webhook("https://hooks.example.com/x")
    assert notify.deliver(message(subject="Change request for nb")) == "sent"
    assert calls[0][0] == "https://hooks.example.com/x"
    assert calls[0][1]["text"] == "Change request for nb"

def test_create_mail_links_request(db, store, notifier, make_user, make_notebook, make_stage):
    alice = make_user("alice")
    bob = make_user("bob")
    nb = make_notebook(alice, title="Forecast")
    cr = create_change_request(db, AuthContext(bob), nb, make_stage(bob, ipynb("y = 2")), store, notifier,
                               comment="fix", base_url="https://nb.example.com/")
    reload_templates()
    mail = create_mail(cr, "https://nb.example.com/")
    assert mail.to == ["alice@example.com"]
    assert mail.subject == "Change request for Forecast"
    assert f"https://nb.example.com/change_requests/{cr.reqid}" in mail.body
    assert "Comment: fix" in mail.body
