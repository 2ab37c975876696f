from datetime import datetime, timedelta

import pytest

from conftest import ipynb
from app.core.authz import AuthContext
from app.core.errors import BadUpload, Forbidden, NotPending
from app.crud import change_request as workflow
from app.crud.stage import create_stage, get_stage
from app.models import ChangeRequest, Clickstream


def open_request(db, requestor, notebook, store, notifier, content, comment=None, **params):
    stage = create_stage(db, requestor, content)
    return workflow.create_change_request(
        db, AuthContext(requestor), notebook, stage, store, notifier, comment=comment, params=params
    )


@pytest.fixture
def alice(make_user):
    return make_user("alice")

@pytest.fixture
def bob(make_user):
    return make_user("bob")

@pytest.fixture
def root(make_user):
    return make_user("root", admin=True)

@pytest.fixture
def notebook(make_notebook, alice):
    return make_notebook(alice, ipynb("print('v1')"))


# -------------------------- create --------------------------

def test_created_request_is_pending(db, store, notifier, alice, bob, notebook):
    proposed = ipynb("print('v2')")
    stage = create_stage(db, bob, proposed)
    staging_id = stage.uuid

    cr = workflow.create_change_request(
        db, AuthContext(bob), notebook, stage, store, notifier, comment="please"
    )

    assert cr.status == "pending"
    assert cr.requestor_comment == "please"
    assert cr.proposed_content == proposed
    assert get_stage(db, staging_id) is None
    assert notifier.kinds() == ["create"]
    assert notifier.messages[0].to == [alice.email]
    assert cr.reqid in notifier.messages[0].body

def test_identical_content_is_rejected(db, store, notifier, bob, notebook):
    same = store.read(notebook.basename)
    with pytest.raises(BadUpload) as exc:
        open_request(db, bob, notebook, store, notifier, same,
                     description="other", allow_language_change=True)
    assert "content" in exc.value.errors
    assert db.query(ChangeRequest).count() == 0

def test_invalid_content_is_rejected(db, store, notifier, bob, notebook):
    with pytest.raises(BadUpload) as exc:
        open_request(db, bob, notebook, store, notifier, "{not json")
    assert exc.value.message == "bad content"
    assert "content" in exc.value.errors

def test_overlong_comment_is_rejected(db, store, notifier, bob, notebook):
    with pytest.raises(BadUpload) as exc:
        open_request(db, bob, notebook, store, notifier, ipynb("x = 2"), comment="x" * 2001)
    assert "requestor_comment" in exc.value.errors
    assert db.query(ChangeRequest).count() == 0

def test_language_change_needs_confirmation(db, store, notifier, bob, notebook):
    r_code = ipynb("print(1)", lang="R", version="4.3")
    with pytest.raises(BadUpload) as exc:
        open_request(db, bob, notebook, store, notifier, r_code)
    assert "lang" in exc.value.errors

    cr = open_request(db, bob, notebook, store, notifier, r_code, allow_language_change=True)
    assert cr.is_pending

def test_private_notebook_needs_view_permission(db, store, notifier, make_notebook, alice, bob):
    private = make_notebook(alice, ipynb("secret = 1"), title="Private", public=False)
    with pytest.raises(Forbidden):
        open_request(db, bob, private, store, notifier, ipynb("secret = 2"))

def test_blank_extension_fields_are_not_copied(db, store, notifier, bob, notebook):
    cr = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"),
                      description="Better docs", license="   ")
    assert cr.description == "Better docs"
    assert cr.license is None


# -------------------------- accept --------------------------

def test_owner_accepts_with_comment(db, store, notifier, alice, bob, notebook):
    proposed = ipynb("print('v2')")
    cr = open_request(db, bob, notebook, store, notifier, proposed, description="Now with v2")

    workflow.accept_change_request(db, AuthContext(alice), cr, store, notifier, comment="ok")

    db.refresh(cr); db.refresh(notebook)
    assert cr.status == "accepted"
    assert cr.owner_comment == "ok"
    assert store.read(notebook.basename) == proposed
    assert notebook.updater_id == bob.id
    assert notebook.description == "Now with v2"

    history = store.history(notebook.basename)
    assert len(history) == 2
    assert notebook.commit_id == history[-1]["id"]
    assert history[-1]["message"] == "alice: [edit] Analysis\nAccepted change request from bob"

    assert notifier.kinds() == ["create", "accept"]
    assert notifier.messages[-1].to == [bob.email]

    edited = db.query(Clickstream).filter(Clickstream.action == "edited notebook").one()
    assert edited.user_id == bob.id
    assert edited.tracking == notebook.commit_id

def test_accept_identical_content_skips_store_write(db, store, notifier, alice, bob, notebook):
    proposed = ipynb("print('v2')")
    cr = open_request(db, bob, notebook, store, notifier, proposed)
    # owner already applied the same content through another route
    store.edit_file(notebook.basename, proposed, message="alice: [edit] Analysis")
    commits_before = len(store.history(notebook.basename))

    workflow.accept_change_request(db, AuthContext(alice), cr, store, notifier)

    db.refresh(cr); db.refresh(notebook)
    assert cr.status == "accepted"
    assert notebook.commit_id == workflow.NO_CHANGES
    assert len(store.history(notebook.basename)) == commits_before

def test_accept_restores_store_when_notebook_save_fails(db, store, notifier, monkeypatch, alice, bob, notebook):
    original = store.read(notebook.basename)
    cr = open_request(db, bob, notebook, store, notifier, ipynb("print('v2')"))

    def failing_persist(session, nb):
        session.rollback()
        return {"base": ["simulated failure"]}

    monkeypatch.setattr(workflow, "persist_notebook", failing_persist)

    with pytest.raises(BadUpload) as exc:
        workflow.accept_change_request(db, AuthContext(alice), cr, store, notifier, comment="ok")

    assert exc.value.errors == {"base": ["simulated failure"]}
    assert store.read(notebook.basename) == original
    history = store.history(notebook.basename)
    # initial upload, the accepted write, then the rewrite of the old content
    assert len(history) == 3
    assert history[-1]["message"] == history[-2]["message"]

    db.refresh(cr)
    assert cr.status == "pending"
    assert notifier.kinds() == ["create"]

def test_accept_revalidates_as_acting_user(db, store, notifier, alice, bob, notebook):
    r_code = ipynb("print(1)", lang="R", version="4.3")
    cr = open_request(db, bob, notebook, store, notifier, r_code, allow_language_change=True)

    with pytest.raises(BadUpload) as exc:
        workflow.accept_change_request(db, AuthContext(alice), cr, store, notifier)
    assert "lang" in exc.value.errors

    workflow.accept_change_request(
        db, AuthContext(alice), cr, store, notifier, params={"allow_language_change": True}
    )
    db.refresh(notebook)
    assert notebook.lang == "r"
    assert notebook.lang_version == "4.3"


# -------------------------- authorization and terminal states --------------------------

def test_only_owner_or_admin_reviews(db, store, notifier, root, bob, notebook):
    cr = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    with pytest.raises(Forbidden):
        workflow.accept_change_request(db, AuthContext(bob), cr, store, notifier)
    with pytest.raises(Forbidden):
        workflow.decline_change_request(db, AuthContext(bob), cr, notifier)

    workflow.decline_change_request(db, AuthContext(root), cr, notifier, comment="no thanks")
    assert cr.status == "declined"
    assert cr.owner_comment == "no thanks"
    assert notifier.messages[-1].kind == "decline"
    assert notifier.messages[-1].to == [bob.email]

def test_only_requestor_or_admin_cancels(db, store, notifier, make_user, alice, root, bob, notebook):
    cr = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    with pytest.raises(Forbidden):
        workflow.cancel_change_request(db, AuthContext(alice), cr, notifier)
    with pytest.raises(Forbidden):
        workflow.cancel_change_request(db, AuthContext(make_user("carol")), cr, notifier)

    workflow.cancel_change_request(db, AuthContext(root), cr, notifier)
    assert cr.status == "canceled"
    assert notifier.messages[-1].to == [alice.email]

def test_cancel_then_accept_is_not_pending(db, store, notifier, alice, bob, notebook):
    cr = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    workflow.cancel_change_request(db, AuthContext(bob), cr, notifier)
    commits = len(store.history(notebook.basename))

    with pytest.raises(NotPending):
        workflow.accept_change_request(db, AuthContext(alice), cr, store, notifier)
    assert len(store.history(notebook.basename)) == commits
    assert cr.status == "canceled"

@pytest.mark.parametrize("first", ["accept", "decline", "cancel"])
@pytest.mark.parametrize("second", ["accept", "decline", "cancel"])
def test_terminal_requests_reject_transitions(db, store, notifier, alice, bob, notebook, first, second):
    cr = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    actions = {
        "accept": lambda: workflow.accept_change_request(db, AuthContext(alice), cr, store, notifier),
        "decline": lambda: workflow.decline_change_request(db, AuthContext(alice), cr, notifier),
        "cancel": lambda: workflow.cancel_change_request(db, AuthContext(bob), cr, notifier),
    }
    actions[first]()
    status = cr.status
    with pytest.raises(NotPending):
        actions[second]()
    db.refresh(cr)
    assert cr.status == status

def test_authorization_is_checked_before_status(db, store, notifier, bob, make_user, notebook):
    cr = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    workflow.cancel_change_request(db, AuthContext(bob), cr, notifier)
    with pytest.raises(Forbidden):
        workflow.accept_change_request(db, AuthContext(make_user("mallory")), cr, store, notifier)


# -------------------------- listing and maintenance --------------------------

def test_listing_puts_pending_first(db, store, notifier, alice, bob, notebook):
    now = datetime.utcnow()
    layout = [
        ("pending", now - timedelta(days=3)),
        ("accepted", now - timedelta(days=1)),
        ("pending", now - timedelta(days=1)),
        ("declined", now),
        ("canceled", now - timedelta(days=2)),
        ("accepted", now - timedelta(hours=1)),
    ]
    made = []
    for i, (status, updated) in enumerate(layout):
        cr = open_request(db, bob, notebook, store, notifier, ipynb(f"x = {i + 10}"))
        cr.status = status
        cr.updated_at = updated
        made.append(cr)
    db.commit()

    requested, owned = workflow.list_my_change_requests(db, AuthContext(bob))
    expected = [made[2], made[0], made[5], made[1], made[4], made[3]]
    assert [cr.reqid for cr in requested] == [cr.reqid for cr in expected]
    assert owned == []

    requested, owned = workflow.list_my_change_requests(db, AuthContext(alice))
    assert requested == []
    assert [cr.reqid for cr in owned] == [cr.reqid for cr in expected]

def test_listing_everything_is_admin_only(db, store, notifier, root, bob, notebook):
    open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    with pytest.raises(Forbidden):
        workflow.list_all_change_requests(db, AuthContext(bob))
    assert len(workflow.list_all_change_requests(db, AuthContext(root))) == 1

def test_destroy_removes_row_and_content(db, store, notifier, root, bob, notebook):
    cr = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    path = cr.filename
    assert path.exists()
    with pytest.raises(Forbidden):
        workflow.destroy_change_request(db, AuthContext(bob), cr)

    workflow.destroy_change_request(db, AuthContext(root), cr)
    assert not path.exists()
    assert db.query(ChangeRequest).count() == 0

def test_prune_keeps_pending_requests(db, store, notifier, bob, notebook):
    old = datetime.utcnow() - timedelta(days=400)
    finished = open_request(db, bob, notebook, store, notifier, ipynb("x = 2"))
    waiting = open_request(db, bob, notebook, store, notifier, ipynb("x = 3"))
    recent = open_request(db, bob, notebook, store, notifier, ipynb("x = 4"))
    finished.status, finished.updated_at = "declined", old
    waiting.updated_at = old
    recent.status = "canceled"
    db.commit()

    assert workflow.prune_change_requests(db, older_than_days=180) == 1
    remaining = {cr.reqid for cr in db.query(ChangeRequest).all()}
    assert remaining == {waiting.reqid, recent.reqid}

def test_owner_comment_is_length_checked(db, store, notifier, alice, bob, notebook):
    proposed = ipynb("x = 2")
    cr = open_request(db, bob, notebook, store, notifier, proposed)
    commits = len(store.history(notebook.basename))

    with pytest.raises(BadUpload) as exc:
        workflow.accept_change_request(db, AuthContext(alice), cr, store, notifier, comment="x" * 2001)
    assert "owner_comment" in exc.value.errors
    with pytest.raises(BadUpload):
        workflow.decline_change_request(db, AuthContext(alice), cr, notifier, comment="x" * 2001)

    db.refresh(cr)
    assert cr.status == "pending"
    assert cr.owner_comment is None
    assert len(store.history(notebook.basename)) == commits
