def test_user_search_needs_prefix_or_admin(client, headers, make_user):
    alice = make_user("alice")
    make_user("alfred")
    make_user("bob")
    root = make_user("root", admin=True)

    assert client.get("/users", headers=headers(alice)).status_code == 403
    assert client.get("/users?prefix=al", headers=headers(alice)).status_code == 403

    r = client.get("/users?prefix=alf", headers=headers(alice))
    assert r.json() == ["alfred"]

    r = client.get("/users", headers=headers(root))
    assert r.json() == ["alfred", "alice", "bob", "root"]

def test_show_by_name_email_or_id(client, headers, make_user):
    alice = make_user("alice")
    for ident in ("alice", "alice@example.com", str(alice.id)):
        r = client.get(f"/users/{ident}", headers=headers(alice))
        assert r.status_code == 200
        assert r.json()["user_name"] == "alice"
    assert client.get("/users/nobody", headers=headers(alice)).status_code == 404

def test_create_and_delete_are_admin_only(client, headers, make_user):
    alice = make_user("alice")
    root = make_user("root", admin=True)
    body = {"user_name": "carol", "email": "carol@example.com", "first_name": "Carol"}

    assert client.post("/users", json=body, headers=headers(alice)).status_code == 403
    r = client.post("/users", json=body, headers=headers(root))
    assert r.status_code == 201
    assert r.json()["full_name"] == "Carol"

    assert client.post("/users", json=body, headers=headers(root)).status_code == 400

    assert client.delete("/users/carol", headers=headers(alice)).status_code == 403
    assert client.delete("/users/carol", headers=headers(root)).status_code == 204
    assert client.get("/users/carol", headers=headers(root)).status_code == 404

def test_update_self_but_not_admin_flag(client, headers, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    root = make_user("root", admin=True)

    r = client.patch("/users/alice", json={"org": "Research"}, headers=headers(alice))
    assert r.status_code == 200
    assert r.json()["org"] == "Research"

    assert client.patch("/users/alice", json={"org": "Sales"}, headers=headers(bob)).status_code == 403
    assert client.patch("/users/alice", json={"admin": True}, headers=headers(alice)).status_code == 403

    r = client.patch("/users/alice", json={"admin": True}, headers=headers(root))
    assert r.json()["admin"] is True

def test_email_conflict_is_400(client, headers, make_user):
    alice = make_user("alice")
    make_user("bob")
    r = client.patch("/users/alice", json={"email": "bob@example.com"}, headers=headers(alice))
    assert r.status_code == 400

def test_accept_terms(client, headers, make_user):
    newcomer = make_user("newcomer", terms=False)
    r = client.post("/users/me/terms", headers=headers(newcomer))
    assert r.status_code == 200
    assert r.json()["terms_accepted_at"] is not None

def test_user_notebooks_respect_visibility(client, headers, make_user, make_notebook):
    alice = make_user("alice")
    bob = make_user("bob")
    make_notebook(alice, title="Open")
    make_notebook(alice, title="Hidden", public=False)
    make_notebook(bob, title="Bob's")

    r = client.get("/users/alice/notebooks", headers=headers(bob))
    assert r.status_code == 200
    assert [nb["title"] for nb in r.json()] == ["Open"]

    titles = {nb["title"] for nb in client.get("/users/alice/notebooks", headers=headers(alice)).json()}
    assert titles == {"Open", "Hidden"}
    assert client.get("/users/nobody/notebooks", headers=headers(alice)).status_code == 404
