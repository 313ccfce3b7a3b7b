# tests/test_activity_favorites.py
from app.core.models import Favorite
from app.core.policy import Actor
from app.infra.db import SessionLocal
from app.services import favorites as fav_svc
from helpers import auth, create_machine, grant_sharing, register


def test_favorite_toggle_twice_restores(client, admin_token):
    token, _ = register(client, "fan")
    shared = create_machine(client, admin_token, name="fav-shared", isShared=True)

    r = client.post(f"/api/favorites/{shared['id']}", headers=auth(token))
    assert r.status_code == 200
    assert r.json() == {"isFavorite": True}
    rows = client.get("/api/favorites", headers=auth(token)).json()["machines"]
    assert [m["id"] for m in rows] == [shared["id"]]
    assert rows[0]["isFavorite"] is True

    listed = {m["id"]: m for m in client.get("/api/vnc-machines", headers=auth(token)).json()["machines"]}
    assert listed[shared["id"]]["isFavorite"] is True

    r = client.post(f"/api/favorites/{shared['id']}", headers=auth(token))
    assert r.json() == {"isFavorite": False}
    assert client.get("/api/favorites", headers=auth(token)).json()["machines"] == []


def test_favorites_are_per_user(client, admin_token):
    token_a, _ = register(client, "fa")
    token_b, _ = register(client, "fb")
    shared = create_machine(client, admin_token, name="both", isShared=True)
    client.post(f"/api/favorites/{shared['id']}", headers=auth(token_a))

    listed = {m["id"]: m for m in client.get("/api/vnc-machines", headers=auth(token_b)).json()["machines"]}
    assert listed[shared["id"]]["isFavorite"] is False


def test_favorite_requires_read_access(client):
    token_a, _ = register(client, "fowner")
    token_b, _ = register(client, "fsnoop")
    m = create_machine(client, token_a, name="private")
    assert client.post(f"/api/favorites/{m['id']}", headers=auth(token_b)).status_code == 403
    assert client.post("/api/favorites/does-not-exist", headers=auth(token_b)).status_code == 404


def test_favorite_hidden_after_machine_becomes_private(client, admin_token):
    token, _ = register(client, "ffollower")
    token_mgr, mgr = register(client, "fmgr")
    grant_sharing(client, admin_token, mgr["id"])
    shared = create_machine(client, token_mgr, name="moving", isShared=True)
    client.post(f"/api/favorites/{shared['id']}", headers=auth(token))

    r = client.patch(f"/api/vnc-machines/{shared['id']}", headers=auth(token_mgr), json={"isShared": False})
    assert r.status_code == 200
    assert client.get("/api/favorites", headers=auth(token)).json()["machines"] == []


def test_connect_logs_and_stamps_last_accessed(client):
    token, user = register(client, "connector")
    m = create_machine(client, token, name="target", host="10.3.0.1", port=5902)
    assert m["lastAccessed"] is None

    r = client.post("/api/activity-logs", headers=auth(token), json={"machineId": m["id"]})
    assert r.status_code == 200
    log = r.json()["log"]
    assert log["action"] == "connect"
    assert log["userId"] == user["id"]
    assert log["machine"] == {"id": m["id"], "name": "target", "host": "10.3.0.1", "port": 5902}

    after = client.get(f"/api/vnc-machines/{m['id']}", headers=auth(token)).json()["machine"]
    assert after["lastAccessed"] is not None

    client.post("/api/activity-logs", headers=auth(token), json={"machineId": m["id"], "action": "disconnect"})
    logs = client.get("/api/activity-logs", headers=auth(token)).json()["logs"]
    assert [l["action"] for l in logs] == ["disconnect", "connect", "create"]

    limited = client.get("/api/activity-logs", params={"limit": 1}, headers=auth(token)).json()["logs"]
    assert len(limited) == 1


def test_log_activity_rejects_bad_input(client):
    token_a, _ = register(client, "logowner")
    token_b, _ = register(client, "logother")
    m = create_machine(client, token_a, name="quiet")

    r = client.post("/api/activity-logs", headers=auth(token_a), json={"machineId": m["id"], "action": "explode"})
    assert r.status_code == 400
    assert client.post("/api/activity-logs", headers=auth(token_b),
                       json={"machineId": m["id"]}).status_code == 403
    assert client.post("/api/activity-logs", headers=auth(token_a), json={}).status_code == 400
    # 拒绝时不落任何流水
    logs = client.get("/api/activity-logs", headers=auth(token_b)).json()["logs"]
    assert logs == []


def test_logs_are_private_and_exportable(client):
    token_a, _ = register(client, "la")
    token_b, _ = register(client, "lb")
    create_machine(client, token_a, name="a-only")

    assert len(client.get("/api/activity-logs", headers=auth(token_a)).json()["logs"]) == 1
    assert client.get("/api/activity-logs", headers=auth(token_b)).json()["logs"] == []

    r = client.get("/api/activity-logs/export", headers=auth(token_a))
    assert r.status_code == 200
    assert "attachment" in r.headers["content-disposition"]
    assert [l["action"] for l in r.json()] == ["create"]


def test_favorite_insert_race_counts_as_already_favorited(client, monkeypatch):
    token, user = register(client, "favrace")
    m = create_machine(client, token, name="racy")

    # 另一个会话先插入同一收藏；本次查询看不到它，插入时撞唯一键
    with SessionLocal() as other:
        other.add(Favorite(user_id=user["id"], machine_id=m["id"]))
        other.commit()
    monkeypatch.setattr(fav_svc, "_find", lambda db, user_id, machine_id: None)

    with SessionLocal() as db:
        assert fav_svc.toggle(db, Actor(id=user["id"]), m["id"]) is False

    with SessionLocal() as db:
        rows = (db.query(Favorite)
                  .filter(Favorite.user_id == user["id"], Favorite.machine_id == m["id"])
                  .count())
    assert rows == 0


def test_clients_cannot_post_registry_actions(client):
    token, _ = register(client, "forger")
    m = create_machine(client, token, name="audited")
    for action in ("create", "update", "delete", "import"):
        r = client.post("/api/activity-logs", headers=auth(token), json={"machineId": m["id"], "action": action})
        assert r.status_code == 400
    logs = client.get("/api/activity-logs", headers=auth(token)).json()["logs"]
    assert [l["action"] for l in logs] == ["create"]
