# tests/test_retention_scripts.py
"""
保留策略与运维脚本：
- 过期记录按天数清理，每个用户只保留最新 N 条
- migrate / seed / purge_activity 作为模块函数导入调用
"""
from datetime import datetime, timedelta, timezone

from app.core.models import ActivityLog
from app.infra.db import SessionLocal
from helpers import auth, create_machine, login, register
from scripts.migrate import run as migrate_run
from scripts.purge_activity import main as purge_main
from scripts.seed import run as seed_run


def _add_logs(user_id: str, machine_id: str, ages_days):
    now = datetime.now(timezone.utc)
    with SessionLocal() as db:
        for age in ages_days:
            db.add(ActivityLog(user_id=user_id, machine_id=machine_id, action="connect",
                               created_at=now - timedelta(days=age)))
        db.commit()


def _count(user_id: str) -> int:
    with SessionLocal() as db:
        return db.query(ActivityLog).filter(ActivityLog.user_id == user_id).count()


def test_retention_expires_old_and_trims_per_user(client, admin_token):
    token, user = register(client, "chatty")
    m = create_machine(client, token, name="busy")          # 1 条 create
    _add_logs(user["id"], m["id"], [200, 120, 1, 2, 3, 4])

    r = client.post("/api/activity-logs/retention", headers=auth(admin_token),
                    json={"days": 90, "maxRowsPerUser": 3})
    assert r.status_code == 200
    body = r.json()
    assert body["days"] == 90 and body["maxRowsPerUser"] == 3
    assert body["expired"] >= 2
    assert body["trimmed"] >= 2
    assert _count(user["id"]) == 3

    # 留下的是最新的 3 条
    logs = client.get("/api/activity-logs", headers=auth(token)).json()["logs"]
    assert [l["action"] for l in logs][0] == "create"
    assert len(logs) == 3


def test_retention_is_admin_only(client):
    token, _ = register(client, "nosy")
    assert client.post("/api/activity-logs/retention", headers=auth(token), json={}).status_code == 403


def test_retention_defaults_without_body(client, admin_token):
    r = client.post("/api/activity-logs/retention", headers=auth(admin_token))
    assert r.status_code == 200
    assert r.json()["days"] == 90
    assert r.json()["maxRowsPerUser"] == 1000


def test_scripts_migrate_seed_purge(client):
    migrate_run()
    seed_run()
    seed_run()  # 可重复执行

    token = login(client, "user@example.com", "user123")
    me = client.get("/api/auth/me", headers=auth(token)).json()["user"]
    assert me["role"] == "USER"

    admin = login(client, "admin@example.com", "admin123")
    me = client.get("/api/auth/me", headers=auth(admin)).json()["user"]
    assert me["role"] == "ADMIN"
    assert me["canManageSharedMachines"] is True

    m = create_machine(client, token, name="old")
    _add_logs(me["id"], m["id"], [400])
    assert purge_main(["--days", "30"]) == 0
    with SessionLocal() as db:
        stale = (db.query(ActivityLog)
                   .filter(ActivityLog.created_at < datetime.now(timezone.utc) - timedelta(days=300))
                   .count())
    assert stale == 0
