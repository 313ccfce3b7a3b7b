# tests/helpers.py
"""测试公用的小工具：注册 / 登录 / 建机器。"""
import uuid


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def register(client, prefix: str = "user", password: str = "secret123"):
    """注册一个新用户，返回 (token, user_dict)。"""
    r = client.post("/api/auth/register", json={"email": unique_email(prefix), "password": password})
    assert r.status_code == 201, r.text
    body = r.json()
    return body["token"], body["user"]


def login(client, email: str, password: str) -> str:
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["token"]


def grant_sharing(client, admin_token: str, user_id: str, value: bool = True) -> dict:
    r = client.patch(f"/api/users/{user_id}", headers=auth(admin_token),
                     json={"canManageSharedMachines": value})
    assert r.status_code == 200, r.text
    return r.json()["user"]


def create_machine(client, token: str, **fields) -> dict:
    body = {"name": "m", "host": "10.0.0.1", "port": 5900}
    body.update(fields)
    r = client.post("/api/vnc-machines", headers=auth(token), json=body)
    assert r.status_code == 201, r.text
    return r.json()["machine"]
