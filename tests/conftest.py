# tests/conftest.py
# 先设置测试环境变量，再导入 app（engine 在导入时绑定 DATABASE_URL）
import os
import time

ts = int(time.time() * 1000)
os.environ["DATABASE_URL"] = f"sqlite:///./pytest_vnc_{ts}.db"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SECRET_KEY"] = "pytest-secret-key-0123456789abcdef0123"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin123"
os.environ.pop("ADMIN_OVERRIDES_PERSONAL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from helpers import login  # noqa: E402


@pytest.fixture(scope="session")
def client():
    # with 块触发 lifespan：建表 + 管理员账号
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="session")
def admin_token(client):
    return login(client, "admin@example.com", "admin123")
