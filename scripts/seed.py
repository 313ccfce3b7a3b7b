# scripts/seed.py
"""
种子脚本：创建 / 更新管理员与演示用户（口令以 bcrypt 哈希存储）。
- 管理员：ADMIN_EMAIL / ADMIN_PASSWORD（默认 admin@example.com / admin123），带共享机器管理权限
- 演示用户：DEMO_EMAIL / DEMO_PASSWORD（默认 user@example.com / user123），普通 USER

可作为脚本执行，也可被测试直接导入调用（提供 run() 函数）。
"""
import os
import sys

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from app.infra.db import SessionLocal, init_db  # noqa: E402
from app.infra.logger import emit  # noqa: E402
from app.core.models import UserRole  # noqa: E402
from app.services.users import upsert_user  # noqa: E402


def _get_env(k: str, default: str) -> str:
    v = os.getenv(k)
    return v if v is not None and v != "" else default


def run():
    emit("seed_begin", database_url=os.getenv("DATABASE_URL"))
    print("[seed] seeding users ...", flush=True)
    init_db()

    admin_email = _get_env("ADMIN_EMAIL", "admin@example.com")
    admin_password = _get_env("ADMIN_PASSWORD", "admin123")
    demo_email = _get_env("DEMO_EMAIL", "user@example.com")
    demo_password = _get_env("DEMO_PASSWORD", "user123")

    with SessionLocal() as db:
        upsert_user(db, admin_email, admin_password, UserRole.ADMIN, can_manage_shared_machines=True)
        print(f"[seed] admin: {admin_email}", flush=True)
        upsert_user(db, demo_email, demo_password, UserRole.USER)
        print(f"[seed] user:  {demo_email}", flush=True)

    emit("seed_done", status="ok")
    print("[seed] done.", flush=True)


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("seed_error", error=str(e))
        print(f"[seed] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
