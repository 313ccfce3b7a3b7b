# scripts/migrate.py
"""
建表脚本：按 Base.metadata 创建 users / vnc_machines / user_favorites / activity_logs（若不存在）。
安全：不会修改已有表结构与数据；可重复执行。

可作为脚本执行，也可被测试直接导入调用（提供 run() 函数）。
"""

import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from app.infra.db import init_db  # noqa: E402
from app.infra.logger import emit  # noqa: E402


def run():
    emit("migrate_begin", database_url=os.getenv("DATABASE_URL"))
    print("[migrate] creating tables if not exists ...", flush=True)
    init_db()
    emit("migrate_done", status="ok")
    print("[migrate] done.", flush=True)


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("migrate_error", error=str(e))
        print(f"[migrate] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
