# scripts/purge_activity.py
"""
活动流水保留策略：删除超过 N 天的记录，并把每个用户的记录裁剪到最新 M 条。

用法：
    python -m scripts.purge_activity [--days 90] [--max-rows 1000]
缺省值取 ACTIVITY_RETENTION_DAYS / ACTIVITY_MAX_ROWS_PER_USER。
"""
import argparse
import os
import sys

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from app.infra.db import SessionLocal, init_db  # noqa: E402
from app.infra.logger import configure_logging, emit  # noqa: E402
from app.services.activity import apply_retention  # noqa: E402


def run(days=None, max_rows=None) -> dict:
    init_db()
    with SessionLocal() as db:
        result = apply_retention(db, days=days, max_rows=max_rows)
    print(f"[purge_activity] expired={result['expired']} trimmed={result['trimmed']}", flush=True)
    return result


def main(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--days", type=int, default=None, help="保留天数")
    parser.add_argument("--max-rows", type=int, default=None, help="每个用户保留的最新条数")
    args = parser.parse_args(argv)

    configure_logging()
    try:
        run(days=args.days, max_rows=args.max_rows)
        return 0
    except Exception as e:
        emit("purge_activity_error", error=str(e))
        print(f"[purge_activity] ERROR: {e}", file=sys.stderr, flush=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
