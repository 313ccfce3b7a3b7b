"""
模块职能：
- 活动流水（只追加）：查询当前用户的记录（最新在前，可按机器过滤，条数有上限）
- 连接打点：客户端每次“打开”机器时调用，同时刷新机器的 last_accessed；
  客户端只能写 connect / disconnect
- 保留策略：按天数清理过期记录 + 每个用户只保留最新 N 条

环境变量：
- ACTIVITY_RETENTION_DAYS（默认 90）
- ACTIVITY_MAX_ROWS_PER_USER（默认 1000）

日志：activity_list / activity_log / activity_retention_done
"""
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.core.errors import BadRequest
from app.core.models import ActivityAction, ActivityLog, as_utc
from app.core.policy import Actor
from app.services import machines as machine_svc
from app.infra.logger import emit

DEFAULT_LIMIT = 50
MAX_LIMIT = 1000

CLIENT_ACTIONS = (ActivityAction.CONNECT.value, ActivityAction.DISCONNECT.value)

DEFAULT_RETENTION_DAYS = 90
DEFAULT_MAX_ROWS_PER_USER = 1000


def _safe_int_env(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
        return value if value > 0 else default
    except ValueError:
        return default


def retention_days() -> int:
    return _safe_int_env("ACTIVITY_RETENTION_DAYS", DEFAULT_RETENTION_DAYS)


def max_rows_per_user() -> int:
    return _safe_int_env("ACTIVITY_MAX_ROWS_PER_USER", DEFAULT_MAX_ROWS_PER_USER)


def clamp_limit(limit: Optional[int]) -> int:
    if not limit:
        return DEFAULT_LIMIT
    return max(1, min(int(limit), MAX_LIMIT))


def to_dict(log: ActivityLog) -> dict:
    m = log.machine
    return {
        "id": log.id,
        "userId": log.user_id,
        "machineId": log.machine_id,
        "action": log.action,
        "createdAt": as_utc(log.created_at),
        "machine": {"id": m.id, "name": m.name, "host": m.host, "port": m.port} if m else None,
    }


def list_logs(db: Session, user_id: str, limit: Optional[int] = None,
              machine_id: Optional[str] = None) -> List[dict]:
    q = (db.query(ActivityLog)
           .options(joinedload(ActivityLog.machine))
           .filter(ActivityLog.user_id == user_id))
    if machine_id:
        q = q.filter(ActivityLog.machine_id == machine_id)
    rows = (q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
             .limit(clamp_limit(limit))
             .all())
    emit("activity_list", user_id=user_id, machine_id=machine_id, count=len(rows))
    return [to_dict(r) for r in rows]


def log_activity(db: Session, actor: Actor, machine_id: str, action: Optional[str] = None) -> dict:
    action = action or ActivityAction.CONNECT.value
    # 登记簿动作（create / update / delete / import）只由服务端写入
    if action not in CLIENT_ACTIONS:
        raise BadRequest(f"Action not allowed: {action}")

    m = machine_svc.load_readable(db, actor, machine_id)
    now = datetime.now(timezone.utc)
    if action == ActivityAction.CONNECT.value:
        m.last_accessed = now
    log = ActivityLog(user_id=actor.id, machine_id=m.id, action=action, created_at=now)
    db.add(log)
    db.commit()
    db.refresh(log)
    emit("activity_log", user_id=actor.id, machine_id=m.id, action=action)
    return to_dict(log)


def apply_retention(db: Session, days: Optional[int] = None,
                    max_rows: Optional[int] = None) -> dict:
    days = days or retention_days()
    max_rows = max_rows or max_rows_per_user()

    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    expired = (db.query(ActivityLog)
                 .filter(ActivityLog.created_at < cutoff)
                 .delete(synchronize_session=False))

    trimmed = 0
    heavy_users = (db.query(ActivityLog.user_id)
                     .group_by(ActivityLog.user_id)
                     .having(func.count(ActivityLog.id) > max_rows)
                     .all())
    for (uid,) in heavy_users:
        keep_ids = (db.query(ActivityLog.id)
                      .filter(ActivityLog.user_id == uid)
                      .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
                      .limit(max_rows)
                      .scalar_subquery())
        trimmed += (db.query(ActivityLog)
                      .filter(ActivityLog.user_id == uid, ActivityLog.id.not_in(keep_ids))
                      .delete(synchronize_session=False))
    db.commit()

    result = {"days": days, "maxRowsPerUser": max_rows, "expired": expired, "trimmed": trimmed}
    emit("activity_retention_done", **result)
    return result
