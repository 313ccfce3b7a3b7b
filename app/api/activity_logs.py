# app/api/activity_logs.py
# -*- coding: utf-8 -*-
"""
活动流水 API（挂载前缀 /api/activity-logs）
------------------------------------
- GET  ""            当前用户的流水（limit 默认 50，上限 1000；可按 machineId 过滤）
- POST ""            客户端打开机器时打点：{"machineId", "action"="connect"}，同时刷新 lastAccessed
- GET  /export       导出当前用户最近 1000 条（JSON 附件）
- POST /retention    管理员手动执行保留策略（可传 days / maxRowsPerUser 覆盖默认值）
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.context import Context, get_context, require_admin
from app.infra.db import get_db
from app.services import activity as activity_svc

router = APIRouter()


class LogActivityIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    machine_id: str = Field(alias="machineId", min_length=1)
    action: Optional[str] = None


class RetentionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    days: Optional[int] = Field(default=None, ge=1)
    max_rows_per_user: Optional[int] = Field(default=None, ge=1, alias="maxRowsPerUser")


@router.get("")
def list_logs(
    limit: int = Query(default=activity_svc.DEFAULT_LIMIT),
    machine_id: Optional[str] = Query(default=None, alias="machineId"),
    db: Session = Depends(get_db),
    ctx: Context = Depends(get_context),
):
    return {"logs": activity_svc.list_logs(db, ctx.user_id, limit=limit, machine_id=machine_id)}


@router.post("")
def log_activity(body: LogActivityIn, db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"log": activity_svc.log_activity(db, ctx.actor, body.machine_id, body.action)}


@router.get("/export")
def export_logs(db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    logs = activity_svc.list_logs(db, ctx.user_id, limit=activity_svc.MAX_LIMIT)
    filename = f"activity-logs-{date.today().isoformat()}.json"
    return JSONResponse(
        content=jsonable_encoder(logs),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/retention")
def apply_retention(
    body: Optional[RetentionIn] = None,
    db: Session = Depends(get_db),
    ctx: Context = Depends(require_admin),
):
    body = body or RetentionIn()
    return activity_svc.apply_retention(db, days=body.days, max_rows=body.max_rows_per_user)
