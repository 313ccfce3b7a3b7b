# app/api/machines.py
# -*- coding: utf-8 -*-
"""
VNC 机器 API
------------------------------------
挂载前缀：/api/vnc-machines

- GET    ""              共享 ∪ 本人个人机器（最新在前，带 isFavorite）
- GET    /shared         仅共享
- GET    /personal       仅本人
- GET    /export         导出可见机器（JSON 附件；默认不含密码，include_passwords=true 时包含）
- POST   /import         导入 JSON 数组为个人机器，逐条成功/失败
- DELETE /groups/{name}  把分组从所有可编辑机器上移除（无权限的机器跳过），返回 {updated, skipped}
- GET    /{id}           详情（共享或本人，否则 403）
- POST   ""              创建（isShared=true 需要共享管理能力）
- PATCH  /{id}           部分更新（只改出现的字段）
- DELETE /{id}           删除（先写 delete 流水，收藏级联删除）

授权判定集中在 app.core.policy，业务在 app.services.machines；本文件只做装配与打点。
"""
from datetime import date
from typing import Any, List

from fastapi import APIRouter, Body, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.context import Context, get_context
from app.core.schemas import MachineIn, MachinePatch
from app.infra.db import get_db
from app.infra.logger import emit
from app.services import machines as machine_svc

router = APIRouter()


@router.get("")
def list_machines(db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"machines": machine_svc.list_machines(db, ctx.actor, "all")}


@router.get("/shared")
def list_shared(db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"machines": machine_svc.list_machines(db, ctx.actor, "shared")}


@router.get("/personal")
def list_personal(db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"machines": machine_svc.list_machines(db, ctx.actor, "personal")}


@router.get("/export")
def export_machines(
    include_passwords: bool = Query(default=False),
    db: Session = Depends(get_db),
    ctx: Context = Depends(get_context),
):
    rows = machine_svc.export_machines(db, ctx.actor, include_passwords=include_passwords)
    filename = f"vnc-sessions-{date.today().isoformat()}.json"
    return JSONResponse(
        content=jsonable_encoder(rows),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
def import_machines(
    entries: List[Any] = Body(...),
    db: Session = Depends(get_db),
    ctx: Context = Depends(get_context),
):
    emit("api_machines_import", user_id=ctx.user_id, count=len(entries))
    return machine_svc.import_machines(db, ctx.actor, entries)


@router.delete("/groups/{group}")
def remove_group(group: str, db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return machine_svc.remove_group(db, ctx.actor, group)


@router.get("/{machine_id}")
def get_machine(machine_id: str, db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"machine": machine_svc.get_machine(db, ctx.actor, machine_id)}


@router.post("", status_code=201)
def create_machine(inp: MachineIn, db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"machine": machine_svc.create_machine(db, ctx.actor, inp)}


@router.patch("/{machine_id}")
def update_machine(
    machine_id: str,
    patch: MachinePatch,
    db: Session = Depends(get_db),
    ctx: Context = Depends(get_context),
):
    return {"machine": machine_svc.update_machine(db, ctx.actor, machine_id, patch)}


@router.delete("/{machine_id}")
def delete_machine(machine_id: str, db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    machine_svc.delete_machine(db, ctx.actor, machine_id)
    return {"message": "VNC machine deleted successfully"}
