# app/api/users.py
# -*- coding: utf-8 -*-
"""
用户管理 API（仅管理员）
------------------------------------
- GET    /api/users          列表（最新在前）
- PATCH  /api/users/{id}     修改 role / canManageSharedMachines（不能改自己的角色）
- DELETE /api/users/{id}     删除用户（不能删自己）；其个人机器、收藏、流水随之级联删除

非管理员一律 403（app.core.context.require_admin）。
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.context import Context, require_admin
from app.core.models import UserRole
from app.infra.db import get_db
from app.infra.logger import emit
from app.services import users as user_svc

router = APIRouter()


class UpdateUserIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: Optional[UserRole] = None
    can_manage_shared_machines: Optional[bool] = Field(default=None, alias="canManageSharedMachines")


@router.get("")
def list_users(db: Session = Depends(get_db), ctx: Context = Depends(require_admin)):
    rows = user_svc.list_users(db)
    emit("api_users_list", actor=ctx.user_id, count=len(rows))
    return {"users": [user_svc.to_dict(u) for u in rows]}


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    body: UpdateUserIn,
    db: Session = Depends(get_db),
    ctx: Context = Depends(require_admin),
):
    user = user_svc.update_user(
        db, ctx.user_id, user_id,
        role=body.role,
        can_manage_shared_machines=body.can_manage_shared_machines,
    )
    return {"user": user_svc.to_dict(user)}


@router.delete("/{user_id}")
def delete_user(user_id: str, db: Session = Depends(get_db), ctx: Context = Depends(require_admin)):
    user_svc.delete_user(db, ctx.user_id, user_id)
    return {"message": "User deleted successfully"}
