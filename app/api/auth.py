# app/api/auth.py
"""
注册 / 登录 / 当前用户，颁发 JWT（HS256）

挂载前缀：/api/auth（见 app.main）

日志事件（通过 app.infra.logger.emit 发出）：
- auth_login_attempt：收到登录请求（不记录明文密码）
- auth_login_success：登录成功（包含 user_id、role）
- auth_register_success：注册成功
- 失败原因由 services.users 打点（user_login_failed 等）
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.context import Context, get_context
from app.core.models import User
from app.core.security import create_access_token
from app.infra.db import get_db
from app.infra.logger import emit
from app.services import users as user_svc

router = APIRouter()


class CredentialsIn(BaseModel):
    email: str
    password: str


def _issue(user: User) -> dict:
    # JWT 负载：sub / email / role
    token = create_access_token({"sub": user.id, "email": user.email, "role": user.role.value})
    return {"user": user_svc.to_dict(user), "token": token}


@router.post("/register", status_code=201)
def register(body: CredentialsIn, db: Session = Depends(get_db)):
    user = user_svc.register(db, body.email, body.password)
    emit("auth_register_success", user_id=user.id)
    return _issue(user)


@router.post("/login")
def login(body: CredentialsIn, request: Request, db: Session = Depends(get_db)):
    emit(
        "auth_login_attempt",
        email=body.email,
        ip=str(request.client.host) if request.client else None,
        ua=request.headers.get("user-agent"),
    )
    user = user_svc.authenticate(db, body.email, body.password)
    emit("auth_login_success", user_id=user.id, role=user.role.value)
    return _issue(user)


@router.get("/me")
def me(ctx: Context = Depends(get_context), db: Session = Depends(get_db)):
    user = user_svc.get_user(db, ctx.user_id)
    emit("auth_whoami", user_id=ctx.user_id, role=ctx.role.value)
    return {"user": user_svc.to_dict(user)}
