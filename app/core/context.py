"""
统一提供请求上下文（user_id、email、role、共享管理能力）。
- 头部：标准 Bearer；兼容裸 JWT
- 负载：sub（老 token 兼容 userId）
- 角色与共享管理权限以数据库为准（管理员调整权限后立即生效，不依赖 token 里的 role）
- 事件打点：auth_missing_header / auth_token_invalid / auth_token_expired /
  auth_token_missing_sub / auth_user_gone / auth_admin_required
"""
from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.models import User, UserRole
from app.core.policy import Actor
from app.core.security import decode_access_token
from app.infra.db import get_db
from app.infra.logger import emit

_bearer = HTTPBearer(auto_error=False)


class Context(BaseModel):
    user_id: str
    email: Optional[str] = None
    role: UserRole = UserRole.USER
    can_manage_shared_machines: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def actor(self) -> Actor:
        return Actor(id=self.user_id, role=self.role,
                     can_manage_shared_flag=self.can_manage_shared_machines)

    @classmethod
    def from_user(cls, user: User) -> "Context":
        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role,
            can_manage_shared_machines=bool(user.can_manage_shared_machines),
        )


def _extract_token(request: Request, creds: Optional[HTTPAuthorizationCredentials]) -> str:
    if creds and creds.credentials:
        return creds.credentials
    # 兼容：Authorization: <JWT>
    auth = request.headers.get("authorization")
    if auth and auth.count(".") == 2 and " " not in auth.strip():
        return auth.strip()
    emit("auth_missing_header", path=str(request.url.path))
    raise HTTPException(status_code=401, detail="No token provided")


def get_context(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    db: Session = Depends(get_db),
) -> Context:
    token = _extract_token(request, creds)
    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        emit("auth_token_expired")
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError as e:
        emit("auth_token_invalid", error=str(e))
        raise HTTPException(status_code=401, detail="Invalid token")

    uid = payload.get("sub") or payload.get("userId")
    if not uid:
        emit("auth_token_missing_sub")
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.get(User, str(uid))
    if not user:
        emit("auth_user_gone", user_id=uid)
        raise HTTPException(status_code=401, detail="Invalid token")
    return Context.from_user(user)


def require_admin(ctx: Context = Depends(get_context)) -> Context:
    if not ctx.is_admin:
        emit("auth_admin_required", user_id=ctx.user_id, role=ctx.role.value)
        raise HTTPException(status_code=403, detail="Admin access required")
    return ctx
