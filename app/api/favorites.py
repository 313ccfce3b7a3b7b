# app/api/favorites.py
"""
收藏 API（挂载前缀 /api/favorites）
- POST /{machine_id}   切换收藏，返回 {"isFavorite": bool}
- GET  ""              当前用户收藏的机器（完整投影，isFavorite 恒为 true）
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.context import Context, get_context
from app.infra.db import get_db
from app.services import favorites as fav_svc

router = APIRouter()


@router.post("/{machine_id}")
def toggle_favorite(machine_id: str, db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"isFavorite": fav_svc.toggle(db, ctx.actor, machine_id)}


@router.get("")
def list_favorites(db: Session = Depends(get_db), ctx: Context = Depends(get_context)):
    return {"machines": fav_svc.list_favorites(db, ctx.actor)}
