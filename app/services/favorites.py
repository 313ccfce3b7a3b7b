"""
模块职能：
- 收藏切换：存在则删除并返回 False；不存在则插入并返回 True
- 前置条件：对机器有读权限（共享或本人）；不需要编辑权限
- 并发：两个切换同时插入时，唯一键冲突视为“已收藏”，随即删除，保持“切换两次回到原状”

日志：fav_add / fav_remove / fav_integrity_hit / fav_list
"""
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.models import Favorite, Machine
from app.core.policy import Action, Actor, decide
from app.services import machines as machine_svc
from app.infra.logger import emit


def _remove(db: Session, user_id: str, machine_id: str) -> None:
    (db.query(Favorite)
       .filter(Favorite.user_id == user_id, Favorite.machine_id == machine_id)
       .delete(synchronize_session=False))
    db.commit()


def _find(db: Session, user_id: str, machine_id: str):
    return (db.query(Favorite)
              .filter(Favorite.user_id == user_id, Favorite.machine_id == machine_id)
              .first())


def toggle(db: Session, actor: Actor, machine_id: str) -> bool:
    machine_svc.load_readable(db, actor, machine_id)

    existing = _find(db, actor.id, machine_id)
    if existing:
        _remove(db, actor.id, machine_id)
        emit("fav_remove", user_id=actor.id, machine_id=machine_id)
        return False

    try:
        db.add(Favorite(user_id=actor.id, machine_id=machine_id))
        db.commit()
    except IntegrityError:
        db.rollback()
        emit("fav_integrity_hit", user_id=actor.id, machine_id=machine_id)
        _remove(db, actor.id, machine_id)
        return False
    emit("fav_add", user_id=actor.id, machine_id=machine_id)
    return True


def list_favorites(db: Session, actor: Actor) -> List[dict]:
    rows = (db.query(Machine)
              .join(Favorite, Favorite.machine_id == Machine.id)
              .filter(Favorite.user_id == actor.id)
              .order_by(Favorite.created_at.desc())
              .all())
    # 机器由共享转为他人个人机器后，不再可见
    visible = [m for m in rows if decide(actor, m.owner_id, Action.READ).allowed]
    emit("fav_list", user_id=actor.id, count=len(visible))
    return [machine_svc.to_dict(m, True) for m in visible]
