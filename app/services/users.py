"""
模块职能：
- 账号注册 / 登录校验 / 查询
- 管理员侧：列表、修改角色与共享权限、删除（自我保护：不能改自己的角色、不能删自己）
- ensure_admin()：启动时保证存在一个管理员账号

日志：
- user_register / user_login_failed / user_login_ok / user_update / user_delete /
  user_self_protect / admin_ensure
"""
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import BadRequest, Conflict, NotFound, Unauthorized
from app.core.models import User, UserRole, as_utc
from app.core.security import hash_password, verify_password
from app.infra.logger import emit

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LEN = 6


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise BadRequest("Invalid email format")
    return email


def to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "role": u.role.value,
        "canManageSharedMachines": u.can_manage_shared,
        "createdAt": as_utc(u.created_at),
        "updatedAt": as_utc(u.updated_at),
    }


def register(db: Session, email: str, password: str) -> User:
    email = normalize_email(email)
    if len(password or "") < MIN_PASSWORD_LEN:
        raise BadRequest(f"Password must be at least {MIN_PASSWORD_LEN} characters")
    if db.query(User).filter(User.email == email).first():
        raise Conflict("User with this email already exists")

    user = User(email=email, password_hash=hash_password(password),
                role=UserRole.USER, can_manage_shared_machines=False)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # 并发注册同一邮箱：唯一约束兜底
        db.rollback()
        raise Conflict("User with this email already exists")
    db.refresh(user)
    emit("user_register", user_id=user.id, email=email)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    email = (email or "").strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password or "", user.password_hash):
        # 不区分“用户不存在”和“口令错误”
        emit("user_login_failed", email=email)
        raise Unauthorized("Invalid email or password")
    emit("user_login_ok", user_id=user.id, role=user.role.value)
    return user


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.created_at.desc()).all()


def update_user(db: Session, actor_id: str, user_id: str,
                role: Optional[UserRole] = None,
                can_manage_shared_machines: Optional[bool] = None) -> User:
    if user_id == actor_id and role is not None:
        emit("user_self_protect", user_id=actor_id, op="change_role")
        raise BadRequest("Cannot change your own role")

    user = get_user(db, user_id)
    if role is not None:
        user.role = role
    if can_manage_shared_machines is not None:
        user.can_manage_shared_machines = can_manage_shared_machines
    db.commit()
    db.refresh(user)
    emit("user_update", actor=actor_id, user_id=user_id,
         role=user.role.value, can_manage_shared=user.can_manage_shared_machines)
    return user


def delete_user(db: Session, actor_id: str, user_id: str) -> None:
    if user_id == actor_id:
        emit("user_self_protect", user_id=actor_id, op="delete")
        raise BadRequest("Cannot delete your own account")
    user = get_user(db, user_id)
    db.delete(user)
    db.commit()
    emit("user_delete", actor=actor_id, user_id=user_id)


def upsert_user(db: Session, email: str, password: str, role: UserRole,
                can_manage_shared_machines: bool = False, reset_password: bool = True) -> User:
    email = normalize_email(email)
    u = db.query(User).filter(User.email == email).first()
    if u:
        action = "updated"
        u.role = role
        u.can_manage_shared_machines = can_manage_shared_machines
        if password and reset_password:
            u.password_hash = hash_password(password)
    else:
        action = "created"
        u = User(email=email, password_hash=hash_password(password), role=role,
                 can_manage_shared_machines=can_manage_shared_machines)
        db.add(u)
    db.commit()
    emit("seed_user_upsert", email=email, role=role.value, action=action)
    return u


def ensure_admin(db: Session, email: str, password: str) -> Optional[User]:
    """
    启动时调用：已存在则不动（不重置口令），否则创建 ADMIN 并赋予共享管理权限。
    返回新建的管理员；已存在时返回 None。
    """
    email = normalize_email(email)
    if db.query(User).filter(User.email == email).first():
        emit("admin_ensure", email=email, action="exists")
        return None
    u = upsert_user(db, email, password, UserRole.ADMIN, can_manage_shared_machines=True)
    emit("admin_ensure", email=email, action="created")
    return u
