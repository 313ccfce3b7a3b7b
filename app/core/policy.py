"""
模块职能：机器资源的授权决策（纯函数，不访问数据库）。

输入：(actor, 资源 owner_id, 动作)；owner_id 为 None 即共享机器。

规则：
- read：共享机器，或 owner_id == actor.id
- edit / delete：
    共享机器 → 需要共享管理能力（ADMIN 或 can_manage_shared_machines）
    个人机器 → 仅 owner；ADMIN 默认不能越权（ADMIN_OVERRIDES_PERSONAL=true 时放开）
- reshare（共享 <-> 个人切换）：需要共享管理能力，且当前对该机器可读
- create：个人机器任何人可建；共享机器需要共享管理能力

所有检查必须发生在任何写操作之前；拒绝时抛出 Forbidden（固定文案）。
"""
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.core.errors import Forbidden
from app.core.models import UserRole


class Action(str, Enum):
    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    RESHARE = "reshare"


@dataclass(frozen=True)
class Actor:
    id: str
    role: UserRole = UserRole.USER
    can_manage_shared_flag: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_manage_shared(self) -> bool:
        return self.is_admin or self.can_manage_shared_flag


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = "ok"


# 拒绝文案（固定、可枚举）
DENY_ACCESS = "Access denied"
DENY_SHARED_EDIT = "You do not have permission to edit shared machines"
DENY_SHARED_DELETE = "You do not have permission to delete shared machines"
DENY_SHARED_CREATE = "You do not have permission to create shared machines"


def admin_overrides_personal() -> bool:
    return os.getenv("ADMIN_OVERRIDES_PERSONAL", "false").lower() == "true"


def decide(actor: Actor, owner_id: Optional[str], action: Action,
           admin_override: Optional[bool] = None) -> Decision:
    if admin_override is None:
        admin_override = admin_overrides_personal()
    shared = owner_id is None
    owned = owner_id == actor.id
    readable = shared or owned or (admin_override and actor.is_admin)

    if action == Action.READ:
        return Decision(True) if readable else Decision(False, DENY_ACCESS)

    if action == Action.RESHARE:
        if readable and actor.can_manage_shared:
            return Decision(True)
        return Decision(False, DENY_SHARED_CREATE if readable else DENY_ACCESS)

    # EDIT / DELETE
    if shared:
        if actor.can_manage_shared:
            return Decision(True)
        return Decision(False, DENY_SHARED_DELETE if action == Action.DELETE else DENY_SHARED_EDIT)
    if owned or (admin_override and actor.is_admin):
        return Decision(True)
    return Decision(False, DENY_ACCESS)


def ensure(actor: Actor, owner_id: Optional[str], action: Action) -> None:
    d = decide(actor, owner_id, action)
    if not d.allowed:
        raise Forbidden(d.reason)


def can_create(actor: Actor, shared: bool) -> bool:
    return actor.can_manage_shared if shared else True


def ensure_create(actor: Actor, shared: bool) -> None:
    if not can_create(actor, shared):
        raise Forbidden(DENY_SHARED_CREATE)
