"""
模块职能：

定义四张表：

users：账号（email 唯一、bcrypt 哈希、角色、共享机器管理权限）

vnc_machines：连接记录；owner_id 为空 = 共享机器，否则为个人机器

user_favorites：(user_id, machine_id) 唯一；机器删除时级联删除

activity_logs：只追加的审计流水；machine_id 不设外键，机器删除后仍保留原 id

主要类型/方法：

UserRole：USER / ADMIN

User.can_manage_shared：ADMIN 恒为真，否则取 can_manage_shared_machines

Machine.tags / Machine.groups：存储为 JSON 文本，读取时缺省为 []
"""

# app/core/models.py
import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Enum as SAEnum, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.infra.db import Base


def _uuid() -> str: return str(uuid.uuid4())


def _now() -> datetime: return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite 读回的是无时区值（按 UTC 存储），输出前补上 +00:00
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SAEnum(UserRole), nullable=False, default=UserRole.USER)
    can_manage_shared_machines = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    machines = relationship("Machine", back_populates="owner", cascade="all", passive_deletes=True)

    @property
    def can_manage_shared(self) -> bool:
        return self.role == UserRole.ADMIN or bool(self.can_manage_shared_machines)


def _load_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def dump_list(values: Optional[List[str]]) -> Optional[str]:
    # None 表示“未设置”；空列表同样落为 NULL，读取时统一为 []
    return json.dumps(list(values)) if values else None


class Machine(Base):
    __tablename__ = "vnc_machines"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    host = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False, default=5900)
    password_encrypted = Column(Text, nullable=True)            # Fernet 密文，见 services.secrets
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    tags_json = Column("tags", Text, nullable=True)
    groups_json = Column("groups", Text, nullable=True)
    last_accessed = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    owner = relationship("User", back_populates="machines")
    favorites = relationship("Favorite", back_populates="machine", cascade="all", passive_deletes=True)

    @property
    def is_shared(self) -> bool:
        return self.owner_id is None

    @property
    def tags(self) -> List[str]:
        return _load_list(self.tags_json)

    @tags.setter
    def tags(self, values: Optional[List[str]]):
        self.tags_json = dump_list(values)

    @property
    def groups(self) -> List[str]:
        return _load_list(self.groups_json)

    @groups.setter
    def groups(self, values: Optional[List[str]]):
        self.groups_json = dump_list(values)


class Favorite(Base):
    __tablename__ = "user_favorites"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    machine_id = Column(String(36), ForeignKey("vnc_machines.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    __table_args__ = (UniqueConstraint("user_id", "machine_id", name="uq_user_machine_favorite"),)

    machine = relationship("Machine", back_populates="favorites")


class ActivityAction(str, Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    IMPORT = "import"


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    machine_id = Column(String(36), nullable=True)              # 不设外键：删除机器后流水仍指向原 id
    action = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    machine = relationship(
        "Machine",
        primaryjoin="foreign(ActivityLog.machine_id) == Machine.id",
        viewonly=True,
    )


Index("ix_activity_logs_user_created", ActivityLog.user_id, ActivityLog.created_at)
Index("ix_activity_logs_machine_id", ActivityLog.machine_id)
