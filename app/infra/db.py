# app/infra/db.py
"""模块职能：

读取 DATABASE_URL，创建 SQLAlchemy 引擎（SQLite 下逐连接开启外键，
保证删除机器时收藏级联删除、删除用户时其个人机器级联删除）

暴露 Base、SessionLocal、get_db()（FastAPI 依赖）

init_db()：启动时统一建表"""

import os
from typing import Generator
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./vnc_manager.db")

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _sqlite_fk_on(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

Base = declarative_base()


def init_db():
    # 导入以注册到 Base.metadata
    from app.core import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI 依赖函数：yield 一个 Session，用后自动关闭。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
