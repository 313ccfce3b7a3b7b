"""
应用入口：
- 加载 .env（先 .env.example 作默认，再用 .env 覆盖）
- lifespan 启动阶段：配置日志 → 打印 logger_config → 建表 → 保证管理员账号存在 → 执行一次流水保留策略
- 装载 CORS、请求日志中间件、错误处理器、路由
- 提供 /health
"""
from pathlib import Path
from dotenv import load_dotenv

# 1) 先加载 .env，务必在导入 logger / db 之前
ROOT = Path(__file__).resolve().parents[1]
ENV = ROOT / ".env"
ENV_EXAMPLE = ROOT / ".env.example"
if ENV_EXAMPLE.exists():
    load_dotenv(ENV_EXAMPLE, override=False)
if ENV.exists():
    load_dotenv(ENV, override=True)

# 2) 正常导入
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.middleware.logging import RequestLoggingMiddleware
from app.infra.logger import (
    configure_logging, emit, emit_error, emit_warning,
    LOG_TO_FILE, LOG_DIR, LOG_FILE, LOG_ROTATE_WHEN, LOG_BACKUP_COUNT,
)
from app.infra.db import SessionLocal, init_db
from app.core.errors import AppError
from app.services import users as user_svc
from app.services import activity as activity_svc
from app.api import auth as auth_api
from app.api import users as users_api
from app.api import machines as machines_api
from app.api import favorites as favorites_api
from app.api import activity_logs as activity_api

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
RETENTION_ON_STARTUP = os.getenv("RETENTION_ON_STARTUP", "true").lower() == "true"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]


# 3) lifespan：替代 on_event（startup/shutdown）
@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    configure_logging()
    emit(
        "logger_config",
        to_file=LOG_TO_FILE, dir=LOG_DIR, file=LOG_FILE,
        when=LOG_ROTATE_WHEN, backup=LOG_BACKUP_COUNT,
    )
    init_db()
    emit("db_init_done")
    with SessionLocal() as db:
        user_svc.ensure_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)
        if RETENTION_ON_STARTUP:
            activity_svc.apply_retention(db)
    yield
    # shutdown
    emit("app_shutdown")


# 4) 创建应用并装配（lifespan 要在这里传入）
app = FastAPI(title="VNC Session Manager", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    emit_warning("app_error", path=str(request.url.path), status_code=exc.status_code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # 输入不合法统一 400（不用 FastAPI 默认的 422）
    errors = jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
    emit_warning("validation_error", path=str(request.url.path), errors=len(errors))
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    emit_error("unhandled_error", path=str(request.url.path), error=repr(exc))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


# 路由
app.include_router(auth_api.router,      prefix="/api/auth",          tags=["auth"])
app.include_router(users_api.router,     prefix="/api/users",         tags=["users"])
app.include_router(machines_api.router,  prefix="/api/vnc-machines",  tags=["vnc-machines"])
app.include_router(favorites_api.router, prefix="/api/favorites",     tags=["favorites"])
app.include_router(activity_api.router,  prefix="/api/activity-logs", tags=["activity-logs"])
