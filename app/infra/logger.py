"""
模块职责：统一日志配置与结构化输出（控制台 + 可选滚动文件）。
- configure_logging(): 按环境变量设置等级/落盘，uvicorn 日志合流到同一套 handler。
- emit(event, **kwargs): 结构化日志（JSON 一行），便于检索。
- emit_warning / emit_error: 同上，分别以 WARNING / ERROR 级别输出。

字段名命中 REDACTED_KEYS（password / token 等）时值一律替换为 "***"，
VNC 密码与 JWT 不会出现在日志里。
"""
import logging, json, os, pathlib
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime


LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.getenv("LOG_FILE", "vnc-manager.log")
LOG_ROTATE_WHEN = os.getenv("LOG_ROTATE_WHEN", "midnight")
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "7"))

_configured = False


def configure_logging():
    global _configured
    if _configured:
        return

    level = getattr(logging, LEVEL, logging.INFO)
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    ))
    root.addHandler(console)

    if LOG_TO_FILE:
        pathlib.Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
        fileh = TimedRotatingFileHandler(
            os.path.join(LOG_DIR, LOG_FILE),
            when=LOG_ROTATE_WHEN, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        )
        fileh.setLevel(level)
        # 文件里只写 message（纯 JSON）
        fileh.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(fileh)

    root.setLevel(level)

    for ln in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(ln)
        lg.handlers = []
        lg.propagate = True

    _configured = True


_app_logger = logging.getLogger("vnc_manager")


def _now_iso():
    # 本地时区 + 毫秒，示例：2025-09-18T17:30:42.123+09:00
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


REDACTED_KEYS = {"password", "password_hash", "token", "authorization", "secret"}


def _redact(kwargs: dict) -> dict:
    return {k: ("***" if k.lower() in REDACTED_KEYS and v is not None else v) for k, v in kwargs.items()}


def _record(event: str, level: str, kwargs: dict) -> str:
    rec = {"ts": _now_iso(), "level": level, "event": event, **_redact(kwargs)}
    try:
        return json.dumps(rec, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(rec)


def emit(event: str, level: str = "INFO", **kwargs):
    """
    结构化日志：默认 INFO；每条都带时间戳 ts（本地时区）。
    用法：emit("machine_create", user_id=..., machine_id=..., shared=False)
    """
    lvl = getattr(logging, level.upper(), logging.INFO)
    _app_logger.log(lvl, _record(event, level.upper(), kwargs))


def emit_warning(event: str, **kwargs):
    _app_logger.warning(_record(event, "WARNING", kwargs))


def emit_error(event: str, **kwargs):
    """
    错误日志（level=ERROR）。
    用法：emit_error("db_error", request_id=..., err=str(e))
    """
    _app_logger.error(_record(event, "ERROR", kwargs))
