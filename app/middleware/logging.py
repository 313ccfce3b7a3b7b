"""
模块职责：请求级日志中间件。
- 沿用客户端传入的 x-request-id，没有则生成一个；
- 记录 request_start 与 request_end（含耗时、状态码、客户端 IP）；
- 未处理异常输出 request_error 后继续抛出，由 app.main 的兜底处理器转为 500；
- /health 探活请求不打点。
"""
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from app.infra.logger import emit, emit_error

QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = str(request.url.path)
        if path in QUIET_PATHS:
            return await call_next(request)

        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = rid
        start = time.perf_counter()
        emit(
            "request_start",
            request_id=rid,
            method=request.method,
            path=path,
            ip=request.client.host if request.client else None,
        )
        try:
            response: Response = await call_next(request)
        except Exception as e:
            emit_error(
                "request_error",
                request_id=rid,
                method=request.method,
                path=path,
                error=repr(e),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise

        emit(
            "request_end",
            request_id=rid,
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        response.headers["x-request-id"] = rid
        return response
