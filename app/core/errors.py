"""
模块职能：领域错误分类（服务层抛出，app.main 统一映射为 HTTP 响应）。

- BadRequest   400  输入不合法 / 自我保护（改自己的角色、删自己的账号）
- Unauthorized 401  未登录、token 无效、口令错误
- Forbidden    403  策略拒绝
- NotFound     404  id 不存在
- Conflict     409  邮箱重复、并发下归属已变化

响应体固定为 {"detail": message}，与 FastAPI HTTPException 一致。
"""


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(AppError):
    status_code = 400
    default_message = "Bad request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"
