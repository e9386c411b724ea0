"""
全局异常处理模块 (Global Exception Handling Module)

定义业务异常类和 FastAPI 全局异常处理器，提供统一的错误响应格式。
错误响应体与原有面板接口保持一致：{"message": ...}，存在上游错误详情时附加 "error"。

Defines business exception classes and FastAPI global exception handlers.
Error bodies keep the panel's wire format: {"message": ...}, plus "error"
when an upstream detail is available.
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class MissingParameterError(BusinessError):
    """缺少必需参数 (Missing Required Parameter)"""
    status_code = 400


class AuthenticationError(BusinessError):
    """认证失败 (Authentication Failed)"""
    status_code = 401


class PermissionDeniedError(BusinessError):
    """权限不足 (Permission Denied)"""
    status_code = 403


class ConflictError(BusinessError):
    """资源冲突 (Resource Conflict)"""
    status_code = 409


class UpstreamQueryError(BusinessError):
    """指标存储查询失败，detail 为上游原始错误信息 (Metrics store query failed; detail is the upstream message)"""
    status_code = 500


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError 子类 → 对应 HTTP 状态码 + {message[, error]}
    2. HTTPException → 保持状态码，包装为 {message}
    3. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        content = {"message": exc.message}
        if exc.detail is not None:
            content["error"] = exc.detail
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # 记录完整 traceback 用于调试 (Log full traceback for debugging)
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content={"message": "Internal server error, please try again later"},
        )
