"""
异常处理器注册

ApiError / 请求体校验错误 / HTTP 异常统一转换为响应信封。
未捕获异常由应用外层中间件处理（见 backoffice.main）。
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backoffice_core.envelope import build_error_response
from backoffice_core.errors import ApiError, ErrorCode
from backoffice_core.router import started_at

logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    409: ErrorCode.DUPLICATE_KEY,
}


def error_code_for_status(status_code: int) -> ErrorCode:
    """框架 HTTP 异常状态码 -> 错误码；5xx 视为内部错误，其余 4xx 视为校验错误"""
    if status_code in _HTTP_ERROR_CODES:
        return _HTTP_ERROR_CODES[status_code]
    if status_code >= 500:
        return ErrorCode.INTERNAL_ERROR
    return ErrorCode.VALIDATION_ERROR


def format_validation_errors(exc: RequestValidationError) -> list:
    """pydantic 错误 -> "field: message" 列表"""
    messages = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        prefix = ".".join(loc)
        messages.append(f"{prefix}: {error['msg']}" if prefix else error["msg"])
    return messages


def install_exception_handlers(app: FastAPI) -> None:
    """在应用上注册信封化异常处理器"""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return build_error_response(
            code=exc.status_code,
            message=exc.message,
            errors=exc.errors,
            started_at=started_at(request),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Request validation failed: %s %s", request.method, request.url.path)
        return build_error_response(
            code=400,
            message="Missing or invalid required fields",
            errors=[ErrorCode.VALIDATION_ERROR.value, *format_validation_errors(exc)],
            started_at=started_at(request),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        error_code = error_code_for_status(exc.status_code)
        response = build_error_response(
            code=exc.status_code,
            message=str(exc.detail),
            errors=[error_code.value],
            started_at=started_at(request),
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response
