"""
响应信封构建器

所有端点统一返回:
    {code, message, success, errors, response_time, data}
"""
import time
from typing import Any, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def format_response_time(started_at: Optional[float] = None,
                         response_time: Optional[str] = None) -> str:
    """根据 perf_counter 起点计算耗时，格式为 "<n>ms" """
    if started_at is not None:
        elapsed_ms = (time.perf_counter() - started_at) * 1000
        return f"{round(elapsed_ms)}ms"
    return response_time or "0ms"


def envelope(
    code: int = 200,
    message: str = "",
    success: bool = True,
    errors: Optional[List[str]] = None,
    data: Any = None,
    started_at: Optional[float] = None,
    response_time: Optional[str] = None,
) -> dict:
    """构建信封字典（未序列化）"""
    return {
        "code": code,
        "message": message,
        "success": success,
        "errors": list(errors or []),
        "response_time": format_response_time(started_at, response_time),
        "data": jsonable_encoder(data),
    }


def build_response(
    code: int = 200,
    message: str = "",
    success: bool = True,
    errors: Optional[List[str]] = None,
    data: Any = None,
    started_at: Optional[float] = None,
    response_time: Optional[str] = None,
) -> JSONResponse:
    """构建成功响应，HTTP 状态码与 code 一致"""
    body = envelope(code, message, success, errors, data, started_at, response_time)
    return JSONResponse(content=body, status_code=code)


def build_error_response(
    code: int = 500,
    message: str = "Internal server error",
    errors: Optional[List[str]] = None,
    started_at: Optional[float] = None,
    response_time: Optional[str] = None,
) -> JSONResponse:
    """构建错误响应，success 固定为 False"""
    return build_response(
        code=code,
        message=message,
        success=False,
        errors=errors,
        data=None,
        started_at=started_at,
        response_time=response_time,
    )
