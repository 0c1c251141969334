"""
错误分类 (Error taxonomy)

所有资源端点抛出的业务错误都继承自 ApiError，
由 handlers.install_exception_handlers 统一转换为响应信封。
"""
from enum import Enum
from typing import List, Optional


class ErrorCode(str, Enum):
    """稳定的对外错误码"""
    VALIDATION_ERROR = "VALIDATION_ERROR"    # 缺失或格式错误的字段
    DUPLICATE_KEY = "DUPLICATE_KEY"          # 业务键冲突
    NOT_FOUND = "NOT_FOUND"                  # 记录不存在
    CONFLICT_IN_USE = "CONFLICT_IN_USE"      # 存在依赖记录，禁止删除
    UPSTREAM_ERROR = "UPSTREAM_ERROR"        # 数据存储/对象存储报错
    UNAUTHORIZED = "UNAUTHORIZED"            # 认证失败
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"  # 路径存在但不支持该方法
    INTERNAL_ERROR = "INTERNAL_ERROR"        # 未捕获异常


class ApiError(Exception):
    """
    API 错误基类

    Attributes:
        status_code: HTTP 状态码
        error_code: 错误分类
        message: 面向调用方的消息
        details: 详细错误说明（写入 errors 数组）
    """
    status_code: int = 500
    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[List[str]] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])
        if status_code is not None:
            self.status_code = status_code

    @property
    def errors(self) -> List[str]:
        """errors 数组：首项为错误码，其后为详细说明"""
        return [self.error_code.value, *self.details]


class ValidationFailedError(ApiError):
    status_code = 400
    error_code = ErrorCode.VALIDATION_ERROR


class DuplicateKeyError(ApiError):
    status_code = 400
    error_code = ErrorCode.DUPLICATE_KEY


class NotFoundError(ApiError):
    status_code = 404
    error_code = ErrorCode.NOT_FOUND


class ResourceInUseError(ApiError):
    status_code = 400
    error_code = ErrorCode.CONFLICT_IN_USE


class UpstreamError(ApiError):
    status_code = 400
    error_code = ErrorCode.UPSTREAM_ERROR


class UnauthorizedError(ApiError):
    status_code = 401
    error_code = ErrorCode.UNAUTHORIZED
