"""
通用资源处理库

分页规范化、响应信封、唯一性校验、删除守卫与通用 CRUD 路由。
"""
from backoffice_core.envelope import build_error_response, build_response
from backoffice_core.errors import (
    ApiError, DuplicateKeyError, ErrorCode, NotFoundError, ResourceInUseError,
    UnauthorizedError, UpstreamError, ValidationFailedError
)
from backoffice_core.pagination import PageParams, parse_page_params, total_pages
from backoffice_core.relation_guard import PredicateGuard, RelationGuard, has_dependents
from backoffice_core.resource import Reference, ResourceService, ResourceSpec, UniqueField
from backoffice_core.router import build_resource_router
from backoffice_core.uniqueness import exists, exists_together

__all__ = [
    "build_response", "build_error_response",
    "ApiError", "ErrorCode", "DuplicateKeyError", "NotFoundError", "ResourceInUseError",
    "UnauthorizedError", "UpstreamError", "ValidationFailedError",
    "PageParams", "parse_page_params", "total_pages",
    "RelationGuard", "PredicateGuard", "has_dependents",
    "ResourceSpec", "ResourceService", "UniqueField", "Reference",
    "build_resource_router",
    "exists", "exists_together",
]
