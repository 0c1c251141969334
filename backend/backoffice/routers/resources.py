"""
资源路由
为每个 ResourceSpec 生成标准 CRUD 端点，统一要求 Bearer 认证
"""
from typing import List
from fastapi import APIRouter, Depends

from backoffice.database import get_db
from backoffice.resources import ALL_RESOURCES
from backoffice.security.auth import get_current_user
from backoffice_core.router import build_resource_router


def build_routers() -> List[APIRouter]:
    return [
        build_resource_router(spec, get_db, dependencies=[Depends(get_current_user)])
        for spec in ALL_RESOURCES
    ]


routers = build_routers()
