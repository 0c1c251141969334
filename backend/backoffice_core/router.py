"""
通用资源路由工厂

build_resource_router(spec, get_db) 为一种资源生成标准 REST 端点：
    GET    /api/<path>            分页列表
    POST   /api/<path>            创建 (201)
    POST   /api/<path>/bulk       批量创建 (spec.bulk)
    PUT    /api/<path>/bulk       批量更新 (spec.bulk)
    DELETE /api/<path>/bulk       批量删除 (spec.bulk)
    GET    /api/<path>/{id}       详情
    PUT    /api/<path>/{id}       更新
    DELETE /api/<path>/{id}       删除
    GET/PUT/DELETE /api/<path>/{k1}/{k2}   按组合键访问 (spec.key_fields)
"""
from typing import Callable, Dict, List, Optional, Sequence

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, create_model
from sqlalchemy.orm import Session

from backoffice_core.envelope import build_response
from backoffice_core.pagination import parse_query_params
from backoffice_core.resource import ResourceService, ResourceSpec


class BulkDeleteBody(BaseModel):
    ids: List[str] = Field(..., min_length=1)


def started_at(request: Request) -> Optional[float]:
    """中间件写入的请求起始时间"""
    return getattr(request.state, "started_at", None)


def current_actor(request: Request) -> Optional[str]:
    return getattr(request.state, "actor", None)


def build_resource_router(spec: ResourceSpec, get_db: Callable,
                          dependencies: Sequence = ()) -> APIRouter:
    """根据 ResourceSpec 生成路由"""
    router = APIRouter(prefix=f"/api/{spec.path}", tags=[spec.plural_label],
                       dependencies=list(dependencies))

    def service(request: Request, db: Session) -> ResourceService:
        return ResourceService(db, spec, actor=current_actor(request))

    @router.get("")
    def list_records(request: Request, db: Session = Depends(get_db)):
        """分页列表"""
        params = parse_query_params(request.query_params)
        filters = {f: request.query_params.get(f) for f in spec.filter_fields}
        data = service(request, db).list(params, filters)
        return build_response(
            code=200,
            message=f"{spec.label} list retrieved successfully",
            data=data,
            started_at=started_at(request),
        )

    if not spec.read_only:
        create_schema = spec.create_schema
        update_schema = spec.update_schema

        @router.post("", status_code=201)
        def create_record(request: Request, payload: create_schema, db: Session = Depends(get_db)):
            """创建"""
            data = service(request, db).create(payload)
            return build_response(
                code=201,
                message=f"{spec.label} created successfully",
                data=data,
                started_at=started_at(request),
            )

        if spec.bulk:
            bulk_create_body = create_model(
                f"{create_schema.__name__}BulkCreate",
                items=(List[create_schema], Field(..., min_length=1)),
            )
            bulk_update_item = create_model(
                f"{update_schema.__name__}BulkItem",
                __base__=update_schema,
                id=(str, ...),
            )
            bulk_update_body = create_model(
                f"{update_schema.__name__}BulkUpdate",
                items=(List[bulk_update_item], Field(..., min_length=1)),
            )

            @router.post("/bulk", status_code=201)
            def bulk_create(request: Request, body: bulk_create_body, db: Session = Depends(get_db)):
                """批量创建"""
                data = service(request, db).bulk_create(body.items)
                return build_response(
                    code=201,
                    message=f"{spec.plural_label} created successfully",
                    data=data,
                    started_at=started_at(request),
                )

            @router.put("/bulk")
            def bulk_update(request: Request, body: bulk_update_body, db: Session = Depends(get_db)):
                """批量更新"""
                data = service(request, db).bulk_update(body.items)
                return build_response(
                    code=200,
                    message=f"{spec.plural_label} updated successfully",
                    data=data,
                    started_at=started_at(request),
                )

            @router.delete("/bulk")
            def bulk_delete(request: Request, body: BulkDeleteBody, db: Session = Depends(get_db)):
                """批量删除"""
                data = service(request, db).bulk_delete(body.ids)
                return build_response(
                    code=200,
                    message=f"{spec.plural_label} deleted successfully",
                    data=data,
                    started_at=started_at(request),
                )

    @router.get("/{identifier}")
    def get_record(identifier: str, request: Request, db: Session = Depends(get_db)):
        """详情"""
        data = service(request, db).get(identifier)
        return build_response(
            code=200,
            message=f"{spec.label} retrieved successfully",
            data=data,
            started_at=started_at(request),
        )

    if not spec.read_only:

        @router.put("/{identifier}")
        def update_record(identifier: str, request: Request, payload: update_schema,
                          db: Session = Depends(get_db)):
            """更新"""
            data = service(request, db).update(identifier, payload)
            return build_response(
                code=200,
                message=f"{spec.label} updated successfully",
                data=data,
                started_at=started_at(request),
            )

        @router.delete("/{identifier}")
        def delete_record(identifier: str, request: Request, db: Session = Depends(get_db)):
            """删除"""
            service(request, db).delete(identifier)
            return build_response(
                code=200,
                message=f"{spec.label} deleted successfully",
                started_at=started_at(request),
            )

    if spec.key_fields:
        _add_key_routes(router, spec, service, get_db)

    return router


def _add_key_routes(router: APIRouter, spec: ResourceSpec, service: Callable,
                    get_db: Callable) -> None:
    """关系边按组合键访问：/{room_class_id}/{bed_type_id}"""
    key_path = "/" + "/".join(f"{{{name}}}" for name in spec.key_fields)

    def key_from(request: Request) -> Dict[str, str]:
        return {name: request.path_params[name] for name in spec.key_fields}

    @router.get(key_path)
    def get_record_by_key(request: Request, db: Session = Depends(get_db)):
        """按组合键查询"""
        data = service(request, db).get_by_key(key_from(request))
        return build_response(
            code=200,
            message=f"{spec.label} retrieved successfully",
            data=data,
            started_at=started_at(request),
        )

    if spec.read_only:
        return

    if spec.key_update_schema is not None:
        key_update_schema = spec.key_update_schema

        @router.put(key_path)
        def update_record_by_key(request: Request, payload: key_update_schema,
                                 db: Session = Depends(get_db)):
            """按组合键更新"""
            data = service(request, db).update_by_key(key_from(request), payload)
            return build_response(
                code=200,
                message=f"{spec.label} updated successfully",
                data=data,
                started_at=started_at(request),
            )

    @router.delete(key_path)
    def delete_record_by_key(request: Request, db: Session = Depends(get_db)):
        """按组合键删除"""
        service(request, db).delete_by_key(key_from(request))
        return build_response(
            code=200,
            message=f"{spec.label} deleted successfully",
            started_at=started_at(request),
        )
