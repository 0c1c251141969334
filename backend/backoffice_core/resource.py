"""
通用资源服务

一个 ResourceSpec 描述一种资源（表、可搜索字段、唯一键、引用、删除守卫等），
ResourceService 基于它实现 列表/详情/创建/更新/删除/批量 操作。
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Type

from pydantic import BaseModel
from sqlalchemy import String, asc, cast, desc, inspect, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from backoffice_core.errors import (
    ApiError, DuplicateKeyError, NotFoundError, ResourceInUseError,
    UpstreamError, ValidationFailedError
)
from backoffice_core.pagination import PageParams, paginated, parse_range
from backoffice_core.relation_guard import ensure_deletable
from backoffice_core.uniqueness import exists

logger = logging.getLogger(__name__)


@dataclass
class UniqueField:
    """业务键字段"""
    field: str
    label: str


@dataclass
class Reference:
    """外键引用：写入前确认被引用记录存在"""
    field: str
    model: Any
    label: str


@dataclass
class ResourceSpec:
    """资源描述（纯数据）"""
    label: str                                   # 单数展示名，如 "Addon"
    path: str                                    # URL 片段，如 "addons"
    model: Any                                   # SQLAlchemy 模型
    create_schema: Optional[Type[BaseModel]] = None
    update_schema: Optional[Type[BaseModel]] = None
    plural_label: Optional[str] = None
    search_fields: Sequence[str] = ()
    filter_fields: Sequence[str] = ()
    range_fields: Sequence[str] = ()
    order_by: str = "created_at"
    descending: bool = False
    unique_fields: Sequence[UniqueField] = ()
    references: Sequence[Reference] = ()
    guards: Sequence[Any] = ()
    # 额外校验: (db, data, exclude_id) -> None，失败时抛出 ApiError
    validators: Sequence[Callable[[Session, Dict[str, Any], Optional[str]], None]] = ()
    # 不直接映射到列的请求字段（由 write_relations 处理）
    relation_fields: Sequence[str] = ()
    write_relations: Optional[Callable[[Session, Any, Dict[str, Any]], None]] = None
    serializer: Optional[Callable[[Any], Dict[str, Any]]] = None
    query_options: Sequence[Any] = ()
    query_hook: Optional[Callable[[Query, PageParams], Query]] = None
    read_only: bool = False
    bulk: bool = False
    # 关系边的自然组合键，如 ("room_class_id", "bed_type_id")
    key_fields: Sequence[str] = ()
    key_update_schema: Optional[Type[BaseModel]] = None

    def __post_init__(self):
        if self.update_schema is None:
            self.update_schema = self.create_schema
        if self.plural_label is None:
            self.plural_label = f"{self.label}s"

    @property
    def noun(self) -> str:
        return self.label.lower()


def model_to_dict(record) -> Dict[str, Any]:
    """按列名导出 ORM 记录"""
    mapper = inspect(record).mapper
    return {
        attr.columns[0].name: getattr(record, attr.key)
        for attr in mapper.column_attrs
    }


def _text_expression(column):
    """非文本列转为文本后再做模糊匹配"""
    if isinstance(column.expression.type, String):
        return column
    return cast(column, String)


def like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class ResourceService:
    """基于 ResourceSpec 的通用 CRUD 服务"""

    def __init__(self, db: Session, spec: ResourceSpec, actor: Optional[str] = None):
        self.db = db
        self.spec = spec
        self.model = spec.model
        self.actor = actor or "anonymous"

    # ============== 存储访问 ==============

    @contextmanager
    def _store(self, on_integrity: Optional[Callable[[], ApiError]] = None):
        """数据存储调用边界：存储层错误只记录日志，对外返回稳定错误码"""
        try:
            yield
        except ApiError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"{self.spec.label} integrity violation: {e.orig}")
            if on_integrity is None:
                raise UpstreamError("Data store request failed", ["Integrity constraint violated"])
            raise on_integrity()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{self.spec.label} data store error: {e}")
            raise UpstreamError("Data store request failed", ["The data store rejected the request"])

    def serialize(self, record) -> Dict[str, Any]:
        if self.spec.serializer:
            return self.spec.serializer(record)
        return model_to_dict(record)

    def _base_query(self) -> Query:
        query = self.db.query(self.model)
        if self.spec.query_options:
            query = query.options(*self.spec.query_options)
        return query

    def _find(self, identifier: str):
        return self._base_query().filter(self.model.id == identifier).first()

    def _get_record(self, identifier: str):
        record = self._find(identifier)
        if record is None:
            raise NotFoundError(
                f"{self.spec.label} not found",
                [f"The specified {self.spec.noun} does not exist"],
            )
        return record

    # ============== 过滤 ==============

    def _apply_filters(self, query: Query, params: PageParams,
                       filters: Dict[str, Any]) -> Query:
        spec = self.spec

        # search 对所有可搜索字段 OR 组合
        if params.search and spec.search_fields:
            pattern = like_pattern(params.search)
            query = query.filter(or_(*[
                _text_expression(getattr(self.model, f)).ilike(pattern, escape="\\")
                for f in spec.search_fields
            ]))

        # search[field] 逐字段 AND 组合
        for field_name, value in params.field_search.items():
            if field_name in spec.range_fields:
                bounds = parse_range(value)
                if bounds is None:
                    continue
                low, high = bounds
                column = getattr(self.model, field_name)
                query = query.filter(column >= low)
                if high != float("inf"):
                    query = query.filter(column <= high)
            elif field_name in spec.search_fields:
                column = _text_expression(getattr(self.model, field_name))
                query = query.filter(column.ilike(like_pattern(value), escape="\\"))

        for field_name in spec.filter_fields:
            value = filters.get(field_name)
            if value not in (None, ""):
                query = query.filter(getattr(self.model, field_name) == value)

        if spec.query_hook:
            query = spec.query_hook(query, params)
        return query

    # ============== 校验 ==============

    def _check_references(self, data: Dict[str, Any]) -> None:
        for ref in self.spec.references:
            value = data.get(ref.field)
            if value is None:
                continue
            found = self.db.query(ref.model.id).filter(ref.model.id == value).first()
            if found is None:
                raise NotFoundError(f"{ref.label} not found", [f"Invalid {ref.field}"])

    def _check_unique(self, data: Dict[str, Any], exclude_id: Optional[str],
                      status_code: int) -> None:
        for unique in self.spec.unique_fields:
            value = data.get(unique.field)
            if value is None:
                continue
            if exists(self.db, self.model, unique.field, value, exclude_id):
                raise DuplicateKeyError(
                    f"{unique.label} already exists",
                    [f"{unique.label} must be unique"],
                    status_code=status_code,
                )

    def _validate(self, data: Dict[str, Any], exclude_id: Optional[str],
                  duplicate_status: int) -> None:
        self._check_references(data)
        self._check_unique(data, exclude_id, duplicate_status)
        for validator in self.spec.validators:
            validator(self.db, data, exclude_id)

    def _columns(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in data.items() if k not in self.spec.relation_fields}

    def _duplicate_error(self, status_code: int = 400) -> Callable[[], ApiError]:
        labels = ", ".join(u.label for u in self.spec.unique_fields) or self.spec.label
        return lambda: DuplicateKeyError(
            f"{self.spec.label} already exists",
            [f"{labels} must be unique"],
            status_code=status_code,
        )

    def _in_use_error(self) -> ApiError:
        return ResourceInUseError(
            f"Cannot delete {self.spec.noun} that is in use",
            [f"{self.spec.label} has dependent records"],
        )

    # ============== 单条操作 ==============

    def list(self, params: PageParams, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """分页列表：计数 + 有序范围查询"""
        with self._store():
            query = self._apply_filters(self.db.query(self.model), params, filters or {})
            total = query.order_by(None).count()

            order_column = getattr(self.model, self.spec.order_by)
            ordering = desc(order_column) if self.spec.descending else asc(order_column)
            if self.spec.query_options:
                query = query.options(*self.spec.query_options)
            rows = (
                query.order_by(ordering, self.model.id)
                .offset(params.offset)
                .limit(params.limit)
                .all()
            )
            items = [self.serialize(row) for row in rows]
        return paginated(items, params, total)

    def get(self, identifier: str) -> Dict[str, Any]:
        with self._store():
            return self.serialize(self._get_record(identifier))

    def create(self, payload: BaseModel) -> Dict[str, Any]:
        data = payload.model_dump()
        with self._store(self._duplicate_error(400)):
            self._validate(data, exclude_id=None, duplicate_status=400)
            record = self.model(**self._columns(data))
            self.db.add(record)
            self.db.flush()
            if self.spec.write_relations:
                self.spec.write_relations(self.db, record, data)
            self.db.commit()
            record = self._get_record(record.id)
        logger.info(f"{self.spec.label} {record.id} created by {self.actor}")
        return self.serialize(record)

    def update(self, identifier: str, payload: BaseModel) -> Dict[str, Any]:
        return self._update(identifier, payload.model_dump())

    def _update(self, identifier: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._store(self._duplicate_error(409)):
            record = self._get_record(identifier)
            self._validate(data, exclude_id=identifier, duplicate_status=409)
            for key, value in self._columns(data).items():
                setattr(record, key, value)
            if self.spec.write_relations:
                self.spec.write_relations(self.db, record, data)
            self.db.commit()
            self.db.expire_all()
            record = self._get_record(identifier)
        logger.info(f"{self.spec.label} {identifier} updated by {self.actor}")
        return self.serialize(record)

    def delete(self, identifier: str) -> None:
        with self._store(self._in_use_error):
            record = self._get_record(identifier)
            ensure_deletable(self.db, record, self.spec.guards)
            self.db.delete(record)
            self.db.commit()
        logger.info(f"{self.spec.label} {identifier} deleted by {self.actor}")

    # ============== 按组合键访问（关系边） ==============

    def _get_by_key(self, key: Dict[str, str]):
        query = self._base_query()
        for field_name, value in key.items():
            query = query.filter(getattr(self.model, field_name) == value)
        record = query.first()
        if record is None:
            described = ", ".join(f"{k}={v}" for k, v in key.items())
            raise NotFoundError(
                f"{self.spec.label} not found",
                [f"No {self.spec.noun} exists for {described}"],
            )
        return record

    def get_by_key(self, key: Dict[str, str]) -> Dict[str, Any]:
        with self._store():
            return self.serialize(self._get_by_key(key))

    def update_by_key(self, key: Dict[str, str], payload: BaseModel) -> Dict[str, Any]:
        """组合键定位记录，请求体只携带非键字段"""
        with self._store():
            identifier = self._get_by_key(key).id
        return self._update(identifier, {**key, **payload.model_dump()})

    def delete_by_key(self, key: Dict[str, str]) -> None:
        with self._store():
            identifier = self._get_by_key(key).id
        self.delete(identifier)

    # ============== 批量操作（全部成功或全部失败） ==============

    def _batch_key_errors(self, rows: Sequence[Dict[str, Any]]) -> List[str]:
        """批内业务键重复（大小写不敏感）"""
        errors = []
        for unique in self.spec.unique_fields:
            seen = set()
            for index, row in enumerate(rows):
                value = row.get(unique.field)
                if value is None:
                    continue
                key = value.lower() if isinstance(value, str) else value
                if key in seen:
                    errors.append(f"Duplicate {unique.label.lower()} at index {index}")
                seen.add(key)
        return errors

    def _store_key_errors(self, rows: Sequence[Dict[str, Any]],
                          exclude_ids: Optional[Sequence[str]] = None) -> List[str]:
        """与库中（本批以外）记录的业务键冲突；批内冲突由 _batch_key_errors 检查"""
        errors = []
        for row in rows:
            for unique in self.spec.unique_fields:
                value = row.get(unique.field)
                if value is not None and exists(self.db, self.model, unique.field, value,
                                                exclude_ids=exclude_ids):
                    errors.append(f"{unique.label} '{value}' already exists")
        return errors

    def _write_order(self, records: Sequence[Any],
                     rows: Sequence[Dict[str, Any]]) -> List[tuple]:
        """
        批量更新的写入顺序

        新键值仍被本批其它记录占用时，先写占用方（A→C 先于 B→A）。
        互换成环时按请求顺序写入。
        """
        def normalized(field_name, value):
            return field_name, value.lower() if isinstance(value, str) else value

        def keys_of(source, getter):
            return {
                normalized(u.field, getter(source, u.field))
                for u in self.spec.unique_fields
                if getter(source, u.field) is not None
            }

        pending = list(zip(records, rows))
        ordered = []
        while pending:
            for index, (record, row) in enumerate(pending):
                held = set()
                for other, _ in pending:
                    if other is not record:
                        held |= keys_of(other, getattr)
                if not keys_of(row, dict.get) & held:
                    ordered.append(pending.pop(index))
                    break
            else:
                ordered.extend(pending)
                break
        return ordered

    def bulk_create(self, payloads: Sequence[BaseModel]) -> List[Dict[str, Any]]:
        rows = [p.model_dump() for p in payloads]
        batch_errors = self._batch_key_errors(rows)
        if batch_errors:
            raise ValidationFailedError("Validation failed", batch_errors)

        with self._store(self._duplicate_error(400)):
            for row in rows:
                self._check_references(row)
            conflicts = self._store_key_errors(rows)
            if conflicts:
                raise DuplicateKeyError(f"Duplicate {self.spec.noun} keys", conflicts)
            records = []
            # 逐条写入并 flush，后续行的校验能看到本批已写入的记录
            for row in rows:
                for validator in self.spec.validators:
                    validator(self.db, row, None)
                record = self.model(**self._columns(row))
                self.db.add(record)
                self.db.flush()
                if self.spec.write_relations:
                    self.spec.write_relations(self.db, record, row)
                records.append(record)
            self.db.commit()
            ids = [r.id for r in records]
            result = [self.serialize(self._get_record(i)) for i in ids]
        logger.info(f"{len(ids)} {self.spec.plural_label.lower()} created by {self.actor}")
        return result

    def bulk_update(self, payloads: Sequence[BaseModel]) -> List[Dict[str, Any]]:
        rows = [p.model_dump() for p in payloads]
        ids = [row.pop("id") for row in rows]

        batch_errors = self._batch_key_errors(rows)
        seen_ids = set()
        for index, identifier in enumerate(ids):
            if identifier in seen_ids:
                batch_errors.append(f"Duplicate {self.spec.noun} ID at index {index}")
            seen_ids.add(identifier)
        if batch_errors:
            raise ValidationFailedError("Validation failed", batch_errors)

        with self._store(self._duplicate_error(409)):
            records = self._records_for(ids)
            for row in rows:
                self._check_references(row)
            conflicts = self._store_key_errors(rows, exclude_ids=ids)
            if conflicts:
                raise DuplicateKeyError("Name conflicts found", conflicts, status_code=409)
            for record, row in self._write_order(records, rows):
                for validator in self.spec.validators:
                    validator(self.db, row, record.id)
                for key, value in self._columns(row).items():
                    setattr(record, key, value)
                if self.spec.write_relations:
                    self.spec.write_relations(self.db, record, row)
                self.db.flush()
            self.db.commit()
            self.db.expire_all()
            result = [self.serialize(self._get_record(i)) for i in ids]
        logger.info(f"{len(ids)} {self.spec.plural_label.lower()} updated by {self.actor}")
        return result

    def bulk_delete(self, ids: Sequence[str]) -> Dict[str, int]:
        unique_ids = list(dict.fromkeys(ids))
        with self._store(self._in_use_error):
            records = self._records_for(unique_ids)
            blocked = []
            # 逐条删除并 flush，后续守卫能看到本批已删除的记录
            for record in records:
                guard = next((g for g in self.spec.guards if g.blocks(self.db, record)), None)
                if guard is not None:
                    blocked.append(f"{self.spec.label} {record.id}: {guard.detail}")
                    continue
                self.db.delete(record)
                self.db.flush()
            if blocked:
                raise ResourceInUseError(
                    f"Cannot delete {self.spec.plural_label.lower()} that are in use", blocked
                )
            self.db.commit()
        logger.info(f"{len(unique_ids)} {self.spec.plural_label.lower()} deleted by {self.actor}")
        return {"deleted_count": len(unique_ids)}

    def _records_for(self, ids: Iterable[str]) -> List[Any]:
        ids = list(ids)
        records = {r.id: r for r in self.db.query(self.model).filter(self.model.id.in_(ids)).all()}
        missing = [i for i in ids if i not in records]
        if missing:
            raise NotFoundError(
                f"{self.spec.label} not found",
                [f"{self.spec.label} {i} does not exist" for i in missing],
            )
        return [records[i] for i in ids]
