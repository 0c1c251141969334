"""
删除前关系守卫

父记录存在依赖子记录时拒绝删除；存储层的 RESTRICT 外键是最终保障。
"""
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from backoffice_core.errors import ResourceInUseError


def has_dependents(db: Session, child_model, fk_field: str, parent_id: Any) -> bool:
    """有界存在性探测 (LIMIT 1)"""
    column = getattr(child_model, fk_field)
    return db.query(child_model.id).filter(column == parent_id).limit(1).first() is not None


@dataclass
class RelationGuard:
    """子表外键依赖守卫"""
    child_model: Any
    fk_field: str
    message: str
    detail: str
    # 父记录上用于匹配外键的属性，默认为主键
    parent_field: str = "id"

    def blocks(self, db: Session, record) -> bool:
        return has_dependents(db, self.child_model, self.fk_field,
                              getattr(record, self.parent_field))


@dataclass
class PredicateGuard:
    """任意谓词守卫，predicate 返回 True 时阻止删除"""
    predicate: Callable[[Session, Any], bool]
    message: str
    detail: str

    def blocks(self, db: Session, record) -> bool:
        return self.predicate(db, record)


def ensure_deletable(db: Session, record, guards: Iterable) -> None:
    """依次检查守卫，首个命中的守卫抛出 CONFLICT_IN_USE"""
    for guard in guards:
        if guard.blocks(db, record):
            raise ResourceInUseError(guard.message, [guard.detail])
