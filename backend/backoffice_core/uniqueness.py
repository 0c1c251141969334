"""
业务键唯一性校验

写入前的快速预检查；真正的约束由存储层唯一索引保证。
"""
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session


def _column(model, field: str):
    try:
        return getattr(model, field)
    except AttributeError:
        raise ValueError(f"{model.__name__} has no field '{field}'")


def exists(db: Session, model, field: str, value: Any,
           exclude_id: Optional[str] = None,
           exclude_ids: Optional[Iterable[str]] = None) -> bool:
    """
    字符串大小写不敏感匹配

    更新时用 exclude_id 排除当前记录；批量更新用 exclude_ids 排除整批记录。
    """
    column = _column(model, field)
    if isinstance(value, str):
        condition = func.lower(column) == value.lower()
    else:
        condition = column == value

    query = db.query(model.id).filter(condition)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if exclude_ids:
        query = query.filter(model.id.notin_(list(exclude_ids)))
    return query.limit(1).first() is not None


def exists_together(db: Session, model, criteria: Dict[str, Any],
                    exclude_id: Optional[str] = None) -> bool:
    """组合键存在性检查（用于关系边）"""
    query = db.query(model.id)
    for field, value in criteria.items():
        query = query.filter(_column(model, field) == value)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.limit(1).first() is not None
