"""
分页与过滤参数规范化

把 page/limit/search 原始查询字符串转换为有界整数和搜索条件。
limit 不设上限（已知缺口，保持原样）。
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10

# search[name]=xxx 形式的字段级搜索参数
_FIELD_SEARCH_PATTERN = re.compile(r"^search\[(\w+)\]$")


@dataclass
class PageParams:
    """规范化后的分页参数"""
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    search: str = ""
    field_search: Dict[str, str] = field(default_factory=dict)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _parse_positive_int(raw: Optional[str], default: int) -> int:
    """解析正整数，非法或小于 1 时回退默认值"""
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if value >= 1 else default


def parse_page_params(page: Optional[str] = None,
                      limit: Optional[str] = None,
                      search: Optional[str] = None,
                      field_search: Optional[Dict[str, str]] = None) -> PageParams:
    """解析 page/limit/search"""
    return PageParams(
        page=_parse_positive_int(page, DEFAULT_PAGE),
        limit=_parse_positive_int(limit, DEFAULT_LIMIT),
        search=(search or "").strip(),
        field_search={k: v.strip() for k, v in (field_search or {}).items() if v and v.strip()},
    )


def parse_query_params(query_params: Mapping[str, str]) -> PageParams:
    """从请求查询参数中提取分页与搜索条件（含 search[field]）"""
    field_search = {}
    for key, value in query_params.items():
        match = _FIELD_SEARCH_PATTERN.match(key)
        if match:
            field_search[match.group(1)] = value
    return parse_page_params(
        page=query_params.get("page"),
        limit=query_params.get("limit"),
        search=query_params.get("search"),
        field_search=field_search,
    )


def total_pages(total: int, limit: int) -> int:
    """总页数；total 为 0 时统一返回 1"""
    if total <= 0:
        return 1
    return math.ceil(total / limit)


def parse_range(raw: str) -> Optional[Tuple[float, float]]:
    """
    解析数值区间 "10-20" 或单值 "15"

    上界缺失或非法时视为无上界 (math.inf)；上下界颠倒时自动交换。
    """
    cleaned = (raw or "").strip()
    if not cleaned:
        return None

    def _to_float(text: str, fallback: float) -> float:
        try:
            return float(text)
        except ValueError:
            return fallback

    if "-" in cleaned:
        parts = [part.strip() for part in cleaned.split("-")]
        if len(parts) != 2:
            return None
        low = _to_float(parts[0], 0.0)
        high = _to_float(parts[1], math.inf)
    else:
        low = _to_float(cleaned, 0.0)
        high = low

    if low > high:
        low, high = high, low
    return low, high


def paginated(items: List[Any], params: PageParams, total: int) -> Dict[str, Any]:
    """分页响应体 {items, meta}"""
    return {
        "items": items,
        "meta": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "total_pages": total_pages(total, params.limit),
        },
    }
