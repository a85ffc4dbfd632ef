# mlm_engine/utils/pagination.py
"""
Pagination helpers for admin and member listings.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class Page:
    data: List[Any]
    total: int
    page: int
    pageSize: int
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def totalPages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.pageSize)


def normalizePage(page: int, pageSize: int):
    """Clamp page numbers coming from query strings."""
    page = max(int(page or 1), 1)
    pageSize = min(max(int(pageSize or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    return page, pageSize


def paginate(query, page: int, pageSize: int, stats: Dict[str, Any] = None) -> Page:
    """Apply offset/limit to an ordered query and wrap the result."""
    page, pageSize = normalizePage(page, pageSize)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * pageSize).limit(pageSize).all()
    return Page(data=items, total=total, page=page, pageSize=pageSize, stats=stats or {})
