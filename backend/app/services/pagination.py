"""Page/page_size handling shared by the list endpoints"""
import math
from dataclasses import dataclass, asdict
from typing import Any, List, Tuple

from sqlalchemy.orm import Query

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass
class Pagination:
    total: int
    page: int
    page_size: int
    total_page: int

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_page(page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Tuple[int, int]:
    """Clamp to page >= 1 and 1 <= page_size <= MAX_PAGE_SIZE (non-positive sizes get the default)."""
    page = page if page and page > 0 else 1
    if not page_size or page_size <= 0:
        page_size = DEFAULT_PAGE_SIZE
    return page, min(page_size, MAX_PAGE_SIZE)


def paginate(query: Query, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Tuple[List[Any], Pagination]:
    """
    Run a count and one page of an ordered query.

    Returns:
        (items, Pagination)
    """
    page, page_size = normalize_page(page, page_size)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, Pagination(
        total=total,
        page=page,
        page_size=page_size,
        total_page=math.ceil(total / page_size) if total else 0,
    )
