import math
from dataclasses import dataclass
from typing import Optional

from fastapi import Query

from app.constants import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT


@dataclass
class Pagination:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def pagination_params(
    page: Optional[int] = Query(DEFAULT_PAGE),
    limit: Optional[int] = Query(DEFAULT_LIMIT),
) -> Pagination:
    """Clamp page/limit the same way for every list endpoint: bad values fall back to defaults."""
    if page is None or page < 1:
        page = DEFAULT_PAGE
    if limit is None or limit < 1:
        limit = DEFAULT_LIMIT
    return Pagination(page=page, limit=min(limit, MAX_LIMIT))


def build_pagination_meta(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def parse_sort(sort_by: Optional[str], sort_order: Optional[str], allowed: dict, default_field: str, default_order: str = "desc"):
    """Map a public sort key onto a column; unknown keys and orders fall back to the defaults."""
    if not sort_by or sort_by not in allowed:
        sort_by = default_field
    order = (sort_order or default_order).lower()
    if order not in ("asc", "desc"):
        order = default_order
    return allowed[sort_by], order
