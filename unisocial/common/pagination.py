# unisocial/common/pagination.py

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Query

from unisocial.core.config import settings


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = settings.DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def make_pagination(page: Optional[int] = None, limit: Optional[int] = None) -> Pagination:
    """Clamp instead of rejecting: page >= 1, 1 <= limit <= MAX_PAGE_SIZE. None means the default."""
    page = 1 if page is None else max(1, page)
    if limit is None:
        limit = settings.DEFAULT_PAGE_SIZE
    limit = max(1, min(limit, settings.MAX_PAGE_SIZE))
    return Pagination(page=page, limit=limit)


def get_pagination(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
) -> Pagination:
    return make_pagination(page, limit)


def pagination_metadata(total: int, pagination: Pagination) -> Dict[str, Any]:
    page, limit = pagination.page, pagination.limit
    total_pages = math.ceil(total / limit)
    has_next = page < total_pages
    has_prev = page > 1
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
        "hasNextPage": has_next,
        "hasPrevPage": has_prev,
        "nextPage": page + 1 if has_next else None,
        "prevPage": page - 1 if has_prev else None,
    }
