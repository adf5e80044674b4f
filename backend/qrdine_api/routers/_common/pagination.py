"""
Pagination query parameters.

Usage:
    @router.get("/orders")
    def list_orders(pagination: Pagination = Depends(get_pagination)):
        filters = OrderFilters(limit=pagination.limit, offset=pagination.offset)
"""

from dataclasses import dataclass

from fastapi import Query

from shared.config.constants import Limits


@dataclass
class Pagination:
    limit: int
    offset: int

    def __post_init__(self):
        self.limit = min(max(1, self.limit), Limits.MAX_PAGE_SIZE)
        self.offset = max(0, self.offset)


def get_pagination(
    limit: int = Query(default=Limits.DEFAULT_PAGE_SIZE, ge=1, le=Limits.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> Pagination:
    return Pagination(limit=limit, offset=offset)
