"""
Common utilities shared across routers.
"""

from .base import get_user_id, unexpected_errors
from .pagination import Pagination, get_pagination

__all__ = [
    "get_user_id",
    "unexpected_errors",
    "Pagination",
    "get_pagination",
]
