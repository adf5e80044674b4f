"""
Router helpers for staff context and unexpected failures.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import HTTPException

from shared.config.logging import api_logger as logger
from shared.utils.exceptions import InternalError


def get_user_id(ctx: dict[str, Any]) -> int:
    """Staff user id from the JWT subject."""
    return int(ctx["sub"])


@contextmanager
def unexpected_errors(action: str, **log_context: Any) -> Iterator[None]:
    """
    Let domain errors through and turn anything else into a logged 500.

    Usage:
        with unexpected_errors("accept order", order_id=order_id):
            order = service.accept_order(order_id, waiter_id)
    """
    try:
        yield
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to {action}", error=str(e), exc_info=True, **log_context)
        raise InternalError(f"Failed to {action} - please try again")
