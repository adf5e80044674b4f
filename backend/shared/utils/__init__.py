"""
Utilities module: Exceptions, schemas.
"""

from shared.utils.exceptions import (
    NotFoundError,
    ForbiddenError,
    ValidationError,
    InvalidOperationError,
    InvalidStateError,
    ConcurrencyError,
    PaymentProviderError,
    DependencyError,
)
from shared.utils.schemas import ErrorResponse

__all__ = [
    # exceptions
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "InvalidOperationError",
    "InvalidStateError",
    "ConcurrencyError",
    "PaymentProviderError",
    "DependencyError",
    # schemas
    "ErrorResponse",
]
