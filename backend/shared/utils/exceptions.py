"""
Centralized HTTP exceptions for consistent error handling.

Domain services raise these directly; FastAPI renders them as
{"detail": "..."} with the status code of the class.

Usage:
    from shared.utils.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError("Order", order_id)
    raise InvalidStateError("Order", order.status, [OrderStatus.PENDING])
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom HTTP exceptions inherit from this class to get
    consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Order", 123)
        raise NotFoundError("Table", table_id, restaurant_id=restaurant_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class OrderNotFoundError(NotFoundError):
    """Order not found."""

    def __init__(self, order_id: int | str | None = None, **log_context: Any):
        super().__init__("Order", order_id, **log_context)


# =============================================================================
# 401 / 403 Errors
# =============================================================================


class AuthenticationError(AppException):
    """Missing or invalid credentials (401)."""

    def __init__(self, detail: str = "Invalid or missing token", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="warning",
            headers={"WWW-Authenticate": "Bearer"},
            **log_context,
        )


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("cancel orders")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not allowed to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


class RestaurantAccessError(ForbiddenError):
    """Staff member belongs to another restaurant."""

    def __init__(self, restaurant_id: int | None = None, **log_context: Any):
        super().__init__("access this restaurant", restaurant_id=restaurant_id, **log_context)


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Order must contain at least one item")
        raise ValidationError("Unknown modifier option", option="Extra cheese")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidOperationError(ValidationError):
    """The request is well formed but there is nothing to apply it to."""


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Table already has an open order")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidStateError(ConflictError):
    """Entity is in a state that does not allow the operation."""

    def __init__(
        self,
        entity: str,
        current_state: str,
        expected_states: list[str] | None = None,
        detail: str | None = None,
        **log_context: Any,
    ):
        if detail is None:
            if expected_states:
                states_str = ", ".join(expected_states)
                detail = f"{entity} is '{current_state}', expected: {states_str}"
            else:
                detail = f"{entity} cannot be '{current_state}' for this operation"

        super().__init__(detail, entity=entity, current_state=current_state, **log_context)


class InvalidTransitionError(InvalidStateError):
    """Status change not allowed by the lifecycle."""

    def __init__(
        self,
        entity: str,
        from_status: str,
        to_status: str,
        allowed: list[str] | None = None,
        **log_context: Any,
    ):
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        if allowed is not None:
            detail += f" (allowed: {', '.join(allowed) if allowed else 'none'})"
        super().__init__(entity, from_status, detail=detail, to_status=to_status, **log_context)


class AlreadyPaidError(InvalidStateError):
    """Order is already paid."""

    def __init__(self, order_id: int, **log_context: Any):
        super().__init__(
            "Order", "paid", detail=f"Order {order_id} is already paid",
            order_id=order_id, **log_context,
        )


class ConcurrencyError(ConflictError):
    """A concurrent request changed the same order or table first. Safe to retry."""

    def __init__(self, entity: str, entity_id: int | None = None, **log_context: Any):
        detail = f"{entity} was modified by another request, please retry"
        super().__init__(detail, entity=entity, entity_id=entity_id, **log_context)


# =============================================================================
# Payment provider errors (402 / 502 / 503)
# =============================================================================


class PaymentProviderError(AppException):
    """
    Card payment failure.

    - declined=True: the provider refused the payment (402)
    - is_unavailable=True: provider circuit open or timeout (503)
    - otherwise: provider returned an error (502)
    """

    def __init__(
        self,
        detail: str,
        declined: bool = False,
        is_unavailable: bool = False,
        retry_after: int | None = None,
        **log_context: Any,
    ):
        if declined:
            status_code = status.HTTP_402_PAYMENT_REQUIRED
        elif is_unavailable:
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        else:
            status_code = status.HTTP_502_BAD_GATEWAY

        headers = {"Retry-After": str(retry_after)} if retry_after else None

        super().__init__(
            status_code=status_code,
            detail=detail,
            log_level="warning" if declined else "error",
            headers=headers,
            **log_context,
        )
        self.declined = declined


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """Internal server error (500)."""

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


# =============================================================================
# Best-effort side effects
# =============================================================================


class DependencyError(Exception):
    """
    A best-effort side effect failed (popularity counters, notifications).

    Never turned into an HTTP response: callers catch and log it after the
    primary commit has already succeeded.
    """

    def __init__(self, dependency: str, error: str):
        self.dependency = dependency
        self.error = error
        super().__init__(f"{dependency}: {error}")
