"""
Write transactions for the domain services.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import ConcurrencyError
from qrdine_api.services.events import OrderNotifier

# SQLSTATE unique_violation (PostgreSQL)
UNIQUE_VIOLATION = "23505"
SQLITE_UNIQUE = ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")


def is_unique_violation(error: IntegrityError) -> bool:
    """True for a duplicate key; False for check, not-null and foreign key failures."""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == UNIQUE_VIOLATION
    return getattr(orig, "sqlite_errorname", None) in SQLITE_UNIQUE


@contextmanager
def write_transaction(
    db: Session,
    notifier: OrderNotifier | None = None,
    entity: str = "Order",
    entity_id: int | None = None,
) -> Iterator[None]:
    """
    Run a block of writes and commit it once at the end.

    A lost race (stale version or the one-open-order-per-table index) becomes
    ConcurrencyError. Other integrity errors are bugs and propagate as they
    are. Any failure rolls back and drops the notifications queued by the
    block.

    Usage:
        with write_transaction(db, self.notifier, entity_id=order_id):
            order = ...
            order.status = OrderStatus.ACCEPTED
    """
    try:
        yield
        safe_commit(db)
    except StaleDataError as e:
        _abort(db, notifier)
        raise ConcurrencyError(entity, entity_id, error=str(e)) from e
    except IntegrityError as e:
        _abort(db, notifier)
        if is_unique_violation(e):
            raise ConcurrencyError(entity, entity_id, error=str(e.orig)) from e
        raise
    except Exception:
        _abort(db, notifier)
        raise


def _abort(db: Session, notifier: OrderNotifier | None) -> None:
    db.rollback()
    if notifier is not None:
        notifier.clear()
