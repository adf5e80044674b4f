"""
Shared module for cross-cutting infrastructure of the order service.

STRUCTURE:
- shared.security: Staff authentication and rate limiting
  - auth.py: JWT verification, current_user_context, require_roles
  - rate_limit.py: slowapi limiter for public endpoints

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy sessions, safe_commit()
  - correlation.py: X-Request-ID middleware and log filter
  - events/: Redis pub/sub, event publishing

- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Roles, order/item/payment/table statuses

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Pydantic request/response schemas

IMPORT EXAMPLES:
    from shared.security.auth import current_user_context, require_roles
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import Roles, OrderStatus
    from shared.utils.exceptions import NotFoundError, InvalidStateError
"""
