"""
Shared module for cross-cutting concerns of the POS engine.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Statuses, limits, transition tables

- shared.infrastructure: Local storage and resilience
  - db.py: SQLAlchemy engine and sessions for the local store
  - retry.py: Exponential backoff with jitter

- shared.utils: Utilities
  - exceptions.py: Domain exceptions with auto-logging
  - money.py: Decimal rounding helpers

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.constants import EscalationStatus, Limits
    from shared.config.logging import get_logger
    from shared.infrastructure.db import get_engine, create_session_factory
    from shared.utils.exceptions import ValidationError, AuthorityError
    from shared.utils.money import to_money
"""
