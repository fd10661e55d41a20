"""
Core infrastructure for the quality scoring service.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg
- The error taxonomy and its FastAPI handlers
- FastAPI dependency injection (service container, admin check)

Dependencies are not re-exported here: they import the service layer,
which itself imports core.config and core.database.
"""

from suburbmates.core.config import Settings, get_settings
from suburbmates.core.database import close_db, get_db_pool, init_db
from suburbmates.core.exceptions import (
    AuthorizationError,
    InvalidRequestError,
    NoMatchingBusinessesError,
    NotFoundError,
    QualityScoringError,
    ResourceStateError,
    register_exception_handlers,
)

__all__ = [
    'Settings',
    'get_settings',
    'init_db',
    'close_db',
    'get_db_pool',
    'AuthorizationError',
    'InvalidRequestError',
    'NoMatchingBusinessesError',
    'NotFoundError',
    'QualityScoringError',
    'ResourceStateError',
    'register_exception_handlers',
]
