"""
Core infrastructure package for the listing audit service.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg (optional storage backend)
- Exception taxonomy shared by the services

FastAPI dependencies live in `listing_audit.core.dependencies`; they are not
re-exported here because they import the service layer.

Usage Examples:
    from listing_audit.core import get_settings, RuleStoreError

    settings = get_settings()
    print(settings.rule_cache_ttl_seconds)
"""

# =============================================================================
# Re-exports from listing_audit.core.config
# =============================================================================
from listing_audit.core.config import Settings, get_settings

# =============================================================================
# Re-exports from listing_audit.core.database
# =============================================================================
from listing_audit.core.database import init_db, close_db, get_db_pool, ensure_schema

# =============================================================================
# Re-exports from listing_audit.core.exceptions
# =============================================================================
from listing_audit.core.exceptions import (
    AuditError,
    RuleStoreError,
    RuleValidationError,
    SnapshotStoreError,
    SubjectMismatchError,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Database pool lifecycle (from database.py)
    'init_db',
    'close_db',
    'get_db_pool',
    'ensure_schema',
    # Exceptions (from exceptions.py)
    'AuditError',
    'RuleStoreError',
    'RuleValidationError',
    'SnapshotStoreError',
    'SubjectMismatchError',
]
