"""
SQL Query Module for the listing audit service.

Provides DDL and parameterized queries for:
- Rule layers (rule_queries)
- Append-only audit snapshots (snapshot_queries)

Follows Repository Pattern for clean separation between business logic and data
access: the asyncpg-backed stores import their statements from here.

Example usage:
    from listing_audit.sql import SCHEMA_DDL, get_list_snapshots_query

    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_DDL)
"""

# =============================================================================
# RULE LAYER QUERIES
# =============================================================================

from listing_audit.sql.rule_queries import (
    RULE_LAYER_DDL,
    SELECT_RULE_LAYER,
    SELECT_RULE_LAYER_VERSION,
    UPSERT_RULE_LAYER,
)

# =============================================================================
# SNAPSHOT QUERIES
# =============================================================================

from listing_audit.sql.snapshot_queries import (
    AUDIT_SNAPSHOT_DDL,
    INSERT_SNAPSHOT,
    SELECT_LATEST_SNAPSHOT,
    get_list_snapshots_query,
)


SCHEMA_DDL = RULE_LAYER_DDL + ";\n" + AUDIT_SNAPSHOT_DDL


__all__ = [
    "RULE_LAYER_DDL",
    "SELECT_RULE_LAYER",
    "SELECT_RULE_LAYER_VERSION",
    "UPSERT_RULE_LAYER",
    "AUDIT_SNAPSHOT_DDL",
    "INSERT_SNAPSHOT",
    "SELECT_LATEST_SNAPSHOT",
    "get_list_snapshots_query",
    "SCHEMA_DDL",
]
