"""
Listing Audit Package.

Deterministic quality audits of app-store listing text (title, subtitle,
description) against a layered, overridable rule set.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, dependencies and exceptions
    - models: Pydantic schemas, rule models and enums
    - services: Tokenizer, rule resolver, classifier, KPI / formula /
      recommendation engines, snapshots and the audit entry point
    - sql: Parameterized SQL for the PostgreSQL stores
"""

__version__ = "1.0.0"
