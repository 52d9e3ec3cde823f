"""
API package initialization.

This package contains FastAPI router modules for the listing audit service:
- audits: Run audits, snapshot history, latest snapshot and diffs
- rules: Merged rule-set inspection and cache invalidation
"""

from fastapi import APIRouter

# Import router modules
from listing_audit.api.audits import router as audits_router
from listing_audit.api.rules import router as rules_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(audits_router, prefix="/audits", tags=["audits"])
api_router.include_router(rules_router, prefix="/rules", tags=["rules"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "audits_router",
    "rules_router",
]
