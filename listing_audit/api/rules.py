"""
FastAPI router module for rule resolution.

Implements POST /rules/resolve (inspect the merged rule set for a context) and
POST /rules/invalidate (evict cached rule sets after an out-of-band rule edit).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field

from listing_audit.core.dependencies import AuditServiceDep
from listing_audit.core.exceptions import RuleStoreError, RuleValidationError
from listing_audit.models.enums import RuleLayerKind
from listing_audit.models.rules import AuditContext, MergedRuleSet


logger = logging.getLogger(__name__)


class InvalidateRequest(BaseModel):
    """Request model for cache invalidation. An empty body evicts everything."""
    kind: Optional[RuleLayerKind] = Field(default=None, description="Layer kind to evict")
    key: Optional[str] = Field(default=None, description="Layer key; requires kind")


class InvalidateResponse(BaseModel):
    evicted: int = Field(..., ge=0, description="Number of evicted cache entries")
    cache_size: int = Field(..., ge=0, description="Entries remaining in the cache")


router = APIRouter()


@router.post("/resolve", response_model=MergedRuleSet)
async def resolve_rules(
    service: AuditServiceDep,
    context: Optional[AuditContext] = Body(default=None),
) -> MergedRuleSet:
    """
    Resolve and return the merged rule set for a context, including any
    warnings raised for dropped layer entries.
    """
    try:
        return await service.resolver.resolve(context or AuditContext())
    except RuleStoreError as e:
        logger.error(f"Rule resolution failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except RuleValidationError as e:
        logger.exception("Base rule layer is invalid")
        raise HTTPException(status_code=500, detail=f"Invalid base rule layer: {e}")


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate_rules(
    service: AuditServiceDep,
    request: Optional[InvalidateRequest] = Body(default=None),
) -> InvalidateResponse:
    """Evict cached rule sets for a layer (or all of them)."""
    request = request or InvalidateRequest()
    if request.key is not None and request.kind is None:
        raise HTTPException(status_code=422, detail="key requires kind")

    evicted = service.resolver.invalidate(request.kind, request.key)
    return InvalidateResponse(evicted=evicted, cache_size=service.resolver.cache_size)
