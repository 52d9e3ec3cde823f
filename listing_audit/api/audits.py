"""
FastAPI router module for listing audits.

Implements POST /audits (run and snapshot an audit), GET /audits/{subject_id}
(snapshot history), GET /audits/{subject_id}/latest and
GET /audits/{subject_id}/diff.

The router is a thin wrapper around AuditService; all scoring happens in the
service layer.

Error mapping:
- RuleStoreError / SnapshotStoreError -> 503 (collaborator unavailable)
- RuleValidationError -> 500 (the base rule layer is invalid)
- missing snapshots -> 404
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, HTTPException, Query
from pydantic import BaseModel, Field

from listing_audit.core.dependencies import AuditServiceDep
from listing_audit.core.exceptions import RuleStoreError, RuleValidationError, SnapshotStoreError
from listing_audit.models.rules import AuditContext
from listing_audit.models.schemas import AuditDiff, AuditResult, AuditSnapshot, ListingMetadata
from listing_audit.services.snapshot import diff


# Configure logging
logger = logging.getLogger(__name__)


# =============================================================================
# Local Pydantic Models for API Requests and Responses
# =============================================================================

class AuditRequest(BaseModel):
    """Request model for running an audit."""
    metadata: ListingMetadata = Field(..., description="Listing text to audit")
    context: AuditContext = Field(
        default_factory=AuditContext,
        description="Vertical, market and client used to resolve rules"
    )


class AuditResponse(BaseModel):
    """Response model for the run audit endpoint."""
    result: AuditResult = Field(..., description="Full audit result")
    content_hash: Optional[str] = Field(
        default=None,
        description="Content hash of the stored snapshot"
    )
    deduplicated: bool = Field(
        default=False,
        description="True when the result matched the latest snapshot and was not appended"
    )


class AuditHistoryResponse(BaseModel):
    """Response model for the snapshot history endpoint."""
    subject_id: str
    snapshots: List[AuditSnapshot] = Field(default_factory=list)


# =============================================================================
# Router Definition
# =============================================================================

router = APIRouter()


# =============================================================================
# Endpoint Implementations
# =============================================================================


@router.post("", response_model=AuditResponse)
async def create_audit(
    service: AuditServiceDep,
    request: AuditRequest = Body(...),
) -> AuditResponse:
    """
    Audit a listing under the requested context and append a snapshot.

    Args:
        request: Listing metadata and audit context

    Returns:
        AuditResponse with the result and snapshot hash
    """
    try:
        result, record = await service.audit_and_snapshot(request.metadata, request.context)
    except (RuleStoreError, SnapshotStoreError) as e:
        logger.error(f"Audit of {request.metadata.subject_id} failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except RuleValidationError as e:
        logger.exception("Base rule layer is invalid")
        raise HTTPException(status_code=500, detail=f"Invalid base rule layer: {e}")

    return AuditResponse(
        result=result,
        content_hash=record.content_hash if record else None,
        deduplicated=record is not None and record.audit_timestamp != result.audit_timestamp,
    )


@router.get("/{subject_id}", response_model=AuditHistoryResponse)
async def list_audits(
    subject_id: str,
    service: AuditServiceDep,
    start: Optional[datetime] = Query(default=None, description="Inclusive lower timestamp bound"),
    end: Optional[datetime] = Query(default=None, description="Inclusive upper timestamp bound"),
) -> AuditHistoryResponse:
    """
    List snapshots for a subject in ascending timestamp order.
    """
    try:
        snapshots = await service.history(subject_id, start, end)
    except SnapshotStoreError as e:
        logger.error(f"Snapshot history for {subject_id} failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    return AuditHistoryResponse(subject_id=subject_id, snapshots=snapshots)


@router.get("/{subject_id}/latest", response_model=AuditSnapshot)
async def get_latest_audit(subject_id: str, service: AuditServiceDep) -> AuditSnapshot:
    """
    Get the most recent snapshot for a subject.

    Raises:
        HTTPException 404: No snapshot exists for the subject
    """
    try:
        latest = await service.latest(subject_id)
    except SnapshotStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if latest is None:
        raise HTTPException(status_code=404, detail=f"No audits for subject {subject_id}")
    return latest


@router.get("/{subject_id}/diff", response_model=AuditDiff)
async def get_audit_diff(
    subject_id: str,
    service: AuditServiceDep,
    from_timestamp: Optional[datetime] = Query(default=None, alias="from", description="Earlier snapshot timestamp"),
    to_timestamp: Optional[datetime] = Query(default=None, alias="to", description="Later snapshot timestamp"),
) -> AuditDiff:
    """
    Diff two snapshots of a subject.

    Without timestamps the two most recent snapshots are compared. With
    timestamps, snapshots must exist at exactly those instants.

    Raises:
        HTTPException 404: Fewer than two snapshots, or no snapshot at a given timestamp
    """
    try:
        snapshots = await service.history(subject_id)
    except SnapshotStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if from_timestamp is None and to_timestamp is None:
        if len(snapshots) < 2:
            raise HTTPException(status_code=404, detail=f"Subject {subject_id} has fewer than two audits")
        return diff(snapshots[-2], snapshots[-1])

    by_timestamp = {s.audit_timestamp: s for s in snapshots}
    before = by_timestamp.get(from_timestamp) if from_timestamp else (snapshots[-2] if len(snapshots) >= 2 else None)
    after = by_timestamp.get(to_timestamp) if to_timestamp else (snapshots[-1] if snapshots else None)
    if before is None or after is None:
        raise HTTPException(status_code=404, detail="Snapshot not found for the requested timestamps")
    return diff(before, after)
