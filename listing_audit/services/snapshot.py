"""
Snapshot and Diff Service

Persists AuditResults as append-only snapshots and computes deltas between two
snapshots of the same subject.

Hashes:
- content_hash: SHA-256 of the canonical JSON of the result without its
  timestamp. Two audits of identical input under identical rule versions share a
  content hash, which is what snapshot deduplication compares.
- metadata_hash: SHA-256 of "title|subtitle|description|category|locale",
  carried in the result's version bundle.

Snapshot stores:
- InMemorySnapshotStore: serialized JSON per (subject_id, audit_timestamp)
- PostgresSnapshotStore: the `audit_snapshot` table via asyncpg

Writes for an existing (subject_id, audit_timestamp) are idempotent: the same
content is a no-op, different content is a SnapshotStoreError.
"""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Union

import asyncpg

from listing_audit.core.database import get_db_pool
from listing_audit.core.exceptions import SnapshotStoreError, SubjectMismatchError
from listing_audit.models.schemas import (
    AuditDiff,
    AuditResult,
    AuditSnapshot,
    ListingMetadata,
)
from listing_audit.sql import (
    INSERT_SNAPSHOT,
    SELECT_LATEST_SNAPSHOT,
    get_list_snapshots_query,
)


logger = logging.getLogger(__name__)

DELTA_PRECISION = 4


# =============================================================================
# Hashing
# =============================================================================


def canonical_json(data) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_hash(result: AuditResult) -> str:
    return hashlib.sha256(canonical_json(result.canonical_payload()).encode("utf-8")).hexdigest()


def metadata_hash(metadata: ListingMetadata) -> str:
    # JSON array encoding keeps field boundaries unambiguous
    parts = [
        metadata.title,
        metadata.subtitle,
        metadata.description,
        metadata.category or "",
        metadata.locale or "",
    ]
    return hashlib.sha256(canonical_json(parts).encode("utf-8")).hexdigest()


def make_snapshot(result: AuditResult) -> AuditSnapshot:
    return AuditSnapshot(
        subject_id=result.subject_id,
        audit_timestamp=result.audit_timestamp,
        content_hash=content_hash(result),
        result=result,
    )


# =============================================================================
# Stores
# =============================================================================


class SnapshotStore(ABC):
    """Append-only snapshot storage."""

    @abstractmethod
    async def put(self, snapshot: AuditSnapshot) -> bool:
        """Append a snapshot. Returns False when the identical record already exists."""

    @abstractmethod
    async def get_latest(self, subject_id: str) -> Optional[AuditSnapshot]:
        ...

    @abstractmethod
    async def list(
        self,
        subject_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AuditSnapshot]:
        """Snapshots for a subject in ascending timestamp order, bounds inclusive."""


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self):
        self._records: Dict[str, Dict[datetime, str]] = {}

    async def put(self, snapshot: AuditSnapshot) -> bool:
        records = self._records.setdefault(snapshot.subject_id, {})
        payload = snapshot.model_dump_json()
        existing = records.get(snapshot.audit_timestamp)
        if existing is not None:
            if existing == payload:
                return False
            raise SnapshotStoreError(
                f"Conflicting snapshot for {snapshot.subject_id} at {snapshot.audit_timestamp.isoformat()}"
            )
        records[snapshot.audit_timestamp] = payload
        return True

    async def get_latest(self, subject_id: str) -> Optional[AuditSnapshot]:
        records = self._records.get(subject_id)
        if not records:
            return None
        return AuditSnapshot.model_validate_json(records[max(records)])

    async def list(
        self,
        subject_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AuditSnapshot]:
        records = self._records.get(subject_id, {})
        return [
            AuditSnapshot.model_validate_json(records[ts])
            for ts in sorted(records)
            if (start is None or ts >= start) and (end is None or ts <= end)
        ]


class PostgresSnapshotStore(SnapshotStore):
    """Snapshot store backed by the `audit_snapshot` table."""

    def __init__(self, pool_getter: Optional[Callable[[], Awaitable[asyncpg.Pool]]] = None):
        self._pool_getter = pool_getter or get_db_pool

    @staticmethod
    def _from_row(row) -> AuditSnapshot:
        return AuditSnapshot(
            subject_id=row["subject_id"],
            audit_timestamp=row["audit_timestamp"],
            content_hash=row["content_hash"],
            result=AuditResult.model_validate_json(row["result"]),
        )

    async def put(self, snapshot: AuditSnapshot) -> bool:
        try:
            pool = await self._pool_getter()
            async with pool.acquire() as conn:
                status = await conn.execute(
                    INSERT_SNAPSHOT,
                    snapshot.subject_id,
                    snapshot.audit_timestamp,
                    snapshot.content_hash,
                    snapshot.result.version.rule_set_version,
                    snapshot.result.overall_score,
                    snapshot.result.model_dump_json(),
                )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Snapshot write failed for {snapshot.subject_id}: {e}")
            raise SnapshotStoreError(f"Snapshot write failed: {e}") from e
        # asyncpg status string: 'INSERT 0 <rows>'
        return status.split()[-1] != "0"

    async def get_latest(self, subject_id: str) -> Optional[AuditSnapshot]:
        try:
            pool = await self._pool_getter()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(SELECT_LATEST_SNAPSHOT, subject_id)
        except (asyncpg.PostgresError, OSError) as e:
            raise SnapshotStoreError(f"Snapshot read failed: {e}") from e
        return self._from_row(row) if row else None

    async def list(
        self,
        subject_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AuditSnapshot]:
        query, args = get_list_snapshots_query(start, end)
        try:
            pool = await self._pool_getter()
            async with pool.acquire() as conn:
                rows = await conn.fetch(query, subject_id, *args)
        except (asyncpg.PostgresError, OSError) as e:
            raise SnapshotStoreError(f"Snapshot read failed: {e}") from e
        return [self._from_row(row) for row in rows]


async def snapshot(result: AuditResult, store: SnapshotStore, dedup: bool = True) -> AuditSnapshot:
    """
    Hash and append an AuditResult.

    With dedup enabled, a result whose content hash equals the subject's latest
    snapshot is not appended and the latest snapshot is returned instead.
    """
    record = make_snapshot(result)
    if dedup:
        latest = await store.get_latest(result.subject_id)
        if latest is not None and latest.content_hash == record.content_hash:
            logger.debug(f"Snapshot for {result.subject_id} unchanged ({record.content_hash[:12]}); skipped")
            return latest
    await store.put(record)
    logger.info(f"Stored snapshot for {result.subject_id} at {result.audit_timestamp.isoformat()}")
    return record


# =============================================================================
# Diff
# =============================================================================


def _delta(after: float, before: float) -> float:
    return round(after - before, DELTA_PRECISION)


def _deltas(before: Dict[str, float], after: Dict[str, float]) -> Dict[str, float]:
    return {key: _delta(after.get(key, 0.0), before.get(key, 0.0)) for key in sorted(set(before) | set(after))}


def diff(
    a: Union[AuditSnapshot, AuditResult],
    b: Union[AuditSnapshot, AuditResult],
) -> AuditDiff:
    """
    Compute B - A for two audits of the same subject.

    Raises:
        SubjectMismatchError: the audits belong to different subjects
    """
    before = a.result if isinstance(a, AuditSnapshot) else a
    after = b.result if isinstance(b, AuditSnapshot) else b
    if before.subject_id != after.subject_id:
        raise SubjectMismatchError(
            f"Cannot diff subject {before.subject_id!r} against {after.subject_id!r}"
        )

    before_combos, after_combos = set(before.combo_texts), set(after.combo_texts)
    before_keywords, after_keywords = set(before.keywords), set(after.keywords)

    return AuditDiff(
        subject_id=before.subject_id,
        from_timestamp=before.audit_timestamp,
        to_timestamp=after.audit_timestamp,
        title_changed=before.metadata.title != after.metadata.title,
        subtitle_changed=before.metadata.subtitle != after.metadata.subtitle,
        description_changed=before.metadata.description != after.metadata.description,
        rule_set_changed=before.version.rule_set_version != after.version.rule_set_version,
        overall_delta=_delta(after.overall_score, before.overall_score),
        family_deltas=_deltas(before.family_scores, after.family_scores),
        formula_deltas=_deltas(before.formulas, after.formulas),
        kpi_deltas=_deltas(
            {k: v.normalized for k, v in before.kpis.items()},
            {k: v.normalized for k, v in after.kpis.items()},
        ),
        combos_added=sorted(after_combos - before_combos),
        combos_removed=sorted(before_combos - after_combos),
        keywords_added=sorted(after_keywords - before_keywords),
        keywords_removed=sorted(before_keywords - after_keywords),
    )
