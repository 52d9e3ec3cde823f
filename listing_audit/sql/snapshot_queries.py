"""
Parameterized SQL for the append-only `audit_snapshot` table.

Rows are keyed by (subject_id, audit_timestamp). Inserting the same key twice is
a no-op (ON CONFLICT DO NOTHING), so a retried write stores the same bytes once.
"""

from datetime import datetime
from typing import List, Optional, Tuple


AUDIT_SNAPSHOT_DDL = """
CREATE TABLE IF NOT EXISTS audit_snapshot (
    subject_id       TEXT        NOT NULL,
    audit_timestamp  TIMESTAMPTZ NOT NULL,
    content_hash     TEXT        NOT NULL,
    rule_set_version TEXT        NOT NULL,
    overall_score    DOUBLE PRECISION NOT NULL,
    result           JSONB       NOT NULL,
    PRIMARY KEY (subject_id, audit_timestamp)
);
CREATE INDEX IF NOT EXISTS idx_audit_snapshot_hash
    ON audit_snapshot (subject_id, content_hash)
"""

INSERT_SNAPSHOT = """
INSERT INTO audit_snapshot (
    subject_id, audit_timestamp, content_hash, rule_set_version, overall_score, result
)
VALUES ($1, $2, $3, $4, $5, $6::jsonb)
ON CONFLICT (subject_id, audit_timestamp) DO NOTHING
"""

SELECT_LATEST_SNAPSHOT = """
SELECT subject_id, audit_timestamp, content_hash, result::text AS result
FROM audit_snapshot
WHERE subject_id = $1
ORDER BY audit_timestamp DESC
LIMIT 1
"""


def get_list_snapshots_query(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Tuple[str, List[object]]:
    """
    Build the snapshot listing query for one subject and an optional time range.

    Args:
        start: Inclusive lower bound on audit_timestamp
        end: Inclusive upper bound on audit_timestamp

    Returns:
        (query, extra_args) where the subject id is always $1 and the range
        bounds follow in order
    """
    conditions = ["subject_id = $1"]
    args: List[object] = []

    if start is not None:
        args.append(start)
        conditions.append(f"audit_timestamp >= ${len(args) + 1}")
    if end is not None:
        args.append(end)
        conditions.append(f"audit_timestamp <= ${len(args) + 1}")

    query = f"""
    SELECT subject_id, audit_timestamp, content_hash, result::text AS result
    FROM audit_snapshot
    WHERE {" AND ".join(conditions)}
    ORDER BY audit_timestamp ASC
    """
    return query, args
