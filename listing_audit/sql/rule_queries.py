"""
Parameterized SQL for the `rule_layer` table.

One row per (kind, layer_key). The payload column holds every override section
of a RuleLayer as JSONB; `version` is bumped by whoever edits the row and is
what the resolver compares to invalidate cached merged rule sets.
"""


RULE_LAYER_DDL = """
CREATE TABLE IF NOT EXISTS rule_layer (
    kind        TEXT        NOT NULL CHECK (kind IN ('base', 'vertical', 'market', 'client')),
    layer_key   TEXT        NOT NULL,
    version     TEXT        NOT NULL,
    payload     JSONB       NOT NULL DEFAULT '{}'::jsonb,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (kind, layer_key)
)
"""

SELECT_RULE_LAYER = """
SELECT version, payload::text AS payload
FROM rule_layer
WHERE kind = $1 AND layer_key = $2
"""

SELECT_RULE_LAYER_VERSION = """
SELECT version
FROM rule_layer
WHERE kind = $1 AND layer_key = $2
"""

UPSERT_RULE_LAYER = """
INSERT INTO rule_layer (kind, layer_key, version, payload, updated_at)
VALUES ($1, $2, $3, $4::jsonb, now())
ON CONFLICT (kind, layer_key)
DO UPDATE SET version = EXCLUDED.version,
              payload = EXCLUDED.payload,
              updated_at = now()
"""
