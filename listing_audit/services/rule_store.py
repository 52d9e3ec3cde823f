"""
Rule Store Service

Read access to rule layers for the resolver. Two implementations:

- InMemoryRuleStore: process-local dict seeded from the default catalogue;
  used when DATABASE_URL is unset and throughout the tests.
- PostgresRuleStore: reads the `rule_layer` table through the shared asyncpg
  pool. Layer payloads are stored as JSONB and validated into RuleLayer models.

Both expose the same two coroutines:
- get_layer(kind, key) -> RuleLayer or None
- get_version(kind, key) -> version string or None

Store failures surface as RuleStoreError and are never swallowed; retry policy
belongs to the caller.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Iterable, Optional, Tuple

import asyncpg
from pydantic import ValidationError

from listing_audit.core.database import get_db_pool
from listing_audit.core.exceptions import RuleStoreError
from listing_audit.models.enums import RuleLayerKind
from listing_audit.models.rules import RuleLayer
from listing_audit.sql import (
    SELECT_RULE_LAYER,
    SELECT_RULE_LAYER_VERSION,
    UPSERT_RULE_LAYER,
)


logger = logging.getLogger(__name__)

LayerId = Tuple[RuleLayerKind, str]


class RuleStore(ABC):
    """Interface the resolver depends on."""

    @abstractmethod
    async def get_layer(self, kind: RuleLayerKind, key: str) -> Optional[RuleLayer]:
        ...

    @abstractmethod
    async def get_version(self, kind: RuleLayerKind, key: str) -> Optional[str]:
        ...


class InMemoryRuleStore(RuleStore):
    """Dict-backed rule store. `put_layer` replaces a layer and its version."""

    def __init__(self, layers: Optional[Iterable[RuleLayer]] = None):
        self._layers: Dict[LayerId, RuleLayer] = {}
        for layer in layers or ():
            self.put_layer(layer)

    def put_layer(self, layer: RuleLayer) -> None:
        self._layers[(layer.kind, layer.key)] = layer

    def delete_layer(self, kind: RuleLayerKind, key: str) -> None:
        self._layers.pop((kind, key), None)

    async def get_layer(self, kind: RuleLayerKind, key: str) -> Optional[RuleLayer]:
        return self._layers.get((kind, key))

    async def get_version(self, kind: RuleLayerKind, key: str) -> Optional[str]:
        layer = self._layers.get((kind, key))
        return layer.version if layer else None


class PostgresRuleStore(RuleStore):
    """
    Rule store backed by the `rule_layer` table.

    Args:
        pool_getter: Coroutine returning an asyncpg pool; defaults to the shared
            pool from listing_audit.core.database
    """

    def __init__(self, pool_getter: Optional[Callable[[], Awaitable[asyncpg.Pool]]] = None):
        if pool_getter is None:
            pool_getter = get_db_pool
        self._pool_getter = pool_getter

    async def _fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        try:
            pool = await self._pool_getter()
            async with pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Rule store read failed: {e}")
            raise RuleStoreError(f"Rule store read failed: {e}") from e

    async def get_layer(self, kind: RuleLayerKind, key: str) -> Optional[RuleLayer]:
        row = await self._fetchrow(SELECT_RULE_LAYER, kind.value, key)
        if row is None:
            return None
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        try:
            return RuleLayer.model_validate({
                **payload,
                "kind": kind,
                "key": key,
                "version": row["version"],
            })
        except ValidationError as e:
            raise RuleStoreError(f"Stored rule layer {kind.value}:{key} is malformed: {e}") from e

    async def get_version(self, kind: RuleLayerKind, key: str) -> Optional[str]:
        row = await self._fetchrow(SELECT_RULE_LAYER_VERSION, kind.value, key)
        return row["version"] if row else None

    async def put_layer(self, layer: RuleLayer) -> None:
        """Insert or replace a layer row."""
        payload = layer.model_dump(mode="json", exclude={"kind", "key", "version"})
        try:
            pool = await self._pool_getter()
            async with pool.acquire() as conn:
                await conn.execute(
                    UPSERT_RULE_LAYER,
                    layer.kind.value,
                    layer.key,
                    layer.version,
                    json.dumps(payload, sort_keys=True),
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise RuleStoreError(f"Rule store write failed: {e}") from e
        logger.info(f"Stored rule layer {layer.kind.value}:{layer.key}@{layer.version}")
