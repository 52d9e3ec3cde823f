"""
Audit Service

Entry point of the listing audit engine. `AuditService.run_audit` resolves the
merged rule set for the context and runs the pipeline:

1. Tokenize title, subtitle and description
2. Generate 1-3 token combos per field
3. Score token relevance and classify combos (brand / generic / low-value,
   intent, hooks, strategic value)
4. Evaluate the KPI catalogue, family scores and overall score
5. Evaluate formulas (element scores, composite dimensions)
6. Generate severity-ranked recommendations
7. Package an immutable AuditResult with its version bundle
8. Append a snapshot when a snapshot store is configured

Steps 1-7 are a pure function of (metadata, context, merged rule set); the
timestamp is the only non-deterministic field. Rule-store and snapshot-store
failures propagate to the caller. Everything else degrades into diagnostics.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from listing_audit.core.config import Settings, get_settings
from listing_audit.models.enums import DiagnosticCode, RuleLayerKind
from listing_audit.models.rules import AuditContext, MergedRuleSet
from listing_audit.models.schemas import (
    AuditDiff,
    AuditResult,
    AuditSnapshot,
    Diagnostic,
    ListingMetadata,
    VersionBundle,
)
from listing_audit.services.classifier import classify
from listing_audit.services.coverage import combo_coverage, hook_coverage, intent_coverage
from listing_audit.services.default_rules import BASE_LAYER_KEY, default_layers
from listing_audit.services.formula_engine import ELEMENT_FORMULAS, FormulaEngine
from listing_audit.services.kpi_engine import KpiEngine
from listing_audit.services.kpi_registry import KPI_ENGINE_VERSION, build_primitives
from listing_audit.services.recommendation_engine import RecommendationEngine
from listing_audit.services.rule_resolver import RuleResolver
from listing_audit.services.rule_store import InMemoryRuleStore, PostgresRuleStore, RuleStore
from listing_audit.services.snapshot import (
    InMemorySnapshotStore,
    PostgresSnapshotStore,
    SnapshotStore,
    diff,
    metadata_hash,
    snapshot,
)
from listing_audit.services.tokenizer import TOKENIZER_VERSION, generate_combos, tokenize_listing


logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _warning_diagnostics(rule_set: MergedRuleSet) -> List[Diagnostic]:
    return [
        Diagnostic(
            code=DiagnosticCode.RULE_WARNING,
            component=f"{w.layer.value}:{w.layer_key}",
            message=f"{w.key}: {w.message}",
        )
        for w in rule_set.warnings
    ]


class AuditService:
    """
    Runs audits against a rule resolver and an optional snapshot store.

    Engines are built once; they hold only the static catalogues, so a single
    service instance can serve concurrent audits.
    """

    def __init__(
        self,
        resolver: RuleResolver,
        snapshot_store: Optional[SnapshotStore] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        kpi_engine: Optional[KpiEngine] = None,
        formula_engine: Optional[FormulaEngine] = None,
        recommendation_engine: Optional[RecommendationEngine] = None,
    ):
        self.resolver = resolver
        self.snapshot_store = snapshot_store
        self.settings = settings or get_settings()
        self._clock = clock
        self.kpi_engine = kpi_engine or KpiEngine()
        self.formula_engine = formula_engine or FormulaEngine()
        self.recommendation_engine = recommendation_engine or RecommendationEngine()

    # -------------------------------------------------------------------------
    # Pure pipeline
    # -------------------------------------------------------------------------

    def audit_with_rules(
        self,
        metadata: ListingMetadata,
        context: AuditContext,
        rule_set: MergedRuleSet,
        audit_timestamp: datetime,
    ) -> AuditResult:
        """Run the audit pipeline against an already-resolved rule set."""
        locale = metadata.locale or self.settings.default_locale

        tokens = tokenize_listing(metadata, locale)
        combos = generate_combos(tokens, stopwords=rule_set.stopwords)
        scored_tokens, classified = classify(
            tokens, combos, rule_set, brand_name=metadata.brand_name, locale=locale
        )

        primitives = build_primitives(
            metadata,
            scored_tokens,
            classified,
            rule_set,
            self.settings.char_limits(metadata.platform),
        )
        kpi_result = self.kpi_engine.evaluate(primitives, rule_set)
        formula_result = self.formula_engine.evaluate(kpi_result, primitives, rule_set)
        recommendations, recommendation_diagnostics = self.recommendation_engine.generate(
            kpi_result, formula_result, rule_set
        )

        diagnostics = (
            _warning_diagnostics(rule_set)
            + list(kpi_result.diagnostics)
            + list(formula_result.diagnostics)
            + recommendation_diagnostics
        )

        return AuditResult(
            subject_id=metadata.subject_id,
            audit_timestamp=audit_timestamp,
            metadata=metadata,
            context=context,
            element_scores={
                element: formula_result.values.get(formula_id, 0.0)
                for element, formula_id in ELEMENT_FORMULAS.items()
            },
            kpis=kpi_result.kpis,
            family_scores={family_id: f.score for family_id, f in kpi_result.families.items()},
            overall_score=kpi_result.overall,
            formulas=formula_result.values,
            tokens=scored_tokens,
            combos=classified,
            combo_coverage=combo_coverage(classified),
            intent_coverage=intent_coverage(classified),
            hook_coverage=hook_coverage(classified),
            recommendations=recommendations,
            version=VersionBundle(
                rule_set_version=rule_set.version,
                tokenizer_version=TOKENIZER_VERSION,
                kpi_engine_version=KPI_ENGINE_VERSION,
                metadata_hash=metadata_hash(metadata),
            ),
            diagnostics=diagnostics,
        )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def audit_and_snapshot(
        self,
        metadata: ListingMetadata,
        context: Optional[AuditContext] = None,
    ) -> Tuple[AuditResult, Optional[AuditSnapshot]]:
        """
        Audit a listing and persist it.

        Returns:
            (result, snapshot). The snapshot is None without a snapshot store and
            is the previous snapshot when deduplication skipped the write.

        Raises:
            RuleStoreError: the rule store failed or has no base layer
            SnapshotStoreError: the snapshot write failed
        """
        context = context or AuditContext()
        rule_set = await self.resolver.resolve(context)
        result = self.audit_with_rules(metadata, context, rule_set, self._clock())

        record = None
        if self.snapshot_store is not None:
            record = await snapshot(result, self.snapshot_store, dedup=self.settings.snapshot_dedup_enabled)

        logger.info(
            f"Audited {metadata.subject_id} under {rule_set.version}: "
            f"overall={result.overall_score}, recommendations={len(result.recommendations)}, "
            f"diagnostics={len(result.diagnostics)}"
        )
        return result, record

    async def run_audit(self, metadata: ListingMetadata, context: Optional[AuditContext] = None) -> AuditResult:
        result, _ = await self.audit_and_snapshot(metadata, context)
        return result

    async def latest(self, subject_id: str) -> Optional[AuditSnapshot]:
        if self.snapshot_store is None:
            return None
        return await self.snapshot_store.get_latest(subject_id)

    async def history(
        self,
        subject_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AuditSnapshot]:
        if self.snapshot_store is None:
            return []
        return await self.snapshot_store.list(subject_id, start, end)

    async def diff_latest(self, subject_id: str) -> Optional[AuditDiff]:
        """Diff between the two most recent snapshots, or None with fewer than two."""
        snapshots = await self.history(subject_id)
        if len(snapshots) < 2:
            return None
        return diff(snapshots[-2], snapshots[-1])


# =============================================================================
# Wiring
# =============================================================================


async def seed_rule_store(store: PostgresRuleStore) -> int:
    """Insert the default rule catalogue when the store has no base layer."""
    if await store.get_version(RuleLayerKind.BASE, BASE_LAYER_KEY) is not None:
        return 0
    layers = default_layers()
    for layer in layers:
        await store.put_layer(layer)
    logger.info(f"Seeded {len(layers)} default rule layers")
    return len(layers)


def build_default_service(settings: Optional[Settings] = None) -> AuditService:
    """
    Build an AuditService for the configured storage.

    With DATABASE_URL set both stores are PostgreSQL-backed; otherwise the
    default rule catalogue is served from memory and snapshots live in process.
    """
    settings = settings or get_settings()
    rule_store: RuleStore
    snapshot_store: SnapshotStore
    if settings.database_url:
        rule_store = PostgresRuleStore()
        snapshot_store = PostgresSnapshotStore()
    else:
        rule_store = InMemoryRuleStore(default_layers())
        snapshot_store = InMemorySnapshotStore()

    resolver = RuleResolver(rule_store, ttl_seconds=settings.rule_cache_ttl_seconds)
    return AuditService(resolver, snapshot_store=snapshot_store, settings=settings)
