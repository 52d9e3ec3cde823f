"""
Listing Audit Services Module

Business logic of the audit engine. Every service except the stores and the
resolver cache is a pure function of its explicit inputs plus the merged rule set.

Services:
- tokenizer: locale-aware normalization, tokens and 1-3 token combos
- rule_store / default_rules: rule layer storage and the default catalogue
- rule_resolver: four-tier override merge with a TTL, single-flight cache
- classifier: token relevance, combo classification, intent and hooks
- kpi_registry / kpi_engine: KPI catalogue, calculators and scoring
- formula_engine: declarative element and composite formulas
- recommendation_engine: severity-ranked, templated recommendations
- coverage: combo, intent and hook coverage breakdowns
- snapshot: content hashing, snapshot stores and diffs
- audit: the run_audit entry point
"""

# =============================================================================
# Tokenizer
# =============================================================================

from listing_audit.services.tokenizer import (
    TOKENIZER_VERSION,
    generate_combos,
    normalize_text,
    tokenize,
    tokenize_listing,
)

# =============================================================================
# Rules
# =============================================================================

from listing_audit.services.default_rules import BASE_LAYER_KEY, default_layers
from listing_audit.services.rule_store import InMemoryRuleStore, PostgresRuleStore, RuleStore
from listing_audit.services.rule_resolver import RuleResolver, merge_rule_layers

# =============================================================================
# Scoring
# =============================================================================

from listing_audit.services.classifier import Classifier, classify
from listing_audit.services.kpi_registry import (
    KPI_DEFINITIONS,
    KPI_ENGINE_VERSION,
    KPI_FAMILIES,
    build_primitives,
    register_kpi,
)
from listing_audit.services.kpi_engine import KpiEngine
from listing_audit.services.formula_engine import (
    FORMULA_DEFINITIONS,
    FormulaEngine,
    register_custom_formula,
)
from listing_audit.services.recommendation_engine import (
    DEFAULT_RECOMMENDATION_RULES,
    RecommendationEngine,
)
from listing_audit.services.coverage import combo_coverage, hook_coverage, intent_coverage

# =============================================================================
# Snapshots and Entry Point
# =============================================================================

from listing_audit.services.snapshot import (
    InMemorySnapshotStore,
    PostgresSnapshotStore,
    SnapshotStore,
    content_hash,
    diff,
    snapshot,
)
from listing_audit.services.audit import AuditService, build_default_service


__all__ = [
    # Tokenizer
    "TOKENIZER_VERSION",
    "generate_combos",
    "normalize_text",
    "tokenize",
    "tokenize_listing",
    # Rules
    "BASE_LAYER_KEY",
    "default_layers",
    "RuleStore",
    "InMemoryRuleStore",
    "PostgresRuleStore",
    "RuleResolver",
    "merge_rule_layers",
    # Scoring
    "Classifier",
    "classify",
    "KPI_DEFINITIONS",
    "KPI_ENGINE_VERSION",
    "KPI_FAMILIES",
    "build_primitives",
    "register_kpi",
    "KpiEngine",
    "FORMULA_DEFINITIONS",
    "FormulaEngine",
    "register_custom_formula",
    "DEFAULT_RECOMMENDATION_RULES",
    "RecommendationEngine",
    "combo_coverage",
    "hook_coverage",
    "intent_coverage",
    # Snapshots and entry point
    "SnapshotStore",
    "InMemorySnapshotStore",
    "PostgresSnapshotStore",
    "content_hash",
    "diff",
    "snapshot",
    "AuditService",
    "build_default_service",
]
