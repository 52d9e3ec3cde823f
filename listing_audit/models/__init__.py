"""
Package initialization file for listing audit models.

This module exports all Pydantic schemas and enumerations from enums.py, rules.py
and schemas.py, making them importable from listing_audit.models directly.

Usage:
    from listing_audit.models import (
        AuditContext,
        ListingMetadata,
        MergedRuleSet,
        AuditResult,
        # ... etc
    )
"""

# =============================================================================
# Enums
# =============================================================================

from listing_audit.models.enums import (
    FieldSource,
    RuleLayerKind,
    LAYER_ORDER,
    ComboClassification,
    IntentLabel,
    MetricType,
    KpiDirection,
    FormulaType,
    Severity,
    SEVERITY_RANK,
    ComparisonOperator,
    DiagnosticCode,
    Platform,
)

# =============================================================================
# Rule Models
# =============================================================================

from listing_audit.models.rules import (
    IntentPattern,
    HookPattern,
    ResolvedIntentPattern,
    RecommendationTemplate,
    RuleLayer,
    AuditContext,
    RuleWarning,
    MergedRuleSet,
)

# =============================================================================
# Audit Artifact Schemas
# =============================================================================

from listing_audit.models.schemas import (
    # Input
    ListingMetadata,
    # Tokens and combos
    Token,
    Combo,
    Diagnostic,
    # Catalogue definitions
    KpiFamily,
    KpiDefinition,
    FormulaComponent,
    FormulaThreshold,
    FormulaDefinition,
    RecommendationRule,
    # Engine results
    KpiResult,
    FamilyScore,
    KpiEngineResult,
    FormulaEngineResult,
    Recommendation,
    # Coverage
    FieldComboCoverage,
    ComboCoverage,
    FieldIntentCoverage,
    IntentCoverage,
    HookCoverage,
    # Persistence
    VersionBundle,
    AuditResult,
    AuditSnapshot,
    AuditDiff,
)


__all__ = [
    # Enums
    "FieldSource",
    "RuleLayerKind",
    "LAYER_ORDER",
    "ComboClassification",
    "IntentLabel",
    "MetricType",
    "KpiDirection",
    "FormulaType",
    "Severity",
    "SEVERITY_RANK",
    "ComparisonOperator",
    "DiagnosticCode",
    "Platform",
    # Rules
    "IntentPattern",
    "HookPattern",
    "ResolvedIntentPattern",
    "RecommendationTemplate",
    "RuleLayer",
    "AuditContext",
    "RuleWarning",
    "MergedRuleSet",
    # Schemas
    "ListingMetadata",
    "Token",
    "Combo",
    "Diagnostic",
    "KpiFamily",
    "KpiDefinition",
    "FormulaComponent",
    "FormulaThreshold",
    "FormulaDefinition",
    "RecommendationRule",
    "KpiResult",
    "FamilyScore",
    "KpiEngineResult",
    "FormulaEngineResult",
    "Recommendation",
    "FieldComboCoverage",
    "ComboCoverage",
    "FieldIntentCoverage",
    "IntentCoverage",
    "HookCoverage",
    "VersionBundle",
    "AuditResult",
    "AuditSnapshot",
    "AuditDiff",
]
