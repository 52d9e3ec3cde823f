"""
Pydantic models for the listing audit engine.

This module provides type-safe, immutable value objects for every artifact the
audit pipeline produces: tokens and combos, KPI and formula results, coverage
breakdowns, recommendations, and the AuditResult / AuditSnapshot / AuditDiff
records persisted by the snapshot layer. It also holds the static catalogue
definitions (KPI families, KPI definitions, formula definitions, recommendation
rules) validated at load time.

All artifact models are frozen. Serializing an AuditResult with
`model_dump(mode="json")` yields plain JSON-compatible data whose key order is
fixed by field declaration order, which keeps content hashes stable.

All models use Pydantic v2 syntax with proper field validation and examples.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from listing_audit.models.enums import (
    ComboClassification,
    ComparisonOperator,
    DiagnosticCode,
    FieldSource,
    FormulaType,
    KpiDirection,
    MetricType,
    Platform,
    RuleLayerKind,
    Severity,
)
from listing_audit.models.rules import AuditContext


# =============================================================================
# Entry-Point Input
# =============================================================================


class ListingMetadata(BaseModel):
    """
    Raw listing text for one subject, as supplied by the metadata provider.

    The core performs no fetching; this is a plain value object.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "subject_id": "app-1234",
                "title": "Learn Spanish Fast",
                "subtitle": "Speak fluently in 30 days",
                "description": "Practice daily lessons and master Spanish grammar.",
                "category": "education",
                "locale": "en-US",
                "brand_name": "Lingo",
            }
        }
    )

    subject_id: str = Field(..., min_length=1, description="Stable identifier of the audited listing")
    title: str = Field(default="", description="App name / title")
    subtitle: str = Field(default="", description="Subtitle or short description")
    description: str = Field(default="", description="Long description")
    category: Optional[str] = Field(default=None, description="Store category")
    locale: Optional[str] = Field(default=None, description="BCP-47 locale, e.g. 'en-US'")
    brand_name: Optional[str] = Field(default=None, description="Brand name, added to brand vocabulary")
    platform: Optional[Platform] = Field(default=None, description="Store platform; falls back to the configured default")

    @field_validator("title", "subtitle", "description", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Providers may send null for missing text; treat it as empty."""
        return "" if v is None else v


# =============================================================================
# Token and Combo Models
# =============================================================================


class Token(BaseModel):
    """
    A normalized token from one listing field.

    `relevance` is None as produced by the tokenizer and set (0-3) by the classifier.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    source: FieldSource
    position: int = Field(..., ge=0, description="Index within its source field")
    relevance: Optional[int] = Field(default=None, ge=0, le=3)


class Combo(BaseModel):
    """A contiguous 1-3 token n-gram from a single field."""
    model_config = ConfigDict(frozen=True)

    text: str
    length: int = Field(..., ge=1, le=3)
    source: FieldSource
    position: int = Field(..., ge=0, description="Position of the first token")
    tokens: List[str]
    classification: Optional[ComboClassification] = None
    intent: Optional[str] = Field(default=None, description="Dominant intent label")
    intent_category: Optional[str] = Field(default=None, description="Sub-label of the matched intent pattern")
    hooks: List[str] = Field(default_factory=list, description="All matching hook labels, sorted")
    strategic_value: float = Field(default=0.0, ge=0.0, le=100.0)


# =============================================================================
# Diagnostics
# =============================================================================


class Diagnostic(BaseModel):
    """A non-fatal condition recorded while computing an audit."""
    model_config = ConfigDict(frozen=True)

    code: DiagnosticCode
    severity: str = Field(default="warning", description="'warning' or 'info'")
    component: str = Field(..., description="Component or metric id that raised the condition")
    message: str


# =============================================================================
# Catalogue Definitions
# =============================================================================


class KpiFamily(BaseModel):
    """A weighted group of KPIs. Weights across all families sum to 1.0."""
    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    weight: float = Field(..., ge=0.0, le=1.0)


class KpiDefinition(BaseModel):
    """
    Static definition of one KPI.

    Raw values are clamped to [min_value, max_value] before normalization.
    target_range KPIs require target_value and a positive target_tolerance.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    family_id: str
    label: str = ""
    weight: float = Field(..., ge=0.0, le=1.0, description="Weight relative to the family")
    metric_type: MetricType
    direction: KpiDirection
    min_value: float = 0.0
    max_value: float = 1.0
    target_value: Optional[float] = None
    target_tolerance: Optional[float] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "KpiDefinition":
        if self.max_value < self.min_value:
            raise ValueError(f"KPI {self.id}: max_value must be >= min_value")
        if self.direction == KpiDirection.TARGET_RANGE:
            if self.target_value is None or not self.target_tolerance or self.target_tolerance <= 0:
                raise ValueError(f"KPI {self.id}: target_range requires target_value and positive target_tolerance")
        return self


class FormulaComponent(BaseModel):
    model_config = ConfigDict(frozen=True)

    ref: str = Field(..., description="kpi:<id>, kpi_raw:<id>, family:<id>, formula:<id>, primitive:<name> or overall")
    weight: float = Field(default=1.0, ge=0.0)


class FormulaThreshold(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    score: float = Field(..., ge=0.0, le=100.0)


class FormulaDefinition(BaseModel):
    """
    Declarative formula.

    - weighted_sum: sum(value * weight) / sum(weight) over components
    - ratio: first component / second component, times 100; zero denominator gives 0
    - composite: weighted_sum restricted to formula:<id> components
    - threshold_based: score of the highest threshold met by the single component
    - custom: registered function `custom_function` called with component values
    """
    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    type: FormulaType
    components: List[FormulaComponent] = Field(default_factory=list)
    thresholds: Optional[List[FormulaThreshold]] = None
    custom_function: Optional[str] = None


class RecommendationRule(BaseModel):
    """A (condition, severity, template) triple evaluated against KPI or formula values."""
    model_config = ConfigDict(frozen=True)

    id: str
    metric: str = Field(..., description="kpi:<id>, family:<id>, formula:<id> or overall")
    operator: ComparisonOperator
    threshold: float
    severity: Severity
    template_id: str


# =============================================================================
# Engine Results
# =============================================================================


class KpiResult(BaseModel):
    """Computed value of one KPI together with the weight provenance."""
    model_config = ConfigDict(frozen=True)

    id: str
    family_id: str
    raw_value: float
    normalized: float = Field(..., ge=0.0, le=100.0)
    base_weight: float
    multiplier: float = 1.0
    multiplier_source: Optional[RuleLayerKind] = None
    effective_weight: float
    degraded: bool = False


class FamilyScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    weight: float
    score: float
    kpi_ids: List[str] = Field(default_factory=list)


class KpiEngineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    kpis: Dict[str, KpiResult] = Field(default_factory=dict)
    families: Dict[str, FamilyScore] = Field(default_factory=dict)
    overall: float = 0.0
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class FormulaEngineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    values: Dict[str, float] = Field(default_factory=dict)
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class Recommendation(BaseModel):
    """A triggered, rendered recommendation."""
    model_config = ConfigDict(frozen=True)

    rule_id: str
    template_id: str
    severity: Severity
    metric: str
    value: float
    threshold: float
    message: str


# =============================================================================
# Coverage Breakdowns
# =============================================================================


class FieldComboCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    generic: int = 0
    brand: int = 0
    low_value: int = 0


class ComboCoverage(BaseModel):
    """Combo counts per field, plus subtitle combos not already present in the title."""
    model_config = ConfigDict(frozen=True)

    fields: Dict[str, FieldComboCoverage] = Field(default_factory=dict)
    subtitle_incremental: List[str] = Field(default_factory=list)
    total_unique: int = 0


class FieldIntentCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    counts: Dict[str, int] = Field(default_factory=dict)
    score: float = 0.0


class IntentCoverage(BaseModel):
    """Intent distribution per field; overall score weights title 0.6 and subtitle 0.4."""
    model_config = ConfigDict(frozen=True)

    fields: Dict[str, FieldIntentCoverage] = Field(default_factory=dict)
    score: float = 0.0


class HookCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    labels: Dict[str, List[str]] = Field(default_factory=dict, description="Distinct hook labels per field")
    counts: Dict[str, int] = Field(default_factory=dict, description="Combo count per hook label")


# =============================================================================
# Audit Result, Snapshot and Diff
# =============================================================================


class VersionBundle(BaseModel):
    """Every version stamp needed to reproduce an AuditResult."""
    model_config = ConfigDict(frozen=True)

    rule_set_version: str
    tokenizer_version: str
    kpi_engine_version: str
    metadata_hash: str


class AuditResult(BaseModel):
    """
    Immutable record of one audit for one (subject, timestamp) pair.

    Everything except `audit_timestamp` is a deterministic function of the
    metadata, the context and the rule versions.
    """
    model_config = ConfigDict(frozen=True)

    subject_id: str
    audit_timestamp: datetime
    metadata: ListingMetadata
    context: AuditContext

    element_scores: Dict[str, float] = Field(default_factory=dict)
    kpis: Dict[str, KpiResult] = Field(default_factory=dict)
    family_scores: Dict[str, float] = Field(default_factory=dict)
    overall_score: float = 0.0
    formulas: Dict[str, float] = Field(default_factory=dict)

    tokens: List[Token] = Field(default_factory=list)
    combos: List[Combo] = Field(default_factory=list)
    combo_coverage: ComboCoverage = Field(default_factory=ComboCoverage)
    intent_coverage: IntentCoverage = Field(default_factory=IntentCoverage)
    hook_coverage: HookCoverage = Field(default_factory=HookCoverage)

    recommendations: List[Recommendation] = Field(default_factory=list)
    version: VersionBundle
    diagnostics: List[Diagnostic] = Field(default_factory=list)

    def canonical_payload(self) -> Dict[str, Any]:
        """JSON-compatible dump without the timestamp, used for hashing and determinism checks."""
        return self.model_dump(mode="json", exclude={"audit_timestamp"})

    @property
    def combo_texts(self) -> List[str]:
        return sorted({c.text for c in self.combos})

    @property
    def keywords(self) -> List[str]:
        return sorted({t.text for t in self.tokens})


class AuditSnapshot(BaseModel):
    """An AuditResult as persisted, with its content hash."""
    model_config = ConfigDict(frozen=True)

    subject_id: str
    audit_timestamp: datetime
    content_hash: str
    result: AuditResult


class AuditDiff(BaseModel):
    """
    Delta between two snapshots of the same subject.

    Deltas are `to - from`. Never stored; always recomputed.
    """
    model_config = ConfigDict(frozen=True)

    subject_id: str
    from_timestamp: datetime
    to_timestamp: datetime

    title_changed: bool
    subtitle_changed: bool
    description_changed: bool
    rule_set_changed: bool

    overall_delta: float
    family_deltas: Dict[str, float] = Field(default_factory=dict)
    formula_deltas: Dict[str, float] = Field(default_factory=dict)
    kpi_deltas: Dict[str, float] = Field(default_factory=dict)

    combos_added: List[str] = Field(default_factory=list)
    combos_removed: List[str] = Field(default_factory=list)
    keywords_added: List[str] = Field(default_factory=list)
    keywords_removed: List[str] = Field(default_factory=list)
