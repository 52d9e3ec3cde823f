"""
Rule layer and merged rule set models.

A RuleLayer is one flat, independently validated map of overrides supplied by a
single tier (base, vertical, market or client). The resolver walks the four tiers
in precedence order and produces a MergedRuleSet, a pass-by-value configuration
object carrying a composite version string that identifies every contributing
layer version.

Override keys by section:
- token_relevance: one key per token text
- intent_patterns / hook_patterns: one key per pattern id
- kpi_multipliers: one key per KPI id
- formula_weight_overrides: one key per (formula id, component ref)
- family_weights: the whole family-weight set is a single key
- stopwords / low_value_patterns / brand_terms / brand_whitelist_patterns: union
- recommendation_templates: one key per template id
- template_variables: one key per variable name
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from listing_audit.models.enums import RuleLayerKind


# =============================================================================
# Pattern Models
# =============================================================================


class IntentPattern(BaseModel):
    """
    A single intent rule.

    Intent classification is first-match: patterns are evaluated by descending
    priority, and the first pattern whose regex matches a combo assigns its label.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(
        default=None,
        description="Override key; defaults to '<label>:<pattern>'"
    )
    label: str = Field(..., description="Dominant intent label, e.g. 'informational'")
    pattern: str = Field(..., description="Regular expression matched against combo text")
    priority: int = Field(default=100, description="Higher priorities are evaluated first")
    category: Optional[str] = Field(
        default=None,
        description="Optional sub-label, e.g. 'learning'"
    )

    @property
    def key(self) -> str:
        return self.id or f"{self.label}:{self.pattern}"


class HookPattern(BaseModel):
    """A persuasion hook rule. Every matching hook pattern applies to a combo."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(default=None, description="Override key; defaults to '<label>:<pattern>'")
    label: str = Field(..., description="Hook category, e.g. 'outcome_benefit'")
    pattern: str = Field(..., description="Regular expression matched against combo text")

    @property
    def key(self) -> str:
        return self.id or f"{self.label}:{self.pattern}"


class ResolvedIntentPattern(IntentPattern):
    """An intent pattern annotated with the layer that supplied it."""
    layer: RuleLayerKind
    declaration_index: int = Field(..., description="Position within the owning layer")


class RecommendationTemplate(BaseModel):
    """
    Recommendation text with named `{placeholder}` variables.

    Placeholders resolve against the template's own `variables`, then the merged
    `template_variables`, then the engine-supplied `metric`, `value` and `threshold`.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    variables: Dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Layer and Context Models
# =============================================================================


class RuleLayer(BaseModel):
    """
    One tier of rule overrides as read from the rule store.

    Only the base layer is required to be total (family weights, templates and
    template variables referenced by its templates must all be present).
    """
    model_config = ConfigDict(frozen=True)

    kind: RuleLayerKind
    key: str = Field(..., description="Layer key, e.g. 'language_learning' or 'de-DE'")
    version: str = Field(default="1", description="Version or last-modified stamp")

    token_relevance: Dict[str, int] = Field(default_factory=dict)
    intent_patterns: List[IntentPattern] = Field(default_factory=list)
    hook_patterns: List[HookPattern] = Field(default_factory=list)
    kpi_multipliers: Dict[str, float] = Field(default_factory=dict)
    formula_weight_overrides: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    family_weights: Optional[Dict[str, float]] = None
    stopwords: List[str] = Field(default_factory=list)
    low_value_patterns: List[str] = Field(default_factory=list)
    brand_terms: List[str] = Field(default_factory=list)
    brand_whitelist_patterns: List[str] = Field(default_factory=list)
    recommendation_templates: List[RecommendationTemplate] = Field(default_factory=list)
    template_variables: Dict[str, str] = Field(default_factory=dict)


class AuditContext(BaseModel):
    """Resolution context for one audit: which vertical, market and client apply."""
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "vertical": "language_learning",
                "market": "en-US",
                "client_id": None,
            }
        }
    )

    vertical: Optional[str] = Field(default=None, description="Vertical/category layer key")
    market: Optional[str] = Field(default=None, description="Market/locale layer key")
    client_id: Optional[str] = Field(default=None, description="Client layer key")

    def layer_keys(self) -> Dict[RuleLayerKind, Optional[str]]:
        return {
            RuleLayerKind.VERTICAL: self.vertical,
            RuleLayerKind.MARKET: self.market,
            RuleLayerKind.CLIENT: self.client_id,
        }


class RuleWarning(BaseModel):
    """A non-base rule entry that was dropped or clamped during resolution."""
    model_config = ConfigDict(frozen=True)

    layer: RuleLayerKind
    layer_key: str
    key: str
    message: str


# =============================================================================
# Merged Rule Set
# =============================================================================


class MergedRuleSet(BaseModel):
    """
    Fully resolved rule configuration for one AuditContext.

    Immutable and passed by value into every engine stage. Union sections are
    stored sorted so that serialization is stable.
    """
    model_config = ConfigDict(frozen=True)

    context: AuditContext
    version: str = Field(..., description="Composite version, e.g. 'base:default@3|vertical:finance@2'")

    token_relevance: Dict[str, int] = Field(default_factory=dict)
    intent_patterns: List[ResolvedIntentPattern] = Field(
        default_factory=list,
        description="Intent patterns in evaluation order"
    )
    hook_patterns: List[HookPattern] = Field(default_factory=list)
    kpi_multipliers: Dict[str, float] = Field(default_factory=dict)
    kpi_multiplier_sources: Dict[str, RuleLayerKind] = Field(default_factory=dict)
    formula_weight_overrides: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    family_weights: Dict[str, float] = Field(default_factory=dict)
    stopwords: List[str] = Field(default_factory=list)
    low_value_patterns: List[str] = Field(default_factory=list)
    brand_terms: List[str] = Field(default_factory=list)
    brand_whitelist_patterns: List[str] = Field(default_factory=list)
    recommendation_templates: Dict[str, RecommendationTemplate] = Field(default_factory=dict)
    template_variables: Dict[str, str] = Field(default_factory=dict)

    warnings: List[RuleWarning] = Field(default_factory=list)
