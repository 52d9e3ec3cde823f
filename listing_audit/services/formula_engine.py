"""
Formula Engine Service

Evaluates named, declarative formulas (element scores and composite dimension
scores) from KPI engine output.

Component references:
- kpi:<id>        normalized KPI value (0-100)
- kpi_raw:<id>    raw KPI value
- family:<id>     family score
- formula:<id>    output of another formula
- primitive:<n>   listing primitive count (see FORMULA_PRIMITIVES)
- overall         overall KPI score

The catalogue is validated when a FormulaEngine is constructed: unknown
references, unknown custom functions, malformed ratio/threshold formulas and
cyclic formula references raise RuleValidationError. At evaluation time a
formula that fails is scored 0 with a formula_degraded diagnostic.
"""

import logging
import math
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from listing_audit.core.exceptions import RuleValidationError
from listing_audit.models.enums import ComboClassification, DiagnosticCode, FieldSource, FormulaType
from listing_audit.models.rules import MergedRuleSet
from listing_audit.models.schemas import (
    Diagnostic,
    FormulaComponent,
    FormulaDefinition,
    FormulaEngineResult,
    FormulaThreshold,
    KpiEngineResult,
)
from listing_audit.services.kpi_registry import (
    KPI_DEFINITIONS,
    KPI_FAMILIES,
    ListingPrimitives,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Primitives exposed to formulas
# =============================================================================

FORMULA_PRIMITIVES = (
    "title_token_count",
    "subtitle_token_count",
    "description_token_count",
    "total_tokens",
    "unique_keywords",
    "total_combos",
    "generic_combos",
    "brand_combos",
    "low_value_combos",
    "hook_labels",
)


def formula_primitives(primitives: ListingPrimitives) -> Dict[str, float]:
    """Count primitives over title and subtitle (description only for its own count)."""
    title = primitives.tokens[FieldSource.TITLE]
    subtitle = primitives.tokens[FieldSource.SUBTITLE]
    combos = primitives.field_combos(FieldSource.TITLE, FieldSource.SUBTITLE)

    def count(classification: ComboClassification) -> float:
        return float(sum(1 for c in combos if c.classification == classification))

    return {
        "title_token_count": float(len(title)),
        "subtitle_token_count": float(len(subtitle)),
        "description_token_count": float(len(primitives.tokens[FieldSource.DESCRIPTION])),
        "total_tokens": float(len(title) + len(subtitle)),
        "unique_keywords": float(len({t.text for t in primitives.meaningful(FieldSource.TITLE, FieldSource.SUBTITLE)})),
        "total_combos": float(len(combos)),
        "generic_combos": count(ComboClassification.GENERIC),
        "brand_combos": count(ComboClassification.BRAND),
        "low_value_combos": count(ComboClassification.LOW_VALUE),
        "hook_labels": float(len({h for c in combos for h in c.hooks})),
    }


# =============================================================================
# Custom Functions
# =============================================================================

CustomFunction = Callable[[List[float]], float]

CUSTOM_FUNCTIONS: Dict[str, CustomFunction] = {}


def register_custom_formula(name: str):
    """Register a custom formula function. Signature: (component values) -> score."""
    def decorator(fn: CustomFunction) -> CustomFunction:
        CUSTOM_FUNCTIONS[name] = fn
        return fn
    return decorator


@register_custom_formula("brand_balance")
def brand_balance(values: List[float]) -> float:
    """min(100, generic / (brand + generic) * 100 + 30); components are [brand, generic]."""
    brand, generic = values
    if brand + generic == 0:
        return 0.0
    return min(100.0, generic / (brand + generic) * 100 + 30)


# =============================================================================
# Catalogue
# =============================================================================


def _c(ref: str, weight: float = 1.0) -> FormulaComponent:
    return FormulaComponent(ref=ref, weight=weight)


FORMULA_DEFINITIONS: List[FormulaDefinition] = [
    FormulaDefinition(
        id="title_element_score",
        label="Title element score",
        type=FormulaType.WEIGHTED_SUM,
        components=[
            _c("kpi:title_char_usage", 0.25),
            _c("kpi:title_high_value_keyword_count", 0.30),
            _c("kpi:title_hook_strength", 0.30),
            _c("kpi:title_noise_ratio", 0.15),
        ],
    ),
    FormulaDefinition(
        id="subtitle_element_score",
        label="Subtitle element score",
        type=FormulaType.WEIGHTED_SUM,
        components=[
            _c("kpi:subtitle_char_usage", 0.20),
            _c("kpi:subtitle_incremental_keywords", 0.40),
            _c("kpi:subtitle_hook_strength", 0.25),
            _c("kpi:redundancy_penalty", 0.15),
        ],
    ),
    FormulaDefinition(
        id="description_conversion_score",
        label="Description conversion score",
        type=FormulaType.WEIGHTED_SUM,
        components=[
            _c("kpi:description_word_count", 0.40),
            _c("kpi:benefit_density", 0.30),
            _c("kpi:action_verb_density", 0.30),
        ],
    ),
    FormulaDefinition(
        id="metadata_overall_score",
        label="Metadata overall score",
        type=FormulaType.COMPOSITE,
        components=[
            _c("formula:title_element_score", 0.65),
            _c("formula:subtitle_element_score", 0.35),
        ],
    ),
    FormulaDefinition(
        id="keyword_efficiency",
        label="Unique keywords per token",
        type=FormulaType.RATIO,
        components=[_c("primitive:unique_keywords"), _c("primitive:total_tokens")],
    ),
    FormulaDefinition(
        id="discovery_ratio",
        label="Generic combos per combo",
        type=FormulaType.RATIO,
        components=[_c("primitive:generic_combos"), _c("primitive:total_combos")],
    ),
    FormulaDefinition(
        id="hook_depth_score",
        label="Hook depth",
        type=FormulaType.THRESHOLD_BASED,
        components=[_c("primitive:hook_labels")],
        thresholds=[
            FormulaThreshold(min=0, score=20),
            FormulaThreshold(min=1, score=50),
            FormulaThreshold(min=3, score=75),
            FormulaThreshold(min=5, score=100),
        ],
    ),
    FormulaDefinition(
        id="brand_balance_score",
        label="Brand balance",
        type=FormulaType.CUSTOM,
        custom_function="brand_balance",
        components=[_c("primitive:brand_combos"), _c("primitive:generic_combos")],
    ),
    FormulaDefinition(
        id="search_visibility_score",
        label="Search visibility",
        type=FormulaType.COMPOSITE,
        components=[
            _c("formula:metadata_overall_score", 0.60),
            _c("formula:discovery_ratio", 0.20),
            _c("formula:keyword_efficiency", 0.20),
        ],
    ),
]

# Element score formulas surfaced on the AuditResult
ELEMENT_FORMULAS = {
    "title": "title_element_score",
    "subtitle": "subtitle_element_score",
    "description": "description_conversion_score",
}


# =============================================================================
# Validation
# =============================================================================


def _validate_ref(ref: str, formula_ids: set) -> Optional[str]:
    if ref == "overall":
        return None
    prefix, _, name = ref.partition(":")
    if not name:
        return f"malformed reference '{ref}'"
    if prefix in ("kpi", "kpi_raw"):
        known = {k.id for k in KPI_DEFINITIONS}
    elif prefix == "family":
        known = {f.id for f in KPI_FAMILIES}
    elif prefix == "formula":
        known = formula_ids
    elif prefix == "primitive":
        known = set(FORMULA_PRIMITIVES)
    else:
        return f"unknown reference prefix '{prefix}'"
    if name not in known:
        return f"unknown {prefix} '{name}'"
    return None


def evaluation_order(definitions: Sequence[FormulaDefinition]) -> List[str]:
    """
    Topological order of formulas via depth-first search.

    Raises:
        RuleValidationError: on a cyclic formula reference
    """
    by_id = {d.id: d for d in definitions}
    order: List[str] = []
    state: Dict[str, int] = {}  # 1 = visiting, 2 = done

    def visit(formula_id: str, path: List[str]) -> None:
        if state.get(formula_id) == 2:
            return
        if state.get(formula_id) == 1:
            cycle = " -> ".join(path + [formula_id])
            raise RuleValidationError(f"Cyclic formula reference: {cycle}", key=formula_id)
        state[formula_id] = 1
        for component in by_id[formula_id].components:
            if component.ref.startswith("formula:"):
                visit(component.ref.split(":", 1)[1], path + [formula_id])
        state[formula_id] = 2
        order.append(formula_id)

    for definition in definitions:
        visit(definition.id, [])
    return order


def validate_formulas(
    definitions: Sequence[FormulaDefinition],
    custom_functions: Mapping[str, CustomFunction],
) -> List[str]:
    """
    Validate a formula catalogue and return its evaluation order.

    Raises:
        RuleValidationError: on any structural problem
    """
    formula_ids = {d.id for d in definitions}
    if len(formula_ids) != len(definitions):
        raise RuleValidationError("Duplicate formula id", key="formulas")

    for d in definitions:
        for component in d.components:
            problem = _validate_ref(component.ref, formula_ids)
            if problem:
                raise RuleValidationError(f"Formula {d.id}: {problem}", key=d.id)

        if d.type == FormulaType.RATIO and len(d.components) != 2:
            raise RuleValidationError(f"Ratio formula {d.id} needs exactly two components", key=d.id)
        if d.type == FormulaType.THRESHOLD_BASED:
            if len(d.components) != 1 or not d.thresholds:
                raise RuleValidationError(f"Threshold formula {d.id} needs one component and thresholds", key=d.id)
        if d.type == FormulaType.COMPOSITE:
            if not all(c.ref.startswith("formula:") for c in d.components):
                raise RuleValidationError(f"Composite formula {d.id} may only reference formulas", key=d.id)
        if d.type == FormulaType.CUSTOM and d.custom_function not in custom_functions:
            raise RuleValidationError(f"Formula {d.id} uses unknown custom function {d.custom_function}", key=d.id)
        if d.type in (FormulaType.WEIGHTED_SUM, FormulaType.COMPOSITE) and not d.components:
            raise RuleValidationError(f"Formula {d.id} has no components", key=d.id)

    return evaluation_order(definitions)


# =============================================================================
# Evaluation
# =============================================================================


def resolve_ref(
    ref: str,
    kpi_result: KpiEngineResult,
    formula_values: Mapping[str, float],
    primitive_values: Mapping[str, float],
) -> float:
    if ref == "overall":
        return kpi_result.overall
    prefix, _, name = ref.partition(":")
    if prefix == "kpi":
        return kpi_result.kpis[name].normalized
    if prefix == "kpi_raw":
        return kpi_result.kpis[name].raw_value
    if prefix == "family":
        return kpi_result.families[name].score
    if prefix == "formula":
        return formula_values[name]
    if prefix == "primitive":
        return primitive_values[name]
    raise KeyError(ref)


def evaluate_formula(
    formula: FormulaDefinition,
    values: Sequence[float],
    weights: Sequence[float],
    custom_functions: Optional[Mapping[str, CustomFunction]] = None,
) -> float:
    """
    Evaluate one formula from already-resolved component values.

    Returns a score clamped to 0-100.
    """
    if formula.type in (FormulaType.WEIGHTED_SUM, FormulaType.COMPOSITE):
        total_weight = math.fsum(weights)
        result = math.fsum(v * w for v, w in zip(values, weights)) / total_weight if total_weight else 0.0
    elif formula.type == FormulaType.RATIO:
        numerator, denominator = values
        result = numerator / denominator * 100 if denominator else 0.0
    elif formula.type == FormulaType.THRESHOLD_BASED:
        metric = values[0]
        ordered = sorted(formula.thresholds, key=lambda t: t.min)
        result = ordered[0].score
        for threshold in ordered:
            if metric >= threshold.min:
                result = threshold.score
    elif formula.type == FormulaType.CUSTOM:
        functions = custom_functions if custom_functions is not None else CUSTOM_FUNCTIONS
        result = float(functions[formula.custom_function](list(values)))
    else:
        raise ValueError(f"Unsupported formula type {formula.type}")

    if not math.isfinite(result):
        raise ValueError(f"non-finite formula result {result}")
    return max(0.0, min(100.0, result))


class FormulaEngine:
    """Validated formula catalogue plus its evaluation order."""

    def __init__(
        self,
        definitions: Optional[Sequence[FormulaDefinition]] = None,
        custom_functions: Optional[Mapping[str, CustomFunction]] = None,
    ):
        definitions = list(definitions if definitions is not None else FORMULA_DEFINITIONS)
        self.custom_functions = custom_functions if custom_functions is not None else CUSTOM_FUNCTIONS
        self.order = validate_formulas(definitions, self.custom_functions)
        self.definitions: Dict[str, FormulaDefinition] = {d.id: d for d in definitions}

    def evaluate(
        self,
        kpi_result: KpiEngineResult,
        primitives: ListingPrimitives,
        rule_set: MergedRuleSet,
    ) -> FormulaEngineResult:
        """Evaluate every formula in dependency order, applying rule-set weight overrides."""
        primitive_values = formula_primitives(primitives)
        values: Dict[str, float] = {}
        diagnostics: List[Diagnostic] = []

        for formula_id in self.order:
            formula = self.definitions[formula_id]
            overrides = rule_set.formula_weight_overrides.get(formula_id, {})
            try:
                component_values = [
                    resolve_ref(c.ref, kpi_result, values, primitive_values) for c in formula.components
                ]
                weights = [overrides.get(c.ref, c.weight) for c in formula.components]
                values[formula_id] = round(
                    evaluate_formula(formula, component_values, weights, self.custom_functions), 2
                )
            except Exception as e:
                logger.warning(f"Formula {formula_id} degraded: {e}")
                values[formula_id] = 0.0
                diagnostics.append(Diagnostic(
                    code=DiagnosticCode.FORMULA_DEGRADED,
                    component=formula_id,
                    message=f"{type(e).__name__}: {e}",
                ))

        return FormulaEngineResult(values=values, diagnostics=diagnostics)
