"""
KPI Engine Service

Computes the KPI vector for one listing, normalizes every KPI to 0-100,
aggregates KPIs into family scores and family scores into the overall score.

Normalization by direction (raw is first clamped to [min_value, max_value]):
- higher_is_better: 100 * (raw - min) / (max - min)
- lower_is_better:  100 * (1 - (raw - min) / (max - min))
- target_range:     100 * max(0, 1 - |raw - target| / tolerance)

Effective KPI weight = base weight * clamp(multiplier, 0.5, 2.0). Family scores
are re-normalized by the effective weights actually present, and the overall
score is re-normalized by the family weights actually present.

Failure handling:
- A calculator that raises (or returns a non-finite value) is scored with the
  worst raw value for its direction and recorded as a kpi_degraded diagnostic.
- A listing with no title, subtitle or description scores 0 everywhere and
  carries a subject_data_missing diagnostic.
Neither condition raises.
"""

import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence

from listing_audit.models.enums import DiagnosticCode, KpiDirection
from listing_audit.models.rules import MergedRuleSet
from listing_audit.models.schemas import (
    Diagnostic,
    FamilyScore,
    KpiDefinition,
    KpiEngineResult,
    KpiFamily,
    KpiResult,
)
from listing_audit.services.kpi_registry import (
    KPI_CALCULATORS,
    KPI_DEFINITIONS,
    KPI_FAMILIES,
    KpiCalculator,
    ListingPrimitives,
    validate_catalogue,
)


logger = logging.getLogger(__name__)

MIN_MULTIPLIER = 0.5
MAX_MULTIPLIER = 2.0

SCORE_PRECISION = 2


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_multiplier(multiplier: float) -> float:
    return clamp(multiplier, MIN_MULTIPLIER, MAX_MULTIPLIER)


def normalize_value(raw: float, definition: KpiDefinition) -> float:
    """
    Normalize a raw KPI value to 0-100 according to its direction.

    A degenerate range (max == min) normalizes to 100.
    """
    low, high = definition.min_value, definition.max_value
    value = clamp(raw, low, high)

    if definition.direction == KpiDirection.TARGET_RANGE:
        distance = abs(value - definition.target_value)
        return 100.0 * max(0.0, 1.0 - distance / definition.target_tolerance)

    span = high - low
    if span == 0:
        return 100.0
    fraction = (value - low) / span
    if definition.direction == KpiDirection.LOWER_IS_BETTER:
        return 100.0 * (1.0 - fraction)
    return 100.0 * fraction


def worst_raw_value(definition: KpiDefinition) -> float:
    """Raw value with the lowest normalized score for the KPI's direction."""
    if definition.direction == KpiDirection.LOWER_IS_BETTER:
        return definition.max_value
    if definition.direction == KpiDirection.TARGET_RANGE:
        target = definition.target_value
        if abs(definition.max_value - target) >= abs(target - definition.min_value):
            return definition.max_value
        return definition.min_value
    return definition.min_value


class KpiEngine:
    """
    Evaluates the KPI catalogue against listing primitives.

    The catalogue and calculator registry are injectable so tests can swap in a
    failing calculator or a reduced catalogue.
    """

    def __init__(
        self,
        definitions: Optional[Sequence[KpiDefinition]] = None,
        families: Optional[Sequence[KpiFamily]] = None,
        calculators: Optional[Mapping[str, KpiCalculator]] = None,
    ):
        self.definitions: List[KpiDefinition] = list(definitions if definitions is not None else KPI_DEFINITIONS)
        self.families: List[KpiFamily] = list(families if families is not None else KPI_FAMILIES)
        self.calculators: Mapping[str, KpiCalculator] = calculators if calculators is not None else KPI_CALCULATORS
        validate_catalogue(self.families, self.definitions)

    def _compute_raw(self, definition: KpiDefinition, primitives: ListingPrimitives) -> float:
        calculator = self.calculators.get(definition.id)
        if calculator is None:
            raise LookupError(f"no calculator registered for KPI {definition.id}")
        raw = float(calculator(primitives))
        if not math.isfinite(raw):
            raise ValueError(f"non-finite raw value {raw}")
        return raw

    def evaluate(self, primitives: ListingPrimitives, rule_set: MergedRuleSet) -> KpiEngineResult:
        """
        Compute every KPI, family score and the overall score.

        Args:
            primitives: Scored tokens, classified combos and raw metadata
            rule_set: Merged rule set supplying multipliers and family weights

        Returns:
            KpiEngineResult with diagnostics for any degraded KPI or empty family
        """
        diagnostics: List[Diagnostic] = []
        subject_missing = primitives.is_empty
        if subject_missing:
            diagnostics.append(Diagnostic(
                code=DiagnosticCode.SUBJECT_DATA_MISSING,
                component="kpi_engine",
                message=f"Listing {primitives.metadata.subject_id} has no title, subtitle or description",
            ))

        kpis: Dict[str, KpiResult] = {}
        for definition in self.definitions:
            degraded = False
            if subject_missing:
                raw = worst_raw_value(definition)
                normalized = 0.0
            else:
                try:
                    raw = clamp(self._compute_raw(definition, primitives), definition.min_value, definition.max_value)
                except Exception as e:
                    logger.warning(f"KPI {definition.id} degraded: {e}")
                    degraded = True
                    raw = worst_raw_value(definition)
                    diagnostics.append(Diagnostic(
                        code=DiagnosticCode.KPI_DEGRADED,
                        component=definition.id,
                        message=f"{type(e).__name__}: {e}",
                    ))
                normalized = normalize_value(raw, definition)

            multiplier = clamp_multiplier(rule_set.kpi_multipliers.get(definition.id, 1.0))
            kpis[definition.id] = KpiResult(
                id=definition.id,
                family_id=definition.family_id,
                raw_value=round(raw, 6),
                normalized=round(normalized, SCORE_PRECISION),
                base_weight=definition.weight,
                multiplier=multiplier,
                multiplier_source=rule_set.kpi_multiplier_sources.get(definition.id),
                effective_weight=round(definition.weight * multiplier, 6),
                degraded=degraded,
            )

        families: Dict[str, FamilyScore] = {}
        for family in self.families:
            members = [k for k in kpis.values() if k.family_id == family.id]
            weight_sum = math.fsum(k.effective_weight for k in members)
            if weight_sum > 0:
                score = math.fsum(k.normalized * k.effective_weight for k in members) / weight_sum
            else:
                score = 0.0
                diagnostics.append(Diagnostic(
                    code=DiagnosticCode.FAMILY_EMPTY,
                    component=family.id,
                    message=f"Family {family.id} has no weighted KPIs",
                ))
            families[family.id] = FamilyScore(
                id=family.id,
                weight=rule_set.family_weights.get(family.id, family.weight),
                score=round(score, SCORE_PRECISION),
                kpi_ids=[k.id for k in members],
            )

        family_weight_sum = math.fsum(f.weight for f in families.values())
        if family_weight_sum > 0:
            overall = math.fsum(f.score * f.weight for f in families.values()) / family_weight_sum
        else:
            overall = 0.0

        return KpiEngineResult(
            kpis=kpis,
            families=families,
            overall=round(overall, SCORE_PRECISION),
            diagnostics=diagnostics,
        )
