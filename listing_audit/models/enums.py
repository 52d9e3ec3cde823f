"""
Enumeration definitions for the listing audit engine.

All enums inherit from both `str` and `Enum` so that they serialize as plain
strings inside Pydantic models, keeping persisted audit results readable and
byte-stable across runs.
"""

from enum import Enum


class FieldSource(str, Enum):
    """
    Listing field a token or combo was extracted from.

    Combos never span two fields.
    """
    TITLE = "title"
    SUBTITLE = "subtitle"
    DESCRIPTION = "description"


class RuleLayerKind(str, Enum):
    """
    Rule override layers, listed from least to most specific.

    Precedence for any single override key is client > market > vertical > base.
    The base layer is the only one required to define every key.
    """
    BASE = "base"
    VERTICAL = "vertical"
    MARKET = "market"
    CLIENT = "client"

    @property
    def rank(self) -> int:
        """Position in the resolution walk (base=0 ... client=3)."""
        return LAYER_ORDER.index(self)


LAYER_ORDER = (
    RuleLayerKind.BASE,
    RuleLayerKind.VERTICAL,
    RuleLayerKind.MARKET,
    RuleLayerKind.CLIENT,
)


class ComboClassification(str, Enum):
    """
    Discovery classification of a combo.

    - brand: contains a brand token (retention traffic)
    - generic: non-branded discovery phrase
    - low-value: filler, numeric or time-only phrase
    """
    BRAND = "brand"
    GENERIC = "generic"
    LOW_VALUE = "low-value"


class IntentLabel(str, Enum):
    """
    Dominant search-motivation labels known to the default catalogue.

    Rule layers may introduce additional labels; these are the ones the
    intent-quality KPIs count.
    """
    INFORMATIONAL = "informational"
    COMMERCIAL = "commercial"
    TRANSACTIONAL = "transactional"
    NAVIGATIONAL = "navigational"
    UNCLASSIFIED = "unclassified"


class MetricType(str, Enum):
    """Kind of raw value a KPI produces."""
    RATIO = "ratio"
    COUNT = "count"
    SCORE = "score"
    FLAG = "flag"


class KpiDirection(str, Enum):
    """
    Normalization direction for a KPI.

    - higher_is_better: 0 at minValue, 100 at maxValue
    - lower_is_better: 100 at minValue, 0 at maxValue
    - target_range: 100 at targetValue, falling to 0 at targetTolerance distance
    """
    HIGHER_IS_BETTER = "higher_is_better"
    LOWER_IS_BETTER = "lower_is_better"
    TARGET_RANGE = "target_range"


class FormulaType(str, Enum):
    """Declarative formula kinds understood by the formula engine."""
    WEIGHTED_SUM = "weighted_sum"
    RATIO = "ratio"
    COMPOSITE = "composite"
    THRESHOLD_BASED = "threshold_based"
    CUSTOM = "custom"


class Severity(str, Enum):
    """
    Recommendation severity.

    The numeric rank is used purely for ordering recommendations.
    """
    CRITICAL = "critical"
    STRONG = "strong"
    MODERATE = "moderate"
    OPTIONAL = "optional"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.CRITICAL: 90,
    Severity.STRONG: 70,
    Severity.MODERATE: 40,
    Severity.OPTIONAL: 20,
}


class ComparisonOperator(str, Enum):
    """Operators allowed in a recommendation rule condition."""
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="

    def test(self, value: float, threshold: float) -> bool:
        if self is ComparisonOperator.LT:
            return value < threshold
        if self is ComparisonOperator.LTE:
            return value <= threshold
        if self is ComparisonOperator.GT:
            return value > threshold
        return value >= threshold


class DiagnosticCode(str, Enum):
    """
    Codes for non-fatal conditions recorded on an audit result.

    - kpi_degraded: a KPI raised during computation and was scored worst-case
    - formula_degraded: a formula raised during evaluation and was scored 0
    - family_empty: a family had no effective KPI weight
    - subject_data_missing: the listing had no title, subtitle or description
    - rule_warning: a non-base rule entry was dropped or clamped at resolution
    - template_missing: a triggered recommendation had no template in the rule set
    """
    KPI_DEGRADED = "kpi_degraded"
    FORMULA_DEGRADED = "formula_degraded"
    FAMILY_EMPTY = "family_empty"
    SUBJECT_DATA_MISSING = "subject_data_missing"
    RULE_WARNING = "rule_warning"
    TEMPLATE_MISSING = "template_missing"


class Platform(str, Enum):
    """Store platform, selecting character limits."""
    IOS = "ios"
    ANDROID = "android"
