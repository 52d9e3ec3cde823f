"""
KPI Catalogue and Calculators

Static catalogue of KPI families and KPI definitions, the per-listing primitive
bundle the calculators read, and the calculator registry.

Families (weights sum to 1.0):
- clarity_structure      0.20  character usage and word counts
- keyword_architecture   0.30  high-value keywords, noise, combo quality
- hook_strength          0.15  action/benefit hooks and hook label diversity
- brand_balance          0.10  generic discovery vs. brand combos
- psychology_alignment   0.10  benefit/action density, redundancy, urgency
- intent_quality         0.15  intent coverage, diversity and balance

Each calculator is a plain function of a ListingPrimitives instance returning a
raw float. Calculators are registered with @register_kpi and looked up by KPI id;
a KPI with no calculator is degraded by the engine rather than failing the audit.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

import numpy as np

from listing_audit.core.exceptions import RuleValidationError
from listing_audit.models.enums import (
    ComboClassification,
    FieldSource,
    IntentLabel,
    KpiDirection,
    MetricType,
)
from listing_audit.models.rules import MergedRuleSet
from listing_audit.models.schemas import (
    Combo,
    KpiDefinition,
    KpiFamily,
    ListingMetadata,
    Token,
)
from listing_audit.services.tokenizer import FIELD_ORDER


# Bumped whenever the catalogue or any calculator changes
KPI_ENGINE_VERSION = "kpi-2.1.0"

FAMILY_WEIGHT_EPSILON = 1e-6


# =============================================================================
# Word Sets
# =============================================================================

ACTION_VERBS = frozenset([
    "learn", "master", "speak", "practice", "improve", "discover",
    "unlock", "transform", "achieve", "build", "create", "track",
    "save", "boost", "gain", "reach", "grow", "start", "get",
])

BENEFIT_KEYWORDS = frozenset([
    "free", "easy", "fast", "simple", "powerful", "advanced",
    "professional", "complete", "ultimate", "perfect", "quick",
    "effective", "proven", "guaranteed", "unlimited", "premium",
])

URGENCY_WORDS = frozenset([
    "now", "today", "instant", "instantly", "immediate", "immediately",
    "quick", "quickly", "fast", "rapid", "rapidly",
])

SCORED_INTENTS = (
    IntentLabel.INFORMATIONAL.value,
    IntentLabel.COMMERCIAL.value,
    IntentLabel.TRANSACTIONAL.value,
    IntentLabel.NAVIGATIONAL.value,
)


# =============================================================================
# Catalogue
# =============================================================================

KPI_FAMILIES: List[KpiFamily] = [
    KpiFamily(id="clarity_structure", label="Clarity & Structure", weight=0.20),
    KpiFamily(id="keyword_architecture", label="Keyword Architecture", weight=0.30),
    KpiFamily(id="hook_strength", label="Hook Strength", weight=0.15),
    KpiFamily(id="brand_balance", label="Brand vs Generic Balance", weight=0.10),
    KpiFamily(id="psychology_alignment", label="Psychology Alignment", weight=0.10),
    KpiFamily(id="intent_quality", label="Intent Quality", weight=0.15),
]


def _kpi(id, family_id, weight, metric_type, direction, min_value, max_value,
         target_value=None, target_tolerance=None, label=""):
    return KpiDefinition(
        id=id,
        family_id=family_id,
        label=label or id.replace("_", " ").capitalize(),
        weight=weight,
        metric_type=metric_type,
        direction=direction,
        min_value=min_value,
        max_value=max_value,
        target_value=target_value,
        target_tolerance=target_tolerance,
    )


HIB = KpiDirection.HIGHER_IS_BETTER
LIB = KpiDirection.LOWER_IS_BETTER
TARGET = KpiDirection.TARGET_RANGE

KPI_DEFINITIONS: List[KpiDefinition] = [
    # Clarity & Structure
    _kpi("title_char_usage", "clarity_structure", 0.35, MetricType.RATIO, HIB, 0.0, 1.0),
    _kpi("subtitle_char_usage", "clarity_structure", 0.25, MetricType.RATIO, HIB, 0.0, 1.0),
    _kpi("title_word_count", "clarity_structure", 0.20, MetricType.COUNT, TARGET, 0.0, 12.0, 4.0, 4.0),
    _kpi("subtitle_word_count", "clarity_structure", 0.20, MetricType.COUNT, TARGET, 0.0, 15.0, 5.0, 5.0),
    # Keyword Architecture
    _kpi("title_high_value_keyword_count", "keyword_architecture", 0.25, MetricType.COUNT, HIB, 0.0, 3.0),
    _kpi("subtitle_incremental_keywords", "keyword_architecture", 0.20, MetricType.COUNT, HIB, 0.0, 4.0),
    _kpi("title_noise_ratio", "keyword_architecture", 0.15, MetricType.RATIO, LIB, 0.0, 1.0),
    _kpi("low_value_combo_ratio", "keyword_architecture", 0.15, MetricType.RATIO, LIB, 0.0, 1.0),
    _kpi("generic_combo_count", "keyword_architecture", 0.15, MetricType.COUNT, HIB, 0.0, 12.0),
    _kpi("unique_keyword_coverage", "keyword_architecture", 0.10, MetricType.COUNT, HIB, 0.0, 10.0),
    # Hook Strength
    _kpi("title_hook_strength", "hook_strength", 0.40, MetricType.SCORE, HIB, 0.0, 100.0),
    _kpi("subtitle_hook_strength", "hook_strength", 0.35, MetricType.SCORE, HIB, 0.0, 100.0),
    _kpi("hook_label_diversity", "hook_strength", 0.25, MetricType.COUNT, HIB, 0.0, 4.0),
    # Brand vs Generic Balance
    _kpi("generic_discovery_combo_ratio", "brand_balance", 0.60, MetricType.RATIO, HIB, 0.0, 1.0),
    _kpi("overbranding_indicator", "brand_balance", 0.40, MetricType.FLAG, LIB, 0.0, 1.0),
    # Psychology Alignment
    _kpi("benefit_density", "psychology_alignment", 0.25, MetricType.RATIO, HIB, 0.0, 0.3),
    _kpi("action_verb_density", "psychology_alignment", 0.25, MetricType.RATIO, HIB, 0.0, 0.3),
    _kpi("redundancy_penalty", "psychology_alignment", 0.20, MetricType.SCORE, LIB, 0.0, 50.0),
    _kpi("description_word_count", "psychology_alignment", 0.15, MetricType.COUNT, TARGET, 0.0, 4000.0, 300.0, 250.0),
    _kpi("urgency_signal", "psychology_alignment", 0.15, MetricType.SCORE, HIB, 0.0, 100.0),
    # Intent Quality
    _kpi("informational_intent_coverage", "intent_quality", 0.15, MetricType.SCORE, HIB, 0.0, 100.0),
    _kpi("commercial_intent_coverage", "intent_quality", 0.15, MetricType.SCORE, HIB, 0.0, 100.0),
    _kpi("transactional_intent_coverage", "intent_quality", 0.15, MetricType.SCORE, HIB, 0.0, 100.0),
    _kpi("unclassified_combo_ratio", "intent_quality", 0.20, MetricType.RATIO, LIB, 0.0, 1.0),
    _kpi("intent_diversity", "intent_quality", 0.15, MetricType.COUNT, HIB, 0.0, 4.0),
    _kpi("intent_balance", "intent_quality", 0.20, MetricType.SCORE, HIB, 0.0, 100.0),
]


def validate_catalogue(families: List[KpiFamily], kpis: List[KpiDefinition]) -> None:
    """
    Load-time validation of the KPI catalogue.

    Raises:
        RuleValidationError: duplicate ids, unknown family ids, or family weights
            that do not sum to 1.0
    """
    family_ids = [f.id for f in families]
    if len(set(family_ids)) != len(family_ids):
        raise RuleValidationError("Duplicate KPI family id", key="families")

    total = math.fsum(f.weight for f in families)
    if abs(total - 1.0) > FAMILY_WEIGHT_EPSILON:
        raise RuleValidationError(f"Family weights sum to {total}, expected 1.0", key="families")

    seen = set()
    for kpi in kpis:
        if kpi.id in seen:
            raise RuleValidationError(f"Duplicate KPI id {kpi.id}", key=kpi.id)
        seen.add(kpi.id)
        if kpi.family_id not in family_ids:
            raise RuleValidationError(f"KPI {kpi.id} references unknown family {kpi.family_id}", key=kpi.id)


validate_catalogue(KPI_FAMILIES, KPI_DEFINITIONS)


# =============================================================================
# Primitives
# =============================================================================


@dataclass(frozen=True)
class ListingPrimitives:
    """
    Everything a KPI calculator may read for one listing.

    Tokens carry relevance and combos carry classification, intent and hooks.
    """
    metadata: ListingMetadata
    tokens: Dict[FieldSource, List[Token]]
    combos: Dict[FieldSource, List[Combo]]
    stopwords: FrozenSet[str]
    title_char_limit: int
    subtitle_char_limit: int

    def meaningful(self, *fields: FieldSource) -> List[Token]:
        """Non-stopword tokens of the given fields, in field order."""
        return [
            t for field in fields for t in self.tokens.get(field, [])
            if t.text not in self.stopwords
        ]

    def field_combos(self, *fields: FieldSource) -> List[Combo]:
        return [c for field in fields for c in self.combos.get(field, [])]

    @property
    def is_empty(self) -> bool:
        return not any(self.tokens.get(field) for field in FIELD_ORDER)


def build_primitives(
    metadata: ListingMetadata,
    tokens: List[Token],
    combos: List[Combo],
    rule_set: MergedRuleSet,
    char_limits: Tuple[int, int],
) -> ListingPrimitives:
    by_field_tokens: Dict[FieldSource, List[Token]] = {field: [] for field in FIELD_ORDER}
    for token in tokens:
        by_field_tokens[token.source].append(token)
    by_field_combos: Dict[FieldSource, List[Combo]] = {field: [] for field in FIELD_ORDER}
    for combo in combos:
        by_field_combos[combo.source].append(combo)

    title_limit, subtitle_limit = char_limits
    return ListingPrimitives(
        metadata=metadata,
        tokens=by_field_tokens,
        combos=by_field_combos,
        stopwords=frozenset(rule_set.stopwords),
        title_char_limit=title_limit,
        subtitle_char_limit=subtitle_limit,
    )


# =============================================================================
# Calculator Registry
# =============================================================================

KpiCalculator = Callable[[ListingPrimitives], float]

KPI_CALCULATORS: Dict[str, KpiCalculator] = {}


def register_kpi(kpi_id: str):
    """Register a calculator function under a KPI id."""
    def decorator(fn: KpiCalculator) -> KpiCalculator:
        KPI_CALCULATORS[kpi_id] = fn
        return fn
    return decorator


TITLE = FieldSource.TITLE
SUBTITLE = FieldSource.SUBTITLE
DESCRIPTION = FieldSource.DESCRIPTION


def _ratio(numerator: float, denominator: float, empty: float = 0.0) -> float:
    return numerator / denominator if denominator else empty


def hook_strength_score(tokens: List[Token]) -> float:
    """Hook strength (0-100) from action verbs, benefit words and their density."""
    if not tokens:
        return 0.0
    action = sum(1 for t in tokens if t.text in ACTION_VERBS)
    benefit = sum(1 for t in tokens if t.text in BENEFIT_KEYWORDS)
    action_score = min(action * 30, 50)
    benefit_score = min(benefit * 20, 30)
    density_score = min((action + benefit) / len(tokens) * 100, 20)
    return float(min(action_score + benefit_score + density_score, 100))


def intent_counts(combos: List[Combo]) -> Dict[str, int]:
    counts = {label: 0 for label in SCORED_INTENTS}
    counts[IntentLabel.UNCLASSIFIED.value] = 0
    for combo in combos:
        label = combo.intent or IntentLabel.UNCLASSIFIED.value
        counts[label] = counts.get(label, 0) + 1
    return counts


# -- Clarity & Structure ------------------------------------------------------

@register_kpi("title_char_usage")
def title_char_usage(p: ListingPrimitives) -> float:
    return min(1.0, _ratio(len(p.metadata.title), p.title_char_limit))


@register_kpi("subtitle_char_usage")
def subtitle_char_usage(p: ListingPrimitives) -> float:
    return min(1.0, _ratio(len(p.metadata.subtitle), p.subtitle_char_limit))


@register_kpi("title_word_count")
def title_word_count(p: ListingPrimitives) -> float:
    return float(len(p.tokens[TITLE]))


@register_kpi("subtitle_word_count")
def subtitle_word_count(p: ListingPrimitives) -> float:
    return float(len(p.tokens[SUBTITLE]))


# -- Keyword Architecture -----------------------------------------------------

@register_kpi("title_high_value_keyword_count")
def title_high_value_keyword_count(p: ListingPrimitives) -> float:
    return float(len({t.text for t in p.meaningful(TITLE) if (t.relevance or 0) >= 2}))


@register_kpi("subtitle_incremental_keywords")
def subtitle_incremental_keywords(p: ListingPrimitives) -> float:
    title_words = {t.text for t in p.tokens[TITLE]}
    return float(len({
        t.text for t in p.meaningful(SUBTITLE)
        if (t.relevance or 0) >= 1 and t.text not in title_words
    }))


@register_kpi("title_noise_ratio")
def title_noise_ratio(p: ListingPrimitives) -> float:
    tokens = p.tokens[TITLE]
    noise = sum(1 for t in tokens if t.text in p.stopwords or t.relevance == 0)
    return _ratio(noise, len(tokens), empty=1.0)


@register_kpi("low_value_combo_ratio")
def low_value_combo_ratio(p: ListingPrimitives) -> float:
    combos = p.field_combos(TITLE, SUBTITLE)
    low = sum(1 for c in combos if c.classification == ComboClassification.LOW_VALUE)
    return _ratio(low, len(combos), empty=1.0)


@register_kpi("generic_combo_count")
def generic_combo_count(p: ListingPrimitives) -> float:
    return float(len({
        c.text for c in p.field_combos(TITLE, SUBTITLE)
        if c.classification == ComboClassification.GENERIC and c.length >= 2
    }))


@register_kpi("unique_keyword_coverage")
def unique_keyword_coverage(p: ListingPrimitives) -> float:
    return float(len({t.text for t in p.meaningful(TITLE, SUBTITLE) if (t.relevance or 0) >= 1}))


# -- Hook Strength ------------------------------------------------------------

@register_kpi("title_hook_strength")
def title_hook_strength(p: ListingPrimitives) -> float:
    return hook_strength_score(p.meaningful(TITLE))


@register_kpi("subtitle_hook_strength")
def subtitle_hook_strength(p: ListingPrimitives) -> float:
    return hook_strength_score(p.meaningful(SUBTITLE))


@register_kpi("hook_label_diversity")
def hook_label_diversity(p: ListingPrimitives) -> float:
    return float(len({h for c in p.field_combos(TITLE, SUBTITLE) for h in c.hooks}))


# -- Brand vs Generic Balance -------------------------------------------------

def _brand_generic_counts(p: ListingPrimitives) -> Tuple[int, int]:
    combos = p.field_combos(TITLE, SUBTITLE)
    brand = sum(1 for c in combos if c.classification == ComboClassification.BRAND)
    generic = sum(1 for c in combos if c.classification == ComboClassification.GENERIC)
    return brand, generic


@register_kpi("generic_discovery_combo_ratio")
def generic_discovery_combo_ratio(p: ListingPrimitives) -> float:
    brand, generic = _brand_generic_counts(p)
    return _ratio(generic, brand + generic)


@register_kpi("overbranding_indicator")
def overbranding_indicator(p: ListingPrimitives) -> float:
    brand, generic = _brand_generic_counts(p)
    return 1.0 if _ratio(brand, brand + generic) > 0.7 else 0.0


# -- Psychology Alignment -----------------------------------------------------

@register_kpi("benefit_density")
def benefit_density(p: ListingPrimitives) -> float:
    tokens = p.meaningful(TITLE, SUBTITLE)
    return _ratio(sum(1 for t in tokens if t.text in BENEFIT_KEYWORDS), len(tokens))


@register_kpi("action_verb_density")
def action_verb_density(p: ListingPrimitives) -> float:
    tokens = p.meaningful(TITLE, SUBTITLE)
    return _ratio(sum(1 for t in tokens if t.text in ACTION_VERBS), len(tokens))


@register_kpi("redundancy_penalty")
def redundancy_penalty(p: ListingPrimitives) -> float:
    words = [t.text for t in p.meaningful(TITLE, SUBTITLE)]
    return float((len(words) - len(set(words))) * 10)


@register_kpi("description_word_count")
def description_word_count(p: ListingPrimitives) -> float:
    return float(len(p.tokens[DESCRIPTION]))


@register_kpi("urgency_signal")
def urgency_signal(p: ListingPrimitives) -> float:
    count = sum(1 for t in p.meaningful(TITLE, SUBTITLE) if t.text in URGENCY_WORDS)
    return float(min(100, round(math.log(count + 1) * 40)))


# -- Intent Quality -----------------------------------------------------------

def _intent_share(p: ListingPrimitives, label: str) -> float:
    combos = p.field_combos(TITLE, SUBTITLE)
    return _ratio(intent_counts(combos).get(label, 0), len(combos)) * 100


@register_kpi("informational_intent_coverage")
def informational_intent_coverage(p: ListingPrimitives) -> float:
    return _intent_share(p, IntentLabel.INFORMATIONAL.value)


@register_kpi("commercial_intent_coverage")
def commercial_intent_coverage(p: ListingPrimitives) -> float:
    return _intent_share(p, IntentLabel.COMMERCIAL.value)


@register_kpi("transactional_intent_coverage")
def transactional_intent_coverage(p: ListingPrimitives) -> float:
    return _intent_share(p, IntentLabel.TRANSACTIONAL.value)


@register_kpi("unclassified_combo_ratio")
def unclassified_combo_ratio(p: ListingPrimitives) -> float:
    combos = p.field_combos(TITLE, SUBTITLE)
    return _ratio(intent_counts(combos)[IntentLabel.UNCLASSIFIED.value], len(combos), empty=1.0)


@register_kpi("intent_diversity")
def intent_diversity(p: ListingPrimitives) -> float:
    counts = intent_counts(p.field_combos(TITLE, SUBTITLE))
    return float(sum(1 for label in SCORED_INTENTS if counts[label] > 0))


def intent_balance_score(counts: Dict[str, int]) -> float:
    """Shannon entropy of the scored intent distribution, scaled to 0-100."""
    values = np.array([counts.get(label, 0) for label in SCORED_INTENTS], dtype=np.float64)
    total = values.sum()
    if total == 0:
        return 0.0
    probabilities = values[values > 0] / total
    entropy = float(-(probabilities * np.log2(probabilities)).sum())
    return entropy / math.log2(len(SCORED_INTENTS)) * 100


@register_kpi("intent_balance")
def intent_balance(p: ListingPrimitives) -> float:
    return intent_balance_score(intent_counts(p.field_combos(TITLE, SUBTITLE)))


def get_kpi_definition(kpi_id: str) -> Optional[KpiDefinition]:
    for kpi in KPI_DEFINITIONS:
        if kpi.id == kpi_id:
            return kpi
    return None
