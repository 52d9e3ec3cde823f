"""
Rule Override Resolver Service

Resolves the four rule tiers (base -> vertical -> market -> client) for one
AuditContext into a single MergedRuleSet.

Resolution:
- For every override key the last layer that defines it wins, so precedence is
  client > market > vertical > base.
- Union sections (stopwords, low-value patterns, brand terms, whitelist
  patterns) accumulate across layers.
- Every entry is validated as it is merged: regexes must compile, token
  relevance must be 0-3, KPI multipliers must be finite and positive and are
  clamped to [0.5, 2.0], formula weight overrides must target a known component,
  family-weight overrides must cover every family and sum to 1.0, and template
  placeholders must all have a defined source.
- A failing entry in a vertical, market or client layer is dropped with a
  RuleWarning, leaving the lower layer's value in place. A failing entry in the
  base layer raises RuleValidationError.

Caching (RuleResolver):
- Entries are keyed by (vertical, market, client_id, version bundle) and
  expire after rule_cache_ttl_seconds.
- Concurrent resolutions of the same key share one in-flight task.
- Any entry built from a layer version that no longer matches the store is
  evicted as soon as the new version is observed.
"""

import asyncio
import logging
import math
import re
import string
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from listing_audit.core.config import get_settings
from listing_audit.core.exceptions import RuleStoreError, RuleValidationError
from listing_audit.models.enums import RuleLayerKind
from listing_audit.models.rules import (
    AuditContext,
    HookPattern,
    MergedRuleSet,
    RecommendationTemplate,
    ResolvedIntentPattern,
    RuleLayer,
    RuleWarning,
)
from listing_audit.models.schemas import FormulaDefinition, KpiDefinition, KpiFamily
from listing_audit.services.default_rules import BASE_LAYER_KEY
from listing_audit.services.formula_engine import FORMULA_DEFINITIONS
from listing_audit.services.kpi_engine import MAX_MULTIPLIER, MIN_MULTIPLIER
from listing_audit.services.kpi_registry import (
    FAMILY_WEIGHT_EPSILON,
    KPI_DEFINITIONS,
    KPI_FAMILIES,
)


logger = logging.getLogger(__name__)

# Placeholders the recommendation engine always supplies
ENGINE_TEMPLATE_VARIABLES = frozenset({"metric", "value", "threshold"})

VersionBundle = Tuple[Tuple[str, str, Optional[str]], ...]
CacheKey = Tuple[Optional[str], Optional[str], Optional[str], VersionBundle]


# =============================================================================
# Validation Helpers
# =============================================================================


def _reject(layer: RuleLayer, key: str, message: str, warnings: List[RuleWarning]) -> None:
    """Raise for the base layer, otherwise record and log a warning."""
    if layer.kind == RuleLayerKind.BASE:
        raise RuleValidationError(f"Base layer '{layer.key}' {key}: {message}", key=key)
    logger.warning(f"Dropped rule {layer.kind.value}:{layer.key} {key}: {message}")
    warnings.append(RuleWarning(layer=layer.kind, layer_key=layer.key, key=key, message=message))


def _pattern_error(pattern: str) -> Optional[str]:
    try:
        re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        return f"invalid pattern {pattern!r}: {e}"
    return None


def template_placeholders(text: str) -> List[str]:
    """
    Placeholder names used by a template.

    Raises:
        ValueError: unbalanced braces, or a placeholder that is not a plain name
            or carries a format spec or conversion
    """
    names = []
    for _, field_name, format_spec, conversion in string.Formatter().parse(text):
        if field_name is None:
            continue
        if not field_name.isidentifier():
            raise ValueError(f"unsupported placeholder '{{{field_name}}}'")
        if format_spec or conversion:
            raise ValueError(f"placeholder '{{{field_name}}}' may not carry a format spec or conversion")
        names.append(field_name)
    return names


def _template_problem(template: RecommendationTemplate, variables: Dict[str, str]) -> Optional[str]:
    try:
        names = template_placeholders(template.text)
    except ValueError as e:
        return str(e)
    defined = set(template.variables) | set(variables) | ENGINE_TEMPLATE_VARIABLES
    missing = sorted(set(names) - defined)
    if missing:
        return f"undefined placeholders {missing}"
    return None


def _family_weight_problem(weights: Dict[str, float], family_ids: Sequence[str]) -> Optional[str]:
    if set(weights) != set(family_ids):
        return f"family weights must cover exactly {sorted(family_ids)}"
    for family_id, weight in weights.items():
        if not math.isfinite(weight) or weight < 0:
            return f"invalid weight {weight} for family {family_id}"
    total = math.fsum(weights.values())
    if abs(total - 1.0) > FAMILY_WEIGHT_EPSILON:
        return f"family weights sum to {total}, expected 1.0"
    return None


# =============================================================================
# Pure Merge
# =============================================================================


def composite_version(layers: Sequence[RuleLayer]) -> str:
    return "|".join(f"{layer.kind.value}:{layer.key}@{layer.version}" for layer in layers)


def merge_rule_layers(
    layers: Sequence[RuleLayer],
    context: Optional[AuditContext] = None,
    kpi_definitions: Optional[Sequence[KpiDefinition]] = None,
    families: Optional[Sequence[KpiFamily]] = None,
    formulas: Optional[Sequence[FormulaDefinition]] = None,
) -> MergedRuleSet:
    """
    Merge rule layers into a MergedRuleSet.

    Args:
        layers: Layers for one context; must contain exactly one base layer
        context: Context recorded on the result
        kpi_definitions: KPI catalogue used to validate multipliers
        families: Family catalogue supplying default family weights
        formulas: Formula catalogue used to validate weight overrides

    Returns:
        MergedRuleSet with warnings for every dropped or clamped entry

    Raises:
        RuleValidationError: missing base layer or any invalid base entry
    """
    ordered = sorted(layers, key=lambda layer: layer.kind.rank)
    if not ordered or ordered[0].kind != RuleLayerKind.BASE:
        raise RuleValidationError("Base rule layer is required", key="base")
    if sum(1 for layer in ordered if layer.kind == RuleLayerKind.BASE) > 1:
        raise RuleValidationError("Exactly one base rule layer is allowed", key="base")

    kpi_ids = {k.id for k in (kpi_definitions if kpi_definitions is not None else KPI_DEFINITIONS)}
    family_list = list(families if families is not None else KPI_FAMILIES)
    family_ids = [f.id for f in family_list]
    formula_refs = {
        f.id: {c.ref for c in f.components}
        for f in (formulas if formulas is not None else FORMULA_DEFINITIONS)
    }

    warnings: List[RuleWarning] = []
    token_relevance: Dict[str, int] = {}
    intents: Dict[str, ResolvedIntentPattern] = {}
    hooks: Dict[str, HookPattern] = {}
    multipliers: Dict[str, float] = {}
    multiplier_sources: Dict[str, RuleLayerKind] = {}
    formula_overrides: Dict[str, Dict[str, float]] = {}
    family_weights: Dict[str, float] = {f.id: f.weight for f in family_list}
    stopwords, low_value, brand_terms, whitelist = set(), set(), set(), set()
    variables: Dict[str, str] = {}
    template_candidates: Dict[str, List[Tuple[RuleLayer, RecommendationTemplate]]] = {}

    for layer in ordered:
        # -- Token relevance ---------------------------------------------------
        for token, score in layer.token_relevance.items():
            key = token.strip().lower()
            if not key:
                _reject(layer, "token_relevance:<empty>", "empty token", warnings)
            elif score not in (0, 1, 2, 3):
                _reject(layer, f"token_relevance:{key}", f"relevance {score} outside 0-3", warnings)
            else:
                token_relevance[key] = int(score)

        # -- Intent and hook patterns -----------------------------------------
        for index, pattern in enumerate(layer.intent_patterns):
            problem = _pattern_error(pattern.pattern)
            if problem:
                _reject(layer, f"intent:{pattern.key}", problem, warnings)
                continue
            intents[pattern.key] = ResolvedIntentPattern(
                **pattern.model_dump(),
                layer=layer.kind,
                declaration_index=index,
            )

        for pattern in layer.hook_patterns:
            problem = _pattern_error(pattern.pattern)
            if problem:
                _reject(layer, f"hook:{pattern.key}", problem, warnings)
                continue
            hooks[pattern.key] = pattern

        # -- KPI multipliers ---------------------------------------------------
        for kpi_id, multiplier in layer.kpi_multipliers.items():
            key = f"kpi_multiplier:{kpi_id}"
            if kpi_id not in kpi_ids:
                _reject(layer, key, "unknown KPI id", warnings)
                continue
            if not math.isfinite(multiplier) or multiplier <= 0:
                _reject(layer, key, f"multiplier {multiplier} must be finite and positive", warnings)
                continue
            if not MIN_MULTIPLIER <= multiplier <= MAX_MULTIPLIER:
                clamped = max(MIN_MULTIPLIER, min(MAX_MULTIPLIER, multiplier))
                _reject(layer, key, f"multiplier {multiplier} clamped to {clamped}", warnings)
                multiplier = clamped
            multipliers[kpi_id] = float(multiplier)
            multiplier_sources[kpi_id] = layer.kind

        # -- Formula weight overrides -----------------------------------------
        for formula_id, weights in layer.formula_weight_overrides.items():
            if formula_id not in formula_refs:
                _reject(layer, f"formula_weight:{formula_id}", "unknown formula id", warnings)
                continue
            for ref, weight in weights.items():
                key = f"formula_weight:{formula_id}:{ref}"
                if ref not in formula_refs[formula_id]:
                    _reject(layer, key, "not a component of the formula", warnings)
                elif not math.isfinite(weight) or weight < 0:
                    _reject(layer, key, f"invalid weight {weight}", warnings)
                else:
                    formula_overrides.setdefault(formula_id, {})[ref] = float(weight)

        # -- Family weights (the whole set is one key) -------------------------
        if layer.family_weights is not None:
            problem = _family_weight_problem(layer.family_weights, family_ids)
            if problem:
                _reject(layer, "family_weights", problem, warnings)
            else:
                family_weights = {fid: float(layer.family_weights[fid]) for fid in family_ids}

        # -- Union sections ------------------------------------------------------
        stopwords.update(w.strip().lower() for w in layer.stopwords if w.strip())
        brand_terms.update(t.strip().lower() for t in layer.brand_terms if t.strip())
        for pattern in layer.low_value_patterns:
            problem = _pattern_error(pattern)
            if problem:
                _reject(layer, f"low_value:{pattern}", problem, warnings)
            else:
                low_value.add(pattern)
        for pattern in layer.brand_whitelist_patterns:
            problem = _pattern_error(pattern)
            if problem:
                _reject(layer, f"brand_whitelist:{pattern}", problem, warnings)
            else:
                whitelist.add(pattern)

        # -- Templates and variables ------------------------------------------
        variables.update(layer.template_variables)
        for template in layer.recommendation_templates:
            template_candidates.setdefault(template.id, []).append((layer, template))

    # Templates are validated against the fully merged variable set, falling
    # back to the next-lower layer's template of the same id.
    templates: Dict[str, RecommendationTemplate] = {}
    for template_id, candidates in template_candidates.items():
        for layer, template in reversed(candidates):
            problem = _template_problem(template, variables)
            if problem is None:
                templates[template_id] = template
                break
            _reject(layer, f"template:{template_id}", problem, warnings)

    intent_order = sorted(
        intents.values(),
        key=lambda p: (-p.priority, -p.layer.rank, p.declaration_index, p.key),
    )

    return MergedRuleSet(
        context=context or AuditContext(),
        version=composite_version(ordered),
        token_relevance=dict(sorted(token_relevance.items())),
        intent_patterns=intent_order,
        hook_patterns=list(hooks.values()),
        kpi_multipliers=dict(sorted(multipliers.items())),
        kpi_multiplier_sources=dict(sorted(multiplier_sources.items())),
        formula_weight_overrides={k: dict(sorted(v.items())) for k, v in sorted(formula_overrides.items())},
        family_weights=family_weights,
        stopwords=sorted(stopwords),
        low_value_patterns=sorted(low_value),
        brand_terms=sorted(brand_terms),
        brand_whitelist_patterns=sorted(whitelist),
        recommendation_templates=templates,
        template_variables=dict(sorted(variables.items())),
        warnings=warnings,
    )


# =============================================================================
# Cached Resolver
# =============================================================================


@dataclass
class _CacheEntry:
    rule_set: MergedRuleSet
    expires_at: float


class RuleResolver:
    """
    Resolves MergedRuleSets from a rule store with a keyed, TTL-bound cache.

    Concurrent `resolve` calls for the same cache key coalesce into a single
    store read and merge; later callers await the in-flight result.
    """

    def __init__(
        self,
        store,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        kpi_definitions: Optional[Sequence[KpiDefinition]] = None,
        families: Optional[Sequence[KpiFamily]] = None,
        formulas: Optional[Sequence[FormulaDefinition]] = None,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_settings().rule_cache_ttl_seconds
        self._clock = clock
        self._kpi_definitions = kpi_definitions
        self._families = families
        self._formulas = formulas
        self._cache: Dict[CacheKey, _CacheEntry] = {}
        self._inflight: Dict[CacheKey, asyncio.Task] = {}
        # Number of merges actually performed (cache misses that ran)
        self.resolution_count = 0

    @staticmethod
    def layer_ids(context: AuditContext) -> List[Tuple[RuleLayerKind, str]]:
        ids = [(RuleLayerKind.BASE, BASE_LAYER_KEY)]
        for kind, key in context.layer_keys().items():
            if key:
                ids.append((kind, key))
        return ids

    async def version_bundle(self, context: AuditContext) -> VersionBundle:
        layer_ids = self.layer_ids(context)
        versions = await asyncio.gather(*(self.store.get_version(kind, key) for kind, key in layer_ids))
        return tuple((kind.value, key, version) for (kind, key), version in zip(layer_ids, versions))

    def _evict_stale(self, bundle: VersionBundle) -> None:
        """Drop expired entries and entries built from a since-changed layer version."""
        now = self._clock()
        current = {(kind, key): version for kind, key, version in bundle}
        for cache_key in list(self._cache):
            if self._cache[cache_key].expires_at <= now:
                del self._cache[cache_key]
                continue
            for kind, key, version in cache_key[3]:
                if (kind, key) in current and current[(kind, key)] != version:
                    logger.debug(f"Evicting rule set {cache_key[:3]}: {kind}:{key} changed")
                    del self._cache[cache_key]
                    break

    async def resolve(self, context: AuditContext) -> MergedRuleSet:
        """
        Resolve the merged rule set for a context.

        Raises:
            RuleStoreError: the store failed or the base layer is missing
            RuleValidationError: the base layer is invalid
        """
        bundle = await self.version_bundle(context)
        if bundle[0][2] is None:
            raise RuleStoreError(f"Base rule layer '{BASE_LAYER_KEY}' not found")

        cache_key: CacheKey = (context.vertical, context.market, context.client_id, bundle)
        self._evict_stale(bundle)

        entry = self._cache.get(cache_key)
        if entry is not None:
            if entry.expires_at > self._clock():
                logger.debug(f"Rule set cache hit for {cache_key[:3]}")
                return entry.rule_set
            del self._cache[cache_key]

        task = self._inflight.get(cache_key)
        if task is None:
            task = asyncio.ensure_future(self._load(context, cache_key))
            self._inflight[cache_key] = task
            task.add_done_callback(lambda done, key=cache_key: self._forget(key, done))
        else:
            logger.debug(f"Awaiting in-flight resolution for {cache_key[:3]}")
        return await asyncio.shield(task)

    def _forget(self, cache_key: CacheKey, task: asyncio.Task) -> None:
        if self._inflight.get(cache_key) is task:
            del self._inflight[cache_key]

    async def _load(self, context: AuditContext, cache_key: CacheKey) -> MergedRuleSet:
        layer_ids = self.layer_ids(context)
        fetched = await asyncio.gather(*(self.store.get_layer(kind, key) for kind, key in layer_ids))
        layers = [layer for layer in fetched if layer is not None]
        if not layers or layers[0].kind != RuleLayerKind.BASE:
            raise RuleStoreError(f"Base rule layer '{BASE_LAYER_KEY}' not found")
        for (kind, key), layer in zip(layer_ids, fetched):
            if layer is None and kind != RuleLayerKind.BASE:
                logger.debug(f"No {kind.value} rule layer '{key}'; falling through")

        rule_set = merge_rule_layers(
            layers,
            context=context,
            kpi_definitions=self._kpi_definitions,
            families=self._families,
            formulas=self._formulas,
        )
        self.resolution_count += 1
        self._cache[cache_key] = _CacheEntry(rule_set=rule_set, expires_at=self._clock() + self.ttl_seconds)
        logger.debug(f"Resolved rule set {rule_set.version} with {len(rule_set.warnings)} warnings")
        return rule_set

    def invalidate(self, kind: Optional[RuleLayerKind] = None, key: Optional[str] = None) -> int:
        """
        Evict cached rule sets.

        With no arguments every entry is evicted; with a kind (and optionally a
        key) only entries built from a matching layer are evicted.

        Returns:
            Number of evicted entries
        """
        if kind is None:
            count = len(self._cache)
            self._cache.clear()
            return count

        evicted = 0
        for cache_key in list(self._cache):
            for layer_kind, layer_key, _ in cache_key[3]:
                if layer_kind == kind.value and (key is None or layer_key == key):
                    del self._cache[cache_key]
                    evicted += 1
                    break
        logger.info(f"Invalidated {evicted} cached rule sets for {kind.value}:{key or '*'}")
        return evicted

    @property
    def cache_size(self) -> int:
        return len(self._cache)
